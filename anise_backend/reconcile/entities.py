"""
Entity descriptions for every DAO module the backend mirrors.
"""
import logging
from typing import Any, Dict, Optional

from ..chain.verifier import TransactionVerifier
from ..exceptions import StatePreconditionError
from ..models import (
    CallerIdentity, CreateAnnouncementRequest, CreateClaimRequest, CreateDocumentRequest,
    CreateEventRequest, CreateProposalRequest, CreateTaskRequest, TxRequest,
    UpdateAnnouncementRequest, UpdateEventRequest, UpdateTaskRequest, UpdateTaskStatusRequest,
    parse_request,
)
from ..utils import epoch_to_datetime, normalize_address
from .checks import require_echo, require_listed_signer
from .pipeline import PENDING, EntitySpec, VerifyAndReconcile, parse_entity_id
from .reconciler import DocumentReconciler

logger = logging.getLogger(__name__)

TASK_STATUSES = ("BACKLOG", "TODO", "IN_PROGRESS", "COMPLETED", "CANCELLED")
TASK_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")
ANNOUNCEMENT_TYPES = ("GENERAL", "URGENT", "INFO")


def _votable(payload, event, verified, identity) -> Dict[str, Any]:
    return {
        "title": payload.title,
        "description": payload.description,
        "status": PENDING,
        "votes": {},
        "voters": [],
        "approvals": 0,
        "rejections": 0,
    }


def _claim(payload, event, verified, identity) -> Dict[str, Any]:
    fields = _votable(payload, event, verified, identity)
    # Stored as a decimal string: token amounts overflow 64-bit integers
    fields["amount"] = str(event["amount"])
    return fields


def _task(payload, event, verified, identity) -> Dict[str, Any]:
    return {
        "title": payload.title,
        "description": payload.description,
        "status": TASK_STATUSES[0],
        "priority": TASK_PRIORITIES[payload.priority],
        "dueDate": epoch_to_datetime(payload.due_date),
    }


def _task_update(payload, event, verified, identity) -> Dict[str, Any]:
    fields = _task(payload, event, verified, identity)
    fields.pop("status")
    return fields


def _calendar_event(payload, event, verified, identity) -> Dict[str, Any]:
    return {
        "title": payload.title,
        "description": payload.description,
        "startTime": epoch_to_datetime(payload.start_time),
        "endTime": epoch_to_datetime(payload.end_time),
        "location": payload.location,
    }


def _document(payload, event, verified, identity) -> Dict[str, Any]:
    return {
        "title": payload.title,
        "description": payload.description,
        "ipfsHash": payload.ipfs_hash,
        "requiredSigners": list(payload.required_signers),
        "signatures": {},
        "signers": [],
        "signedCount": 0,
        "isExecuted": False,
    }


def _announcement(payload, event, verified, identity) -> Dict[str, Any]:
    return {
        "title": payload.title,
        "content": payload.content,
        "announcementType": ANNOUNCEMENT_TYPES[payload.announcement_type],
        "expiresAt": epoch_to_datetime(payload.expires_at),
    }


PROPOSALS = EntitySpec(
    name="proposal",
    collection="proposals",
    module="ProposalVotingModule",
    id_arg="proposalId",
    id_field="proposalId",
    create_event="ProposalCreated",
    create_model=CreateProposalRequest,
    build_document=_votable,
    actor_arg="proposer",
    creator_field="proposer",
    echo_fields={"title": "title", "description": "description"},
    vote_event="VoteCast",
    finalize_event="ProposalFinalized",
)

CLAIMS = EntitySpec(
    name="claim",
    collection="claims",
    module="ClaimVotingModule",
    id_arg="claimId",
    id_field="claimId",
    create_event="ClaimCreated",
    create_model=CreateClaimRequest,
    build_document=_claim,
    actor_arg="claimant",
    creator_field="claimant",
    echo_fields={"title": "title", "description": "description", "amount": "amount"},
    vote_event="ClaimVoteCast",
    finalize_event="ClaimFinalized",
)

TASKS = EntitySpec(
    name="task",
    collection="tasks",
    module="TaskManagementModule",
    id_arg="taskId",
    id_field="taskId",
    create_event="TaskCreated",
    create_model=CreateTaskRequest,
    build_document=_task,
    echo_fields={"title": "title"},
    update_event="TaskUpdated",
    update_model=UpdateTaskRequest,
    build_update=_task_update,
    update_echo_fields={"title": "title"},
    delete_event="TaskDeleted",
)

EVENTS = EntitySpec(
    name="event",
    collection="events",
    module="CalendarModule",
    id_arg="eventId",
    id_field="eventId",
    create_event="EventCreated",
    create_model=CreateEventRequest,
    build_document=_calendar_event,
    echo_fields={"title": "title", "start_time": "startTime"},
    update_event="EventUpdated",
    update_model=UpdateEventRequest,
    update_echo_fields={"title": "title", "start_time": "startTime"},
    delete_event="EventDeleted",
)

DOCUMENTS = EntitySpec(
    name="document",
    collection="documents",
    module="DocumentSigningModule",
    id_arg="documentId",
    id_field="documentId",
    create_event="DocumentCreated",
    create_model=CreateDocumentRequest,
    build_document=_document,
    echo_fields={"title": "title", "ipfs_hash": "ipfsHash"},
)

ANNOUNCEMENTS = EntitySpec(
    name="announcement",
    collection="announcements",
    module="AnnouncementModule",
    id_arg="announcementId",
    id_field="announcementId",
    create_event="AnnouncementCreated",
    create_model=CreateAnnouncementRequest,
    build_document=_announcement,
    echo_fields={"title": "title", "announcement_type": "announcementType"},
    update_event="AnnouncementUpdated",
    update_model=UpdateAnnouncementRequest,
    update_echo_fields={"title": "title", "announcement_type": "announcementType"},
    delete_event="AnnouncementDeleted",
)


class TaskPipeline(VerifyAndReconcile):
    """Tasks additionally move through a status workflow."""

    def update_status(self, dao: str, task_id: Any, body: Any, identity: CallerIdentity) -> Dict[str, Any]:
        """
        Verify a TaskStatusUpdated transaction and store the new status.

        Returns:
            {"success", "task"}
        """
        dao = normalize_address(dao, "daoAddress")
        task_id = parse_entity_id(task_id)
        payload = parse_request(UpdateTaskStatusRequest, body)

        verified = self._verify(dao, payload.tx_hash, "TaskStatusUpdated")
        event = self._event_for(verified, "TaskStatusUpdated", task_id)
        actor = self._actor(verified, event, "updatedBy", identity)
        require_echo(payload.new_status, event["status"], "newStatus")

        self.reconciler.load(dao, self.spec.collection, task_id)
        stored = self.reconciler.apply_update(dao, self.spec.collection, task_id, {
            "status": TASK_STATUSES[int(event["status"])],
            "updatedBy": actor,
            "lastTxHash": verified.tx_hash,
        })
        return {"success": True, "task": {"taskId": str(task_id), **(stored or {})}}


class DocumentPipeline(VerifyAndReconcile):
    """Documents collect signatures instead of votes."""

    def sign(self, dao: str, document_id: Any, body: Any, identity: CallerIdentity) -> Dict[str, Any]:
        """
        Verify a DocumentSigned transaction and record the signature.

        A DocumentExecuted event for the same document in the same receipt marks
        it executed in the same update.

        Returns:
            {"success", "documentExecuted", "signedCount", "txHash"}
        """
        dao = normalize_address(dao, "daoAddress")
        document_id = parse_entity_id(document_id)
        payload = parse_request(TxRequest, body)

        verified = self._verify(dao, payload.tx_hash, "DocumentSigned")
        event = self._event_for(verified, "DocumentSigned", document_id)
        signer = self._actor(verified, event, "signer", identity)

        document = self.reconciler.load(dao, self.spec.collection, document_id)
        if document.get("isExecuted"):
            raise StatePreconditionError(f"Document {document_id} is already executed")
        require_listed_signer(document.get("requiredSigners"), signer)
        if signer in (document.get("signers") or []) or signer in (document.get("signatures") or {}):
            raise StatePreconditionError(f"{signer} has already signed document {document_id}")

        executed = any(
            int(e["documentId"]) == document_id for e in verified.find_all("DocumentExecuted")
        )
        stored = self.reconciler.record_signature(dao, document_id, signer, verified.tx_hash, executed)
        return {
            "success": True,
            "documentExecuted": executed,
            "signedCount": (stored or {}).get("signedCount", 0),
            "txHash": verified.tx_hash,
        }


def build_pipelines(
    verifier: TransactionVerifier,
    reconciler: DocumentReconciler,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, VerifyAndReconcile]:
    """One pipeline per entity collection, keyed by collection name."""
    return {
        "proposals": VerifyAndReconcile(PROPOSALS, verifier, reconciler, logger=logger),
        "claims": VerifyAndReconcile(CLAIMS, verifier, reconciler, logger=logger),
        "tasks": TaskPipeline(TASKS, verifier, reconciler, logger=logger),
        "events": VerifyAndReconcile(EVENTS, verifier, reconciler, logger=logger),
        "documents": DocumentPipeline(DOCUMENTS, verifier, reconciler, logger=logger),
        "announcements": VerifyAndReconcile(ANNOUNCEMENTS, verifier, reconciler, logger=logger),
    }
