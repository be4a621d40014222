"""
Generic verify-then-reconcile pipeline.

Every mutating endpoint for a DAO entity runs the same sequence:

1. validate the request body
2. verify the transaction and locate the expected event
3. check the decoded event against the caller and the payload
4. check the persisted state (transitions only)
5. write the document

An EntitySpec supplies the entity-specific parts; nothing is written unless
every earlier step succeeds.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Type

from ..chain.abi import EventRegistry
from ..chain.verifier import TransactionVerifier, VerifiedTransaction
from ..exceptions import EventNotFoundError, NotFoundError, ValidationError
from ..models import CallerIdentity, DecodedEvent, TxRequest, VoteRequest, parse_request
from ..store.base import DocumentStore, join_path
from ..utils import normalize_address
from .checks import (
    detect_finalization, require_caller_wallet, require_echoes, require_not_creator,
    require_not_voted, require_sender_is_actor, require_status, require_vote_matches,
)
from .reconciler import DocumentReconciler

logger = logging.getLogger(__name__)

# (payload, event, verified, identity) -> document fields
DocumentBuilder = Callable[[Any, DecodedEvent, VerifiedTransaction, CallerIdentity], Dict[str, Any]]

PENDING = "pending"


@dataclass(frozen=True)
class EntitySpec:
    """Everything that differs between entity kinds."""
    name: str
    collection: str
    module: str
    id_arg: str
    id_field: str
    create_event: str
    create_model: Type[TxRequest]
    build_document: DocumentBuilder
    actor_arg: str = "creator"
    creator_field: str = "creator"
    echo_fields: Mapping[str, str] = field(default_factory=dict)
    update_event: Optional[str] = None
    update_model: Optional[Type[TxRequest]] = None
    build_update: Optional[DocumentBuilder] = None
    update_echo_fields: Mapping[str, str] = field(default_factory=dict)
    update_actor_arg: str = "updatedBy"
    delete_event: Optional[str] = None
    delete_actor_arg: str = "deletedBy"
    vote_event: Optional[str] = None
    voter_arg: str = "voter"
    vote_arg: str = "approve"
    finalize_event: Optional[str] = None
    finalize_outcome_arg: str = "approved"


def parse_entity_id(entity_id: Any) -> int:
    """Entity ids are the chain-assigned unsigned integers."""
    try:
        value = int(str(entity_id))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid id: {entity_id!r}", [{"field": "id", "error": "must be an integer"}])
    if value < 0:
        raise ValidationError(f"Invalid id: {entity_id!r}", [{"field": "id", "error": "must not be negative"}])
    return value


def module_address(store: DocumentStore, dao: str, module: str) -> str:
    """
    Contract address of a module installed in a DAO.

    Raises:
        NotFoundError: If the DAO does not exist or has no address for the module
    """
    dao_doc = store.get(join_path("daos", dao))
    if dao_doc is None:
        raise NotFoundError(f"DAO {dao} not found")
    entry = (dao_doc.get("modules") or {}).get(module)
    address = entry.get("address") if isinstance(entry, dict) else None
    if not address:
        raise NotFoundError(f"DAO {dao} has no {module} installed")
    return address


class VerifyAndReconcile:
    """
    Runs verification and reconciliation for one entity kind.

    Args:
        spec: Entity description
        verifier: Transaction verifier
        reconciler: Document reconciler
        registry: Compiled ABI; loaded from the spec's module when omitted
        logger: Optional logger instance
    """

    def __init__(
        self,
        spec: EntitySpec,
        verifier: TransactionVerifier,
        reconciler: DocumentReconciler,
        registry: Optional[EventRegistry] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.spec = spec
        self.verifier = verifier
        self.reconciler = reconciler
        self.registry = registry or EventRegistry.for_modules(spec.module)
        self.logger = logger or logging.getLogger(__name__)

    # -- helpers ---------------------------------------------------------------

    def module_address(self, dao: str) -> str:
        return module_address(self.reconciler.store, dao, self.spec.module)

    def _verify(self, dao: str, tx_hash: str, event: str) -> VerifiedTransaction:
        module = self.module_address(dao)
        return self.verifier.inspect(
            tx_hash, expected_to=module, event=event, registry=self.registry, emitter=module,
        )

    def _event_for(self, verified: VerifiedTransaction, event: str, entity_id: int) -> DecodedEvent:
        """The occurrence of an event that refers to this entity."""
        for decoded in verified.find_all(event):
            if int(decoded[self.spec.id_arg]) == entity_id:
                return decoded
        raise EventNotFoundError(
            f"Event {event} for {self.spec.name} {entity_id} not found in transaction {verified.tx_hash}",
            {"txHash": verified.tx_hash, "event": event},
        )

    def _actor(self, verified: VerifiedTransaction, event: DecodedEvent, arg: str, identity: CallerIdentity) -> str:
        actor = require_sender_is_actor(verified.receipt, event[arg])
        return require_caller_wallet(identity, actor)

    def _require_operation(self, event: Optional[str], operation: str) -> str:
        if not event:
            raise NotFoundError(f"{self.spec.name} does not support {operation}")
        return event

    # -- operations ------------------------------------------------------------

    def create(self, dao: str, body: Any, identity: CallerIdentity) -> Dict[str, Any]:
        """
        Verify a creation transaction and store the new entity.

        Returns:
            {"success", "entityId", <id field>, "txHash", <entity name>: document}
        """
        spec = self.spec
        dao = normalize_address(dao, "daoAddress")
        payload = parse_request(spec.create_model, body)
        verified = self._verify(dao, payload.tx_hash, spec.create_event)
        event = verified.event
        actor = self._actor(verified, event, spec.actor_arg, identity)
        require_echoes(payload.model_dump(), event.args, spec.echo_fields)

        entity_id = int(event[spec.id_arg])
        document = spec.build_document(payload, event, verified, identity)
        document.update({
            spec.id_field: entity_id,
            spec.creator_field: actor,
            "createdBy": identity.uid,
            "txHash": verified.tx_hash,
            "blockNumber": verified.receipt.block_number,
        })
        stored = self.reconciler.create_entity(dao, spec.collection, entity_id, document)
        self.logger.info(f"Created {spec.name} {entity_id} in DAO {dao} from {verified.tx_hash}")
        return {
            "success": True,
            "entityId": str(entity_id),
            spec.id_field: str(entity_id),
            "txHash": verified.tx_hash,
            spec.name: {spec.id_field: str(entity_id), **(stored or {})},
        }

    def vote(self, dao: str, entity_id: Any, body: Any, identity: CallerIdentity) -> Dict[str, Any]:
        """
        Verify a vote transaction and record it, together with finalization if present.

        Returns:
            {"success", "isFinalized", "status", "txHash"}
        """
        spec = self.spec
        vote_event = self._require_operation(spec.vote_event, "voting")
        dao = normalize_address(dao, "daoAddress")
        entity_id = parse_entity_id(entity_id)
        payload = parse_request(VoteRequest, body)

        verified = self._verify(dao, payload.tx_hash, vote_event)
        event = self._event_for(verified, vote_event, entity_id)
        voter = self._actor(verified, event, spec.voter_arg, identity)
        require_vote_matches(payload.vote_type, event[spec.vote_arg])

        document = self.reconciler.load(dao, spec.collection, entity_id)
        require_status(document, PENDING)
        require_not_creator(document, voter, spec.creator_field)
        require_not_voted(document, voter)

        finalization = None
        if spec.finalize_event:
            finalization = detect_finalization(
                verified, spec.finalize_event, spec.id_arg, entity_id, spec.finalize_outcome_arg,
            )
        status = self.reconciler.record_vote(
            dao, spec.collection, entity_id, voter, bool(event[spec.vote_arg]), verified.tx_hash, finalization,
        )
        return {
            "success": True,
            "isFinalized": finalization is not None,
            "status": status,
            "txHash": verified.tx_hash,
        }

    def update(self, dao: str, entity_id: Any, body: Any, identity: CallerIdentity) -> Dict[str, Any]:
        """Verify an update transaction and apply the new field values."""
        spec = self.spec
        update_event = self._require_operation(spec.update_event, "updates")
        dao = normalize_address(dao, "daoAddress")
        entity_id = parse_entity_id(entity_id)
        payload = parse_request(spec.update_model or spec.create_model, body)

        verified = self._verify(dao, payload.tx_hash, update_event)
        event = self._event_for(verified, update_event, entity_id)
        actor = self._actor(verified, event, spec.update_actor_arg, identity)
        require_echoes(payload.model_dump(), event.args, spec.update_echo_fields)

        self.reconciler.load(dao, spec.collection, entity_id)
        builder = spec.build_update or spec.build_document
        fields = builder(payload, event, verified, identity)
        fields.update({"updatedBy": actor, "lastTxHash": verified.tx_hash})
        stored = self.reconciler.apply_update(dao, spec.collection, entity_id, fields)
        return {"success": True, spec.name: {spec.id_field: str(entity_id), **(stored or {})}}

    def delete(self, dao: str, entity_id: Any, body: Any, identity: CallerIdentity) -> Dict[str, Any]:
        """Verify a delete transaction and remove the entity document."""
        spec = self.spec
        delete_event = self._require_operation(spec.delete_event, "deletion")
        dao = normalize_address(dao, "daoAddress")
        entity_id = parse_entity_id(entity_id)
        payload = parse_request(TxRequest, body)

        verified = self._verify(dao, payload.tx_hash, delete_event)
        event = self._event_for(verified, delete_event, entity_id)
        self._actor(verified, event, spec.delete_actor_arg, identity)

        self.reconciler.delete_entity(dao, spec.collection, entity_id)
        return {"success": True, "txHash": verified.tx_hash}
