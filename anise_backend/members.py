"""
DAO membership: join requests, admin decisions and member counts.

A join request is keyed by the applicant's wallet. Approval moves the wallet
from a pending request to an active member in a single batch, so the two
states never coexist.
"""
import logging
from typing import Any, Dict, Optional

from .chain.abi import EventRegistry
from .chain.verifier import TransactionVerifier, VerifiedTransaction
from .dao import ADMIN_ROLE, MEMBER_ROLE
from .exceptions import EventNotFoundError, NotFoundError, StatePreconditionError
from .models import CallerIdentity, TxRequest, parse_request
from .reconcile.checks import require_caller_wallet, require_sender_is_actor
from .reconcile.pipeline import module_address
from .store.base import SERVER_TIMESTAMP, ArrayUnion, DocumentStore, Increment, join_path
from .utils import normalize_address, to_checksum

logger = logging.getLogger(__name__)

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"


class MembershipService:
    """
    Verified membership transitions for DAOs.

    Args:
        verifier: Transaction verifier
        store: Document store
        logger: Optional logger instance
    """

    def __init__(self, verifier: TransactionVerifier, store: DocumentStore,
                 logger: Optional[logging.Logger] = None):
        self.verifier = verifier
        self.store = store
        self.registry = EventRegistry.for_modules("MemberModule")
        self.logger = logger or logging.getLogger(__name__)

    def _verify(self, dao: str, tx_hash: str, event: str, applicant: Optional[str] = None):
        module = module_address(self.store, dao, "MemberModule")
        verified = self.verifier.inspect(
            tx_hash, expected_to=module, event=event, registry=self.registry, emitter=module,
        )
        if applicant is None:
            return verified, verified.event
        for decoded in verified.find_all(event):
            if to_checksum(decoded["applicant"], "applicant") == applicant:
                return verified, decoded
        raise EventNotFoundError(
            f"Event {event} for {applicant} not found in transaction {verified.tx_hash}",
            {"txHash": verified.tx_hash, "event": event},
        )

    def _require_admin(self, dao: str, admin: str) -> None:
        member = self.store.get(join_path("daos", dao, "members", admin))
        if not member or member.get("role") != ADMIN_ROLE:
            raise StatePreconditionError(f"{admin} is not an admin of DAO {dao}")

    def _pending_request(self, dao: str, applicant: str) -> Dict[str, Any]:
        request = self.store.get(join_path("daos", dao, "joinRequests", applicant))
        if request is None:
            raise NotFoundError(f"No join request from {applicant} in DAO {dao}")
        if request.get("status") != PENDING:
            raise StatePreconditionError(
                f"Join request from {applicant} is already {request.get('status')}"
            )
        return request

    def request_join(self, dao: str, body: Any, identity: CallerIdentity) -> Dict[str, Any]:
        """
        Verify a JoinRequested transaction and store a pending join request.

        Raises:
            StatePreconditionError: If the wallet is already a member or has a pending request
        """
        dao = normalize_address(dao, "daoAddress")
        payload = parse_request(TxRequest, body)
        verified, event = self._verify(dao, payload.tx_hash, "JoinRequested")
        applicant = require_sender_is_actor(verified.receipt, event["applicant"])
        require_caller_wallet(identity, applicant)

        if self.store.exists(join_path("daos", dao, "members", applicant)):
            raise StatePreconditionError(f"{applicant} is already a member of DAO {dao}")
        existing = self.store.get(join_path("daos", dao, "joinRequests", applicant))
        if existing and existing.get("status") == PENDING:
            raise StatePreconditionError(f"{applicant} already has a pending join request")

        self.store.set(join_path("daos", dao, "joinRequests", applicant), {
            "applicant": applicant,
            "uid": identity.uid,
            "status": PENDING,
            "txHash": verified.tx_hash,
            "requestedAt": SERVER_TIMESTAMP,
        })
        self.logger.info(f"Join request from {applicant} for DAO {dao}")
        return {"success": True, "applicant": applicant, "status": PENDING, "txHash": verified.tx_hash}

    def _handle(self, dao: str, applicant: str, body: Any, identity: CallerIdentity, event_name: str):
        dao = normalize_address(dao, "daoAddress")
        applicant = normalize_address(applicant, "applicant")
        payload = parse_request(TxRequest, body)
        verified, event = self._verify(dao, payload.tx_hash, event_name, applicant=applicant)
        admin = require_sender_is_actor(verified.receipt, event["admin"])
        require_caller_wallet(identity, admin)
        self._require_admin(dao, admin)
        request = self._pending_request(dao, applicant)
        return dao, applicant, admin, request, verified

    def approve_join(self, dao: str, applicant: str, body: Any, identity: CallerIdentity) -> Dict[str, Any]:
        """
        Verify a JoinRequestApproved transaction and make the applicant a member.
        """
        dao, applicant, admin, request, verified = self._handle(
            dao, applicant, body, identity, "JoinRequestApproved",
        )
        uid = request.get("uid")

        batch = self.store.batch()
        batch.set(join_path("daos", dao, "members", applicant), {
            "uid": uid,
            "role": MEMBER_ROLE,
            "joinedAt": SERVER_TIMESTAMP,
            "txHash": verified.tx_hash,
        })
        batch.update(join_path("daos", dao, "joinRequests", applicant), self._handled(APPROVED, admin, verified))
        batch.update(join_path("daos", dao), {"memberCount": Increment(1)})
        if uid:
            batch.set(join_path("users", uid), {"daos": ArrayUnion([dao])}, merge=True)
        batch.commit()

        self.logger.info(f"{admin} approved {applicant} into DAO {dao}")
        return {"success": True, "applicant": applicant, "status": APPROVED, "txHash": verified.tx_hash}

    def reject_join(self, dao: str, applicant: str, body: Any, identity: CallerIdentity) -> Dict[str, Any]:
        """Verify a JoinRequestRejected transaction and close the request."""
        dao, applicant, admin, _, verified = self._handle(
            dao, applicant, body, identity, "JoinRequestRejected",
        )
        self.store.update(
            join_path("daos", dao, "joinRequests", applicant), self._handled(REJECTED, admin, verified),
        )
        self.logger.info(f"{admin} rejected {applicant} from DAO {dao}")
        return {"success": True, "applicant": applicant, "status": REJECTED, "txHash": verified.tx_hash}

    @staticmethod
    def _handled(status: str, admin: str, verified: VerifiedTransaction) -> Dict[str, Any]:
        return {
            "status": status,
            "handledBy": admin,
            "handledTxHash": verified.tx_hash,
            "handledAt": SERVER_TIMESTAMP,
        }

    def recount_members(self, dao: str) -> int:
        """Recompute memberCount of one DAO from its members collection."""
        dao = normalize_address(dao, "daoAddress")
        count = self.store.count(join_path("daos", dao, "members"))
        self.store.update(join_path("daos", dao), {"memberCount": count})
        self.logger.info(f"Updated DAO {dao} with {count} members")
        return count

    def recount_all_members(self) -> Dict[str, int]:
        counts = {}
        for dao in self.store.list_ids("daos"):
            counts[dao] = self.recount_members(dao)
        self.logger.info(f"Updated member counts for {len(counts)} DAOs")
        return counts
