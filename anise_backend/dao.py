"""
DAO creation.

A DAO document is created from a verified DaoFactory transaction. The DAO
address comes from the DaoCreated event; the creator becomes its first Admin.
"""
import logging
from typing import Any, Dict, Optional

from .chain.abi import EventRegistry
from .chain.verifier import TransactionVerifier
from .exceptions import ConfigurationError, FieldMismatchError, NotFoundError, StatePreconditionError
from .models import CallerIdentity, CreateDaoRequest, parse_request
from .reconcile.checks import require_caller_wallet, require_sender_is_actor
from .store.base import SERVER_TIMESTAMP, ArrayUnion, DocumentStore, join_path
from .utils import normalize_address, to_checksum

logger = logging.getLogger(__name__)

ADMIN_ROLE = "Admin"
MEMBER_ROLE = "Member"


class DaoService:
    """
    Creates DAO documents from verified factory transactions.

    Args:
        verifier: Transaction verifier
        store: Document store
        factory_address: DaoFactory contract; the transaction must target it and
            DaoCreated must be emitted by it. DAO creation is refused while unset.
        logger: Optional logger instance
    """

    def __init__(
        self,
        verifier: TransactionVerifier,
        store: DocumentStore,
        factory_address: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.verifier = verifier
        self.store = store
        self.factory_address = factory_address
        self.registry = EventRegistry.for_modules("DaoFactory")
        self.logger = logger or logging.getLogger(__name__)

    def create_dao(self, body: Any, identity: CallerIdentity) -> Dict[str, Any]:
        """
        Verify a DaoCreated transaction and cache the DAO.

        Args:
            body: CreateDaoRequest JSON (metadata, modules, txHash, creatorUid)
            identity: Verified caller

        Returns:
            {"success": True, "daoAddress": ..., "txHash": ...}

        Raises:
            ConfigurationError: If no DaoFactory address is configured
            FieldMismatchError: If creatorUid names another user or the creator is not the caller
            StatePreconditionError: If the DAO is already cached from another transaction
        """
        if not self.factory_address:
            raise ConfigurationError("No DaoFactory address configured for this network")
        payload = parse_request(CreateDaoRequest, body)
        if payload.creator_uid and payload.creator_uid != identity.uid:
            raise FieldMismatchError(
                "creatorUid does not match the authenticated user",
                field="creatorUid", expected=identity.uid, actual=payload.creator_uid,
            )

        # 1. Verify the factory transaction
        verified = self.verifier.inspect(
            payload.tx_hash, expected_to=self.factory_address, event="DaoCreated",
            registry=self.registry, emitter=self.factory_address,
        )
        event = verified.event
        dao_address = to_checksum(event["dao"], "dao")
        creator = require_sender_is_actor(verified.receipt, event["creator"])
        if identity.wallet_address:
            require_caller_wallet(identity, creator)

        # 2. DAO, creator membership and the user's DAO list in one batch
        dao_path = join_path("daos", dao_address)
        existing = self.store.get(dao_path)
        if existing is not None:
            if existing.get("txHash") != verified.tx_hash:
                raise StatePreconditionError(f"DAO {dao_address} is already registered")
            self.logger.info(f"DAO {dao_address} already cached from {verified.tx_hash}")
            return {"success": True, "daoAddress": dao_address, "txHash": verified.tx_hash}
        batch = self.store.batch()
        batch.set(dao_path, {
            "daoAddress": dao_address,
            "creator": creator,
            "metadata": payload.metadata,
            "modules": payload.modules,
            "txHash": verified.tx_hash,
            "blockNumber": verified.receipt.block_number,
            "memberCount": 1,
            "createdAt": SERVER_TIMESTAMP,
        })
        batch.set(join_path(dao_path, "members", creator), {
            "uid": identity.uid,
            "role": ADMIN_ROLE,
            "joinedAt": SERVER_TIMESTAMP,
            "txHash": verified.tx_hash,
        })
        batch.set(join_path("users", identity.uid), {"daos": ArrayUnion([dao_address])}, merge=True)
        batch.commit()

        self.logger.info(f"Cached DAO {dao_address} created by {creator} in {verified.tx_hash}")
        return {"success": True, "daoAddress": dao_address, "txHash": verified.tx_hash}

    def get_dao(self, dao: str) -> Dict[str, Any]:
        dao = normalize_address(dao, "daoAddress")
        data = self.store.get(join_path("daos", dao))
        if data is None:
            raise NotFoundError(f"DAO {dao} not found")
        return {"id": dao, **data}
