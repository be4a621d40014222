"""
Mirrors verified on-chain results into the document store.

Documents live at daos/{dao}/{collection}/{id}, keyed by the chain-assigned
integer id. Transitions are partial updates on dotted field paths so that a
concurrent write to a sibling field (another voter's entry) is never clobbered.
"""
import logging
from typing import Any, Dict, Optional

from ..exceptions import NotFoundError
from ..store.base import SERVER_TIMESTAMP, ArrayUnion, DocumentStore, Increment, join_path
from .checks import Finalization

logger = logging.getLogger(__name__)


class DocumentReconciler:
    """
    Applies verified results as document mutations.

    Args:
        store: Document store
        logger: Optional logger instance
    """

    def __init__(self, store: DocumentStore, logger: Optional[logging.Logger] = None):
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def path(dao: str, collection: str, entity_id: Any) -> str:
        return join_path("daos", dao, collection, str(entity_id))

    def load(self, dao: str, collection: str, entity_id: Any) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the entity does not exist
        """
        document = self.store.get(self.path(dao, collection, entity_id))
        if document is None:
            raise NotFoundError(f"{collection} {entity_id} not found in DAO {dao}")
        return document

    def create_entity(self, dao: str, collection: str, entity_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an entity document keyed by its on-chain id.

        A second create for the same id overwrites the first.

        Returns:
            The stored document
        """
        path = self.path(dao, collection, entity_id)
        if self.store.exists(path):
            self.logger.warning(f"Replacing existing document {path}")
        data = {**fields, "createdAt": SERVER_TIMESTAMP}
        self.store.set(path, data)
        self.logger.info(f"Created {path}")
        return self.store.get(path)

    def record_vote(
        self,
        dao: str,
        collection: str,
        entity_id: int,
        voter: str,
        approve: bool,
        tx_hash: str,
        finalization: Optional[Finalization] = None,
    ) -> str:
        """
        Record one vote, and the finalized status if the same transaction finalized the item.

        Returns:
            The entity status after the update
        """
        path = self.path(dao, collection, entity_id)
        fields: Dict[str, Any] = {
            f"votes.{voter}": {"approve": bool(approve), "timestamp": SERVER_TIMESTAMP, "txHash": tx_hash},
            "voters": ArrayUnion([voter]),
            "approvals" if approve else "rejections": Increment(1),
            "updatedAt": SERVER_TIMESTAMP,
        }
        if finalization is not None:
            fields.update({
                "status": finalization.status,
                "finalizedAt": SERVER_TIMESTAMP,
                "finalizedTxHash": finalization.tx_hash,
            })
        self.store.update(path, fields)
        status = finalization.status if finalization else (self.store.get(path) or {}).get("status")
        self.logger.info(f"Recorded {'approve' if approve else 'reject'} vote by {voter} on {path}")
        return status

    def record_signature(self, dao: str, document_id: int, signer: str, tx_hash: str, executed: bool = False) -> Dict[str, Any]:
        """Record a document signature; mark it executed when the same transaction executed it."""
        path = self.path(dao, "documents", document_id)
        fields: Dict[str, Any] = {
            f"signatures.{signer}": {"timestamp": SERVER_TIMESTAMP, "txHash": tx_hash},
            "signers": ArrayUnion([signer]),
            "signedCount": Increment(1),
            "updatedAt": SERVER_TIMESTAMP,
        }
        if executed:
            fields.update({"isExecuted": True, "executedAt": SERVER_TIMESTAMP, "executedTxHash": tx_hash})
        self.store.update(path, fields)
        self.logger.info(f"Recorded signature by {signer} on {path}")
        return self.store.get(path)

    def apply_update(self, dao: str, collection: str, entity_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        path = self.path(dao, collection, entity_id)
        self.store.update(path, {**fields, "updatedAt": SERVER_TIMESTAMP})
        self.logger.info(f"Updated {path}: {', '.join(sorted(fields))}")
        return self.store.get(path)

    def delete_entity(self, dao: str, collection: str, entity_id: int) -> None:
        path = self.path(dao, collection, entity_id)
        if not self.store.exists(path):
            raise NotFoundError(f"{collection} {entity_id} not found in DAO {dao}")
        self.store.delete(path)
        self.logger.info(f"Deleted {path}")
