"""
Google Cloud Firestore implementation of the DocumentStore.

Requires the optional dependency group:
    pip install anise-backend[firestore]
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..exceptions import NotFoundError
from ._deps import ensure_firestore_installed
from .base import (
    DELETE_FIELD, SERVER_TIMESTAMP, ArrayUnion, Document, DocumentStore, Filter,
    Increment, WriteBatch,
)

logger = logging.getLogger(__name__)


def _to_native(value: Any) -> Any:
    """Translate store sentinels into Firestore transforms."""
    from google.cloud import firestore

    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if value is DELETE_FIELD:
        return firestore.DELETE_FIELD
    if isinstance(value, Increment):
        return firestore.Increment(value.amount)
    if isinstance(value, ArrayUnion):
        return firestore.ArrayUnion(list(value.values))
    if isinstance(value, dict):
        return {k: _to_native(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_native(v) for v in value]
    return value


def _field_updates(fields: Dict[str, Any]) -> Dict[str, Any]:
    # Address segments start with a digit and must be quoted in field paths
    from google.cloud.firestore_v1.field_path import FieldPath

    return {FieldPath(*key.split(".")).to_api_repr(): _to_native(value) for key, value in fields.items()}


class FirestoreWriteBatch(WriteBatch):

    def __init__(self, store: "FirestoreDocumentStore"):
        super().__init__()
        self._store = store

    def commit(self) -> None:
        from google.api_core.exceptions import NotFound

        client = self._store.client
        batch = client.batch()
        for op, path, payload, merge in self._ops:
            ref = client.document(path)
            if op == "set":
                batch.set(ref, _to_native(payload), merge=merge)
            elif op == "update":
                batch.update(ref, _field_updates(payload))
            else:
                batch.delete(ref)
        try:
            batch.commit()
        except NotFound as e:
            raise NotFoundError(f"Batch update targeted a missing document: {e}")
        self._ops = []


class FirestoreDocumentStore(DocumentStore):
    """
    DocumentStore backed by google-cloud-firestore.

    Args:
        client: An existing firestore.Client; created from the environment if omitted
        project: Google Cloud project id used when creating the client
    """

    def __init__(self, client=None, project: Optional[str] = None):
        ensure_firestore_installed()
        from google.cloud import firestore

        self.client = client or firestore.Client(project=project)

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        snapshot = self.client.document(path).get()
        return snapshot.to_dict() if snapshot.exists else None

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.client.document(path).set(_to_native(data), merge=merge)

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        from google.api_core.exceptions import NotFound

        try:
            self.client.document(path).update(_field_updates(fields))
        except NotFound:
            raise NotFoundError(f"No document to update: {path}")

    def delete(self, path: str) -> None:
        self.client.document(path).delete()

    def _build_query(self, collection: str, where: Optional[Sequence[Filter]]):
        from google.cloud.firestore_v1.base_query import FieldFilter

        query = self.client.collection(collection)
        for field_path, op, value in where or []:
            query = query.where(filter=FieldFilter(field_path, op, value))
        return query

    def query(
        self,
        collection: str,
        where: Optional[Sequence[Filter]] = None,
        order_by: Optional[Sequence[Tuple[str, str]]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Document]:
        from google.cloud import firestore

        query = self._build_query(collection, where)
        for field_path, direction in order_by or []:
            query = query.order_by(
                field_path,
                direction=firestore.Query.DESCENDING if direction == "desc" else firestore.Query.ASCENDING,
            )
        if start_after:
            cursor = self.client.collection(collection).document(start_after).get()
            if cursor.exists:
                query = query.start_after(cursor)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return [Document(id=snap.id, data=snap.to_dict() or {}) for snap in query.stream()]

    def count(self, collection: str, where: Optional[Sequence[Filter]] = None) -> int:
        result = self._build_query(collection, where).count().get()
        return int(result[0][0].value)

    def batch(self) -> WriteBatch:
        return FirestoreWriteBatch(self)
