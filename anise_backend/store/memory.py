"""
In-process document store.

Used by the test suite and for local development. A single lock serializes
writes, which gives the same per-document atomicity guarantees the backend
relies on from a hosted store.
"""
import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..exceptions import NotFoundError
from .base import (
    DELETE_FIELD, SERVER_TIMESTAMP, ArrayUnion, Document, DocumentStore, Filter,
    Increment, SUPPORTED_OPERATORS, WriteBatch, split_path,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryWriteBatch(WriteBatch):

    def __init__(self, store: "MemoryDocumentStore"):
        super().__init__()
        self._store = store

    def commit(self) -> None:
        self._store._commit(self._ops)
        self._ops = []


class MemoryDocumentStore(DocumentStore):
    """
    A dictionary-backed DocumentStore.

    Args:
        clock: Callable returning the datetime used for SERVER_TIMESTAMP
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._clock = clock or _utcnow

    @staticmethod
    def _key(path: str) -> str:
        parts = split_path(path)
        if len(parts) % 2 != 0:
            raise ValueError(f"Not a document path: {path}")
        return "/".join(parts)

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            data = self._docs.get(self._key(path))
            return copy.deepcopy(data) if data is not None else None

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._commit([("set", path, data, merge)])

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        self._commit([("update", path, fields, False)])

    def delete(self, path: str) -> None:
        self._commit([("delete", path, None, False)])

    def batch(self) -> WriteBatch:
        return MemoryWriteBatch(self)

    def _commit(self, ops: List[Tuple[str, str, Any, bool]]) -> None:
        with self._lock:
            # All-or-nothing: check preconditions before touching anything
            for op, path, _, _ in ops:
                if op == "update" and self._key(path) not in self._docs:
                    raise NotFoundError(f"No document to update: {path}")
            now = self._clock()
            for op, path, payload, merge in ops:
                key = self._key(path)
                if op == "delete":
                    self._docs.pop(key, None)
                elif op == "set":
                    if merge and key in self._docs:
                        target = self._docs[key]
                        self._deep_merge(target, payload, now)
                    else:
                        self._docs[key] = self._resolve(payload, None, now)
                else:
                    target = self._docs[key]
                    for field_path, value in payload.items():
                        self._apply_path(target, field_path.split("."), value, now)

    def _deep_merge(self, target: Dict[str, Any], data: Dict[str, Any], now: datetime) -> None:
        for key, value in data.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                self._deep_merge(target[key], value, now)
            elif value is DELETE_FIELD:
                target.pop(key, None)
            else:
                target[key] = self._resolve(value, target.get(key), now)

    def _apply_path(self, target: Dict[str, Any], parts: List[str], value: Any, now: datetime) -> None:
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        last = parts[-1]
        if value is DELETE_FIELD:
            target.pop(last, None)
        else:
            target[last] = self._resolve(value, target.get(last), now)

    def _resolve(self, value: Any, current: Any, now: datetime) -> Any:
        if value is SERVER_TIMESTAMP:
            return now
        if isinstance(value, Increment):
            base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
            return base + value.amount
        if isinstance(value, ArrayUnion):
            merged = list(current) if isinstance(current, list) else []
            for item in value.values:
                if item not in merged:
                    merged.append(item)
            return merged
        if isinstance(value, dict):
            return {k: self._resolve(v, None, now) for k, v in value.items() if v is not DELETE_FIELD}
        if isinstance(value, list):
            return [self._resolve(v, None, now) for v in value]
        return copy.deepcopy(value)

    # -- reads ---------------------------------------------------------------

    def _collection_docs(self, collection: str) -> List[Document]:
        parts = split_path(collection)
        if len(parts) % 2 != 1:
            raise ValueError(f"Not a collection path: {collection}")
        prefix = "/".join(parts) + "/"
        docs = []
        for key, data in self._docs.items():
            if key.startswith(prefix) and "/" not in key[len(prefix):]:
                docs.append(Document(id=key[len(prefix):], data=copy.deepcopy(data)))
        return docs

    @staticmethod
    def _field(data: Dict[str, Any], field_path: str) -> Any:
        value: Any = data
        for part in field_path.split("."):
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        return value

    @classmethod
    def _matches(cls, data: Dict[str, Any], filters: Sequence[Filter]) -> bool:
        for field_path, op, expected in filters:
            if op not in SUPPORTED_OPERATORS:
                raise ValueError(f"Unsupported operator: {op}")
            actual = cls._field(data, field_path)
            if op == "==":
                ok = actual == expected
            elif op == "!=":
                ok = actual is not None and actual != expected
            elif op == "in":
                ok = actual in expected
            elif op == "array-contains":
                ok = isinstance(actual, list) and expected in actual
            else:
                if actual is None:
                    return False
                try:
                    ok = {
                        "<": actual < expected,
                        "<=": actual <= expected,
                        ">": actual > expected,
                        ">=": actual >= expected,
                    }[op]
                except TypeError:
                    ok = False
            if not ok:
                return False
        return True

    def query(
        self,
        collection: str,
        where: Optional[Sequence[Filter]] = None,
        order_by: Optional[Sequence[Tuple[str, str]]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Document]:
        with self._lock:
            docs = [d for d in self._collection_docs(collection) if self._matches(d.data, where or [])]

        # Stable multi-key sort, last key first; missing values sort last
        for field_path, direction in reversed(list(order_by or [])):
            present = [d for d in docs if self._field(d.data, field_path) is not None]
            missing = [d for d in docs if self._field(d.data, field_path) is None]
            present.sort(key=lambda d: self._field(d.data, field_path), reverse=(direction == "desc"))
            docs = present + missing
        if not order_by:
            docs.sort(key=lambda d: d.id)

        if start_after is not None:
            ids = [d.id for d in docs]
            if start_after in ids:
                docs = docs[ids.index(start_after) + 1:]

        docs = docs[offset:]
        if limit is not None:
            docs = docs[:limit]
        return docs

    def count(self, collection: str, where: Optional[Sequence[Filter]] = None) -> int:
        with self._lock:
            return sum(1 for d in self._collection_docs(collection) if self._matches(d.data, where or []))
