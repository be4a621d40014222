"""
Document store abstraction.

The backend treats its database as a generic key/document store. Paths are
slash separated ("daos/0xAbc/proposals/7"); a collection path has an odd
number of segments, a document path an even number. Update keys may be dotted
field paths ("votes.0xDef.approve") so that sibling fields are left untouched.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Sentinel replaced by the store's clock at write time."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


class _DeleteField:
    """Sentinel that removes a field in an update."""

    def __repr__(self) -> str:
        return "DELETE_FIELD"


SERVER_TIMESTAMP = _ServerTimestamp()
DELETE_FIELD = _DeleteField()


@dataclass(frozen=True)
class Increment:
    """Atomic numeric increment of a field."""
    amount: int = 1


@dataclass(frozen=True)
class ArrayUnion:
    """Atomic set-union of values into an array field."""
    values: Tuple[Any, ...]

    def __init__(self, values: Iterable[Any]):
        object.__setattr__(self, "values", tuple(values))


@dataclass
class Document:
    """A document id with its data."""
    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self, id_field: str = "id") -> Dict[str, Any]:
        return {id_field: self.id, **self.data}


# (field, operator, value)
Filter = Tuple[str, str, Any]
SUPPORTED_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in", "array-contains")


def split_path(path: str) -> List[str]:
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts:
        raise ValueError("Empty document path")
    return parts


def join_path(*parts: Any) -> str:
    return "/".join(str(p).strip("/") for p in parts)


class WriteBatch(ABC):
    """
    A group of writes committed atomically.

    Writes are queued by set/update/delete and applied by commit(); if any
    update targets a missing document nothing is written.
    """

    def __init__(self):
        self._ops: List[Tuple[str, str, Any, bool]] = []

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> "WriteBatch":
        self._ops.append(("set", path, data, merge))
        return self

    def update(self, path: str, fields: Dict[str, Any]) -> "WriteBatch":
        self._ops.append(("update", path, fields, False))
        return self

    def delete(self, path: str) -> "WriteBatch":
        self._ops.append(("delete", path, None, False))
        return self

    def __len__(self) -> int:
        return len(self._ops)

    @abstractmethod
    def commit(self) -> None:
        pass


class DocumentStore(ABC):
    """
    Abstract base class for document store implementations.

    Implementations must apply a single update() atomically and must merge
    dotted field paths into the existing document instead of overwriting it.
    """

    @abstractmethod
    def get(self, path: str) -> Optional[Dict[str, Any]]:
        """
        Read a document.

        Returns:
            The document data, or None if it does not exist
        """
        pass

    @abstractmethod
    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        """
        Create or overwrite a document (or deep-merge into it when merge=True).
        """
        pass

    @abstractmethod
    def update(self, path: str, fields: Dict[str, Any]) -> None:
        """
        Partially update an existing document.

        Raises:
            NotFoundError: If the document does not exist
        """
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        pass

    @abstractmethod
    def query(
        self,
        collection: str,
        where: Optional[Sequence[Filter]] = None,
        order_by: Optional[Sequence[Tuple[str, str]]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        start_after: Optional[str] = None,
    ) -> List[Document]:
        """
        Query a collection.

        Args:
            collection: Collection path
            where: Filters as (field, operator, value) tuples
            order_by: Sort keys as (field, "asc"|"desc") tuples
            offset: Number of matching documents to skip
            limit: Maximum number of documents to return
            start_after: Id of a document in the collection to use as cursor;
                ignored if that document does not exist

        Returns:
            Matching documents in order
        """
        pass

    @abstractmethod
    def count(self, collection: str, where: Optional[Sequence[Filter]] = None) -> int:
        pass

    @abstractmethod
    def batch(self) -> WriteBatch:
        pass

    def exists(self, path: str) -> bool:
        return self.get(path) is not None

    def list_ids(self, collection: str) -> List[str]:
        return [doc.id for doc in self.query(collection)]
