"""
Document store layer for the Anise backend.

The in-memory store has no extra dependencies; the Firestore adapter imports
without google-cloud-firestore but needs it at construction:
    pip install anise-backend[firestore]
"""
from .base import (
    DELETE_FIELD, SERVER_TIMESTAMP, ArrayUnion, Document, DocumentStore, Increment,
    WriteBatch, join_path,
)
from .firestore import FirestoreDocumentStore
from .memory import MemoryDocumentStore
from ._deps import ensure_firestore_installed

__all__ = [
    'DocumentStore', 'WriteBatch', 'Document', 'MemoryDocumentStore', 'FirestoreDocumentStore',
    'SERVER_TIMESTAMP', 'DELETE_FIELD', 'Increment', 'ArrayUnion', 'join_path',
    'ensure_firestore_installed',
]
