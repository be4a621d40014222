"""
Import guard for the optional Firestore extra.

Kept apart from firestore.py so the store package imports without it.
"""
import logging

logger = logging.getLogger(__name__)


def ensure_firestore_installed():
    """
    Raise ImportError with install instructions unless google-cloud-firestore is importable.
    """
    try:
        import google.cloud.firestore  # noqa: F401
        return True
    except ImportError:
        raise ImportError(
            "FirestoreDocumentStore needs google-cloud-firestore. "
            "Install it with: pip install anise-backend[firestore]"
        )
