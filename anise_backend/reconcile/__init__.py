"""
Verification-to-document reconciliation for DAO entities.
"""
from .checks import Finalization
from .entities import (
    ANNOUNCEMENTS, CLAIMS, DOCUMENTS, EVENTS, PROPOSALS, TASKS, DocumentPipeline,
    TaskPipeline, build_pipelines,
)
from .pipeline import EntitySpec, VerifyAndReconcile
from .reconciler import DocumentReconciler

__all__ = [
    'Finalization', 'EntitySpec', 'VerifyAndReconcile', 'DocumentReconciler',
    'TaskPipeline', 'DocumentPipeline', 'build_pipelines',
    'PROPOSALS', 'CLAIMS', 'TASKS', 'EVENTS', 'DOCUMENTS', 'ANNOUNCEMENTS',
]
