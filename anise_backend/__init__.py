"""
Anise backend - verifies on-chain DAO actions and mirrors them into a document store.
"""
from .chain import EventLogDecoder, EventRegistry, ReceiptFetcher, TransactionVerifier, VerifiedTransaction
from .config import AbiLoader, NetworkConfig, Settings
from .exceptions import (
    AniseError, ConfigurationError, EventNotFoundError, FieldMismatchError, NotAuthenticatedError,
    NotFoundError, ProviderError, StatePreconditionError, TxNotFoundError, TxRevertedError,
    TxWrongDestinationError, ValidationError, VerificationError,
)
from .models import CallerIdentity, DecodedEvent, RawLog, TxReceipt
from .reconcile import DocumentReconciler, EntitySpec, VerifyAndReconcile
from .services import ServiceContainer, build_services
from .version import __version__

__all__ = [
    'EventLogDecoder', 'EventRegistry', 'ReceiptFetcher', 'TransactionVerifier', 'VerifiedTransaction',
    'AbiLoader', 'NetworkConfig', 'Settings',
    'AniseError', 'ConfigurationError', 'EventNotFoundError', 'FieldMismatchError',
    'NotAuthenticatedError', 'NotFoundError', 'ProviderError', 'StatePreconditionError',
    'TxNotFoundError', 'TxRevertedError', 'TxWrongDestinationError', 'ValidationError',
    'VerificationError',
    'CallerIdentity', 'DecodedEvent', 'RawLog', 'TxReceipt',
    'DocumentReconciler', 'EntitySpec', 'VerifyAndReconcile',
    'ServiceContainer', 'build_services',
    '__version__',
]
