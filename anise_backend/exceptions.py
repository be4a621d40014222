"""
Exceptions for the Anise backend.

Every failure a request can end with is one of these classes. The HTTP layer
maps them to status codes; nothing else should need to know about them.
"""
from typing import Any, Dict, List, Optional


class AniseError(Exception):
    """Base exception for all Anise backend errors."""

    code = "ANISE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(AniseError):
    """Raised when static configuration (networks, ABIs, settings) is invalid."""

    code = "CONFIGURATION_ERROR"


class ValidationError(AniseError):
    """Raised when a request body is missing fields or has malformed values."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.errors = errors or []
        super().__init__(message, {"errors": self.errors})


class VerificationError(AniseError):
    """Base class for failures of the on-chain verification gates."""

    code = "VERIFICATION_ERROR"
    retryable = False


class TxNotFoundError(VerificationError):
    """Raised when no receipt exists for a transaction (unknown or not yet mined)."""

    code = "TX_NOT_FOUND"
    retryable = True


class TxRevertedError(VerificationError):
    """Raised when the transaction was mined but reverted."""

    code = "TX_REVERTED"


class TxWrongDestinationError(VerificationError):
    """Raised when the transaction was sent to an unexpected contract."""

    code = "TX_WRONG_DESTINATION"


class EventNotFoundError(VerificationError):
    """Raised when no log in the receipt decodes to the expected event."""

    code = "EVENT_NOT_FOUND"


class FieldMismatchError(AniseError):
    """Raised when a decoded on-chain value disagrees with the submitted payload."""

    code = "FIELD_MISMATCH"

    def __init__(self, message: str, field: Optional[str] = None,
                 expected: Any = None, actual: Any = None):
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(message, {"field": field})


class StatePreconditionError(AniseError):
    """Raised when the persisted entity state forbids the requested transition."""

    code = "STATE_PRECONDITION"


class NotAuthenticatedError(AniseError):
    """Raised when the caller identity is missing or invalid."""

    code = "NOT_AUTHENTICATED"


class NotFoundError(AniseError):
    """Raised when an entity or document does not exist."""

    code = "NOT_FOUND"


class ProviderError(AniseError):
    """Raised when an external provider (payment provider or RPC node) fails or rejects a call."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None,
                 error_type: Optional[str] = None):
        self.status_code = status_code
        self.error_type = error_type
        super().__init__(message, {"status_code": status_code, "error_type": error_type})
