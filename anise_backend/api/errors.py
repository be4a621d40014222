"""
Mapping of backend errors to HTTP responses.
"""
import logging
from typing import Tuple

from flask import Flask, jsonify

from ..exceptions import (
    AniseError, ConfigurationError, FieldMismatchError, NotAuthenticatedError, NotFoundError,
    ProviderError, StatePreconditionError, ValidationError, VerificationError,
)

logger = logging.getLogger(__name__)

# Most specific first
STATUS_CODES = (
    (ValidationError, 400),
    (NotAuthenticatedError, 401),
    (NotFoundError, 404),
    (StatePreconditionError, 409),
    (FieldMismatchError, 422),
    (VerificationError, 422),
    (ProviderError, 502),
    (ConfigurationError, 500),
)


def status_for(error: AniseError) -> int:
    for error_class, status in STATUS_CODES:
        if isinstance(error, error_class):
            return status
    return 400


def error_response(error: AniseError) -> Tuple:
    body = {"error": error.message, "code": error.code}
    if isinstance(error, ValidationError) and error.errors:
        body["errors"] = error.errors
    if isinstance(error, VerificationError):
        body["retryable"] = error.retryable
    if isinstance(error, FieldMismatchError) and error.field:
        body["field"] = error.field
    return jsonify(body), status_for(error)


def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(AniseError)
    def handle_anise_error(error: AniseError):
        status = status_for(error)
        if status >= 500:
            logger.error(f"{error.code}: {error.message}")
        else:
            logger.info(f"Request rejected with {status} {error.code}: {error.message}")
        return error_response(error)
