"""
Bearer-token authentication for Flask views.
"""
from functools import wraps

from flask import current_app, g, request

from ..models import CallerIdentity


def services():
    """The ServiceContainer of the running app."""
    return current_app.extensions["anise"]


def require_identity(view):
    """Resolve the caller from the Authorization header into g.identity."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        g.identity = services().identity.resolve(request.headers.get("Authorization"))
        return view(*args, **kwargs)

    return wrapper


def current_identity() -> CallerIdentity:
    return g.identity


def json_body():
    """Request body as decoded JSON; None when absent or not JSON."""
    return request.get_json(silent=True)
