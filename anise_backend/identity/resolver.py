"""
Caller identity resolution.

The identity provider issues bearer tokens whose subject ("uid", falling back
to "sub") is the stable user id. The linked wallet is looked up from the
user's profile document.
"""
import logging
from typing import Any, Dict, Optional

from ..exceptions import FieldMismatchError, NotAuthenticatedError
from ..models import CallerIdentity
from ..store.base import DocumentStore, join_path
from ..utils import to_checksum
from .jwt_util import verify_jwt_token

logger = logging.getLogger(__name__)


def parse_bearer(authorization: Optional[str]) -> str:
    """
    Extract the token from an "Authorization: Bearer <token>" header value.

    Raises:
        NotAuthenticatedError: If the header is missing or malformed
    """
    if not authorization:
        raise NotAuthenticatedError("Missing Authorization header")
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise NotAuthenticatedError("Authorization header must be 'Bearer <token>'")
    return token.strip()


class IdentityResolver:
    """
    Turns a bearer token into a CallerIdentity.

    Args:
        store: Document store holding users/{uid}
        env_tier: Token verification tier
        jwt_secret: Token signing secret
    """

    def __init__(self, store: DocumentStore, env_tier: Optional[str] = None,
                 jwt_secret: Optional[str] = None, logger: Optional[logging.Logger] = None):
        self.store = store
        self.env_tier = env_tier
        self.jwt_secret = jwt_secret
        self.logger = logger or logging.getLogger(__name__)

    def claims(self, authorization: Optional[str]) -> Dict[str, Any]:
        token = parse_bearer(authorization)
        claims = verify_jwt_token(token, env_tier=self.env_tier, jwt_secret=self.jwt_secret)
        if not claims:
            raise NotAuthenticatedError("Invalid or expired token")
        return claims

    def resolve(self, authorization: Optional[str]) -> CallerIdentity:
        """
        Verify the bearer token and load the caller's linked wallet.

        Raises:
            NotAuthenticatedError: If the token is missing, invalid or has no subject
        """
        claims = self.claims(authorization)
        uid = claims.get("uid") or claims.get("sub")
        if not uid:
            raise NotAuthenticatedError("Token has no subject")

        profile = self.store.get(join_path("users", uid)) or {}
        wallet = (profile.get("wallet") or {}).get("address")
        if wallet:
            try:
                wallet = to_checksum(wallet, "wallet")
            except FieldMismatchError:
                self.logger.warning(f"User {uid} has a malformed linked wallet, ignoring it")
                wallet = None
        return CallerIdentity(uid=uid, wallet_address=wallet, profile=profile)
