"""
Caller identity: bearer token verification, profile lookup and wallet linking.
"""
from .jwt_util import (
    ENV_TIER_DEVELOPMENT, ENV_TIER_PRODUCTION, ENV_TIER_TEST, extract_claim_from_jwt,
    get_environment_tier, verify_jwt_token,
)
from .resolver import IdentityResolver, parse_bearer
from .wallet import WalletLinker, link_message

__all__ = [
    'verify_jwt_token', 'extract_claim_from_jwt', 'get_environment_tier',
    'ENV_TIER_PRODUCTION', 'ENV_TIER_TEST', 'ENV_TIER_DEVELOPMENT',
    'IdentityResolver', 'parse_bearer', 'WalletLinker', 'link_message',
]
