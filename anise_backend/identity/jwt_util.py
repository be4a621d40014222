"""
Bearer token verification.

Tokens are verified according to the environment tier:
- production: HS256 only, signature and expiry enforced
- test: signature checked when a secret is configured, expiry enforced
- development: decoded without signature or expiry checks
"""
import logging
import os
from typing import Any, Dict, List, Optional

import jwt

logger = logging.getLogger(__name__)

ENV_TIER_PRODUCTION = "production"
ENV_TIER_TEST = "test"
ENV_TIER_DEVELOPMENT = "development"

_TIER_ALIASES = {
    "prod": ENV_TIER_PRODUCTION,
    "production": ENV_TIER_PRODUCTION,
    "test": ENV_TIER_TEST,
    "testing": ENV_TIER_TEST,
    "qa": ENV_TIER_TEST,
    "dev": ENV_TIER_DEVELOPMENT,
    "development": ENV_TIER_DEVELOPMENT,
    "local": ENV_TIER_DEVELOPMENT,
}

# Rejected in every tier
UNSAFE_JWT_ALGORITHMS = ["none", ""]

_NON_PRODUCTION_ALGORITHMS = ["HS256", "HS384", "HS512", "RS256", "RS384", "RS512", "ES256", "ES384", "ES512"]


def normalize_tier(tier: Optional[str]) -> str:
    """Map a tier name or alias to a tier; unknown values are treated as production."""
    value = (tier or ENV_TIER_PRODUCTION).lower()
    if value not in _TIER_ALIASES:
        logger.warning(f"Unknown environment tier: {value}, defaulting to production")
        return ENV_TIER_PRODUCTION
    return _TIER_ALIASES[value]


def get_environment_tier() -> str:
    """Environment tier from ANISE_ENV_TIER (production when unset)."""
    return normalize_tier(os.environ.get("ANISE_ENV_TIER"))


def get_jwt_secret() -> Optional[str]:
    return os.environ.get("ANISE_JWT_SECRET")


def is_safe_jwt_algorithm(algorithm: str) -> bool:
    return algorithm.lower() not in UNSAFE_JWT_ALGORITHMS


def verify_jwt_token(
    token: str,
    env_tier: Optional[str] = None,
    jwt_secret: Optional[str] = None,
    allowed_algorithms: Optional[List[str]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Verify a bearer token according to the environment tier.

    Args:
        token: Encoded JWT
        env_tier: Tier override; defaults to ANISE_ENV_TIER
        jwt_secret: HMAC secret; defaults to ANISE_JWT_SECRET
        allowed_algorithms: Algorithm allow-list; defaults depend on the tier

    Returns:
        The decoded claims, or None if the token is rejected
    """
    if not token:
        return None
    env_tier = normalize_tier(env_tier) if env_tier is not None else get_environment_tier()
    if jwt_secret is None:
        jwt_secret = get_jwt_secret()
    if allowed_algorithms is None:
        allowed_algorithms = ["HS256"] if env_tier == ENV_TIER_PRODUCTION else _NON_PRODUCTION_ALGORITHMS

    try:
        header = jwt.get_unverified_header(token)
    except jwt.DecodeError:
        logger.warning("Invalid JWT format - could not decode header")
        return None

    algorithm = header.get("alg", "")
    if not is_safe_jwt_algorithm(algorithm):
        logger.warning(f"Unsafe JWT algorithm: {algorithm}. Rejecting token.")
        return None
    if algorithm not in allowed_algorithms:
        logger.warning(f"JWT algorithm {algorithm} not allowed in {env_tier} environment")
        return None

    try:
        if env_tier == ENV_TIER_PRODUCTION:
            if not jwt_secret:
                logger.warning("Production environment requires ANISE_JWT_SECRET to be set")
                return None
            return jwt.decode(
                token, jwt_secret, algorithms=allowed_algorithms,
                options={"verify_signature": True, "verify_exp": True},
            )

        if env_tier == ENV_TIER_TEST:
            if algorithm.upper().startswith("HS") and jwt_secret:
                return jwt.decode(
                    token, jwt_secret, algorithms=[algorithm],
                    options={"verify_signature": True, "verify_exp": True},
                )
            return jwt.decode(token, options={"verify_signature": False, "verify_exp": True})

        logger.debug(f"Accepting unverified JWT in development environment (algorithm: {algorithm})")
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})

    except jwt.ExpiredSignatureError:
        logger.warning(f"JWT token has expired (environment: {env_tier})")
    except jwt.InvalidSignatureError:
        logger.warning(f"Invalid JWT signature (environment: {env_tier})")
    except jwt.InvalidTokenError as e:
        logger.warning(f"JWT token validation failed: {e}")
    return None


def extract_claim_from_jwt(token: str, claim_name: str, env_tier: Optional[str] = None,
                           jwt_secret: Optional[str] = None) -> Optional[Any]:
    """A single claim of a verified token, or None."""
    decoded = verify_jwt_token(token, env_tier, jwt_secret)
    return decoded.get(claim_name) if decoded else None
