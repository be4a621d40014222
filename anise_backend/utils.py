"""
Utility functions shared across the Anise backend.
"""
import re
import urllib.parse
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from web3 import Web3

from .exceptions import ConfigurationError, FieldMismatchError, ValidationError

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")

# Keys whose values never reach the logs
SENSITIVE_KEYS = ("session_token", "signature", "authorization", "access_token", "idToken")


def normalize_tx_hash(tx_hash: Any) -> str:
    """
    Normalize a transaction hash to lowercase 0x-prefixed hex.

    Args:
        tx_hash: Hash as hex string (with or without 0x) or 32 raw bytes

    Returns:
        Normalized hash string

    Raises:
        ValidationError: If the value is not a 32-byte hash
    """
    if isinstance(tx_hash, (bytes, bytearray)):
        tx_hash = "0x" + bytes(tx_hash).hex()
    if not isinstance(tx_hash, str) or not tx_hash:
        raise ValidationError("txHash is required", [{"field": "txHash", "error": "missing"}])
    value = tx_hash.strip()
    if not value.startswith("0x"):
        value = "0x" + value
    if not _TX_HASH_RE.match(value):
        raise ValidationError(
            f"Invalid transaction hash: {tx_hash}",
            [{"field": "txHash", "error": "must be a 32-byte hex string"}],
        )
    return value.lower()


def to_checksum(address: Any, field: str = "address") -> str:
    """
    Convert an address to its EIP-55 checksummed form.

    All document keys and address comparisons use this form.

    Raises:
        FieldMismatchError: If the value is not a 20-byte address
    """
    if isinstance(address, (bytes, bytearray)) and len(address) == 20:
        address = "0x" + bytes(address).hex()
    if not isinstance(address, str) or not Web3.is_address(address):
        raise FieldMismatchError(f"Invalid address for {field}: {address!r}", field=field, actual=address)
    return Web3.to_checksum_address(address)


def addresses_equal(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive address equality; None never equals anything."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


def require_secure_url(name: str, url: str) -> str:
    """
    Require https:// unless the host is localhost or 127.0.0.1.

    Raises:
        ConfigurationError: If the URL is not secure
    """
    parsed = urllib.parse.urlparse(url)
    netloc_parts = parsed.netloc.split(':')
    host = netloc_parts[0] if netloc_parts else ''
    is_local = host in ('localhost', '127.0.0.1')
    if parsed.scheme != 'https' and not is_local:
        raise ConfigurationError(f"{name} must use https:// for security (got: {parsed.scheme}://)")
    return url


def epoch_to_datetime(seconds: Any) -> datetime:
    """Convert epoch seconds (int or numeric string) to an aware UTC datetime."""
    try:
        return datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"Invalid epoch timestamp: {seconds!r}")


def sanitize_for_log(payload: Any, keys: Iterable[str] = SENSITIVE_KEYS) -> Any:
    """
    Remove sensitive data from a payload for logging

    Args:
        payload: Dictionary payload to sanitize

    Returns:
        Sanitized copy safe for logging
    """
    if not isinstance(payload, dict):
        return payload
    result: Dict[str, Any] = {}
    for key, value in payload.items():
        if key in keys and value is not None:
            result[key] = f"[REDACTED - {len(str(value))} chars]"
        elif isinstance(value, dict):
            result[key] = sanitize_for_log(value, keys)
        else:
            result[key] = value
    return result


def strip_reserved_fields(obj: Any) -> Any:
    """Recursively drop keys starting with '__' (reserved by the document store)."""
    if isinstance(obj, dict):
        return {
            key: strip_reserved_fields(value)
            for key, value in obj.items()
            if not str(key).startswith("__")
        }
    if isinstance(obj, list):
        return [strip_reserved_fields(item) for item in obj]
    return obj


def normalize_address(address: Any, field: str = "address") -> str:
    """
    Checksum an address taken from a request (path parameter or body).

    Raises:
        ValidationError: If the value is not a 20-byte address
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValidationError(
            f"Invalid address for {field}: {address!r}",
            [{"field": field, "error": "must be a 20-byte hex address"}],
        )
    return Web3.to_checksum_address(address)
