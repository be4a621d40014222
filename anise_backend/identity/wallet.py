"""
Wallet linking.

A user proves control of a wallet by signing a fixed message that names their
account; the recovered signer must be the submitted address.
"""
import logging
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError

from ..exceptions import FieldMismatchError, StatePreconditionError
from ..models import CallerIdentity, ConnectWalletRequest, parse_request
from ..store.base import SERVER_TIMESTAMP, DocumentStore, join_path
from ..utils import normalize_address

logger = logging.getLogger(__name__)

LINK_MESSAGE = "Link this wallet to my Anise account at {uid}"


def link_message(uid: str) -> str:
    return LINK_MESSAGE.format(uid=uid)


class WalletLinker:
    """
    Links a wallet address to a user profile after checking a signed message.

    Args:
        store: Document store holding users/{uid}
    """

    def __init__(self, store: DocumentStore, logger: Optional[logging.Logger] = None):
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    def recover_signer(self, uid: str, signature: str) -> str:
        try:
            return Account.recover_message(encode_defunct(text=link_message(uid)), signature=signature)
        except (ValueError, TypeError, BadSignature, KeyValidationError) as e:
            raise FieldMismatchError(f"Invalid signature: {e}", field="signature")

    def connect_wallet(self, identity: CallerIdentity, body: Any) -> Dict[str, Any]:
        """
        Link the signing wallet to the caller.

        Returns:
            {"address": checksummed address}

        Raises:
            FieldMismatchError: If the signature was not made by the address
            StatePreconditionError: If the wallet belongs to another user, or the
                caller already has a different wallet linked
        """
        payload = parse_request(ConnectWalletRequest, body)
        address = normalize_address(payload.address, "address")

        recovered = self.recover_signer(identity.uid, payload.signature)
        if recovered != address:
            self.logger.warning(f"Wallet signature for {identity.uid} recovered {recovered}, expected {address}")
            raise FieldMismatchError(
                "Signature does not match address", field="address", expected=address, actual=recovered,
            )

        owners = self.store.query("users", where=[("wallet.address", "==", address)])
        if any(doc.id != identity.uid for doc in owners):
            raise StatePreconditionError("Wallet address already linked to another user")

        profile = self.store.get(join_path("users", identity.uid)) or {}
        current = (profile.get("wallet") or {}).get("address")
        if current and current.lower() != address.lower():
            raise StatePreconditionError("A different wallet is already linked to this account")

        self.store.set(
            join_path("users", identity.uid),
            {"wallet": {"address": address, "linkedAt": SERVER_TIMESTAMP}},
            merge=True,
        )
        self.logger.info(f"Linked wallet {address} to user {identity.uid}")
        return {"address": address}
