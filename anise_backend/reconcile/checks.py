"""
Consistency checks applied to decoded events before anything is written.

Each check raises a distinct error so a caller can tell an impersonation
attempt (FieldMismatchError) from a state conflict (StatePreconditionError).
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from ..chain.verifier import VerifiedTransaction
from ..exceptions import FieldMismatchError, NotAuthenticatedError, StatePreconditionError
from ..models import CallerIdentity, TxReceipt
from ..utils import to_checksum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Finalization:
    """Outcome of a finalized event found in the same receipt as a vote."""
    approved: bool
    tx_hash: str

    @property
    def status(self) -> str:
        return "approved" if self.approved else "rejected"


def require_same_address(expected: Any, actual: Any, what: str) -> str:
    """
    Compare two addresses in checksummed form.

    Returns:
        The checksummed address

    Raises:
        FieldMismatchError: If either is malformed or they differ
    """
    expected_cs = to_checksum(expected, what)
    actual_cs = to_checksum(actual, what)
    if expected_cs != actual_cs:
        logger.warning(f"Address mismatch for {what}: expected {expected_cs}, got {actual_cs}")
        raise FieldMismatchError(
            f"{what} mismatch: expected {expected_cs}, got {actual_cs}",
            field=what, expected=expected_cs, actual=actual_cs,
        )
    return actual_cs


def require_sender_is_actor(receipt: TxReceipt, actor: Any) -> str:
    """The account that signed the transaction must be the actor named in the event."""
    return require_same_address(receipt.from_address, actor, "sender")


def require_caller_wallet(identity: CallerIdentity, actor: Any) -> str:
    """The caller's linked wallet must be the actor named in the event."""
    if not identity.wallet_address:
        raise NotAuthenticatedError("A linked wallet is required for this action")
    return require_same_address(identity.wallet_address, actor, "wallet")


def require_echo(payload_value: Any, chain_value: Any, field: str) -> None:
    """
    Submitted values must exactly equal what the chain recorded.

    Strings compare exactly, integers by value (so "10" on the wire equals 10 on chain).
    """
    if isinstance(chain_value, int) and not isinstance(chain_value, bool):
        try:
            matches = int(payload_value) == chain_value
        except (TypeError, ValueError):
            matches = False
    else:
        matches = payload_value == chain_value
    if not matches:
        logger.warning(f"Payload field {field} does not match chain value")
        raise FieldMismatchError(
            f"{field} does not match the on-chain value",
            field=field, expected=chain_value, actual=payload_value,
        )


def require_echoes(payload: Dict[str, Any], event_args: Dict[str, Any], field_map: Dict[str, str]) -> None:
    """Apply require_echo for every payload field -> event argument pair."""
    for payload_field, event_arg in field_map.items():
        require_echo(payload.get(payload_field), event_args.get(event_arg), payload_field)


def require_status(document: Dict[str, Any], expected: str) -> None:
    status = document.get("status")
    if status != expected:
        raise StatePreconditionError(f"Expected status {expected}, current status is {status}")


def require_not_voted(document: Dict[str, Any], voter: str) -> None:
    voters = document.get("voters") or []
    votes = document.get("votes") or {}
    if voter in voters or voter in votes:
        raise StatePreconditionError(f"{voter} has already voted")


def require_not_creator(document: Dict[str, Any], voter: str, creator_field: str) -> None:
    creator = document.get(creator_field)
    if creator and to_checksum(creator, creator_field) == voter:
        raise StatePreconditionError(f"{voter} cannot vote on an item they created")


def require_vote_matches(vote_type: str, approve: bool) -> None:
    """The requested vote direction must be the one cast on chain."""
    if (vote_type == "approve") != bool(approve):
        raise FieldMismatchError(
            f"voteType {vote_type} does not match the on-chain vote",
            field="voteType", expected="approve" if approve else "reject", actual=vote_type,
        )


def require_listed_signer(required_signers: Iterable[str], signer: str) -> None:
    signers = [to_checksum(s, "requiredSigners") for s in required_signers or []]
    if signers and signer not in signers:
        raise StatePreconditionError(f"{signer} is not a required signer of this document")


def detect_finalization(
    verified: VerifiedTransaction,
    event_name: str,
    id_arg: str,
    entity_id: int,
    outcome_arg: Optional[str] = "approved",
) -> Optional[Finalization]:
    """
    Look for a finalized event for the same entity in the vote's receipt.

    Returns:
        Finalization if the item was finalized in this transaction, else None
    """
    for event in verified.find_all(event_name):
        if int(event[id_arg]) == int(entity_id):
            approved = bool(event[outcome_arg]) if outcome_arg else True
            logger.info(f"{event_name} for {entity_id} in {verified.tx_hash}: approved={approved}")
            return Finalization(approved=approved, tx_hash=verified.tx_hash)
    return None
