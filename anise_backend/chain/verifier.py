"""
Transaction verification.

A claimed on-chain action is accepted only after these gates pass, in order:

1. a receipt exists for the hash
2. the transaction succeeded
3. the transaction targeted the expected contract (when one is given)
4. the receipt contains the expected event (when one is given), emitted by the
   expected contract when an emitter is given

Each gate fails fast with its own exception; nothing is written before all pass.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..exceptions import EventNotFoundError, TxRevertedError, TxWrongDestinationError
from ..models import DecodedEvent, TxReceipt
from ..utils import addresses_equal
from .abi import EventRegistry
from .decoder import EventLogDecoder
from .receipts import ReceiptFetcher

logger = logging.getLogger(__name__)


@dataclass
class VerifiedTransaction:
    """A receipt that passed verification, with its primary event if one was requested."""
    receipt: TxReceipt
    event: Optional[DecodedEvent] = None
    decoder: Optional[EventLogDecoder] = None
    emitter: Optional[str] = None

    @property
    def tx_hash(self) -> str:
        return self.receipt.tx_hash

    @property
    def sender(self) -> str:
        return self.receipt.from_address

    def find(self, event: str) -> Optional[DecodedEvent]:
        """First occurrence of another event in the same receipt."""
        if self.decoder is None or event not in self.decoder.registry:
            return None
        return self.decoder.find_first(self.receipt.logs, event, address=self.emitter)

    def find_all(self, event: str) -> List[DecodedEvent]:
        if self.decoder is None or event not in self.decoder.registry:
            return []
        return self.decoder.find_all(self.receipt.logs, event, address=self.emitter)


class TransactionVerifier:
    """
    Orchestrates receipt fetch, success and destination checks, and event lookup.

    Args:
        fetcher: Receipt source
        logger: Optional logger instance
    """

    def __init__(self, fetcher: ReceiptFetcher, logger: Optional[logging.Logger] = None):
        self.fetcher = fetcher
        self.logger = logger or logging.getLogger(__name__)

    def inspect(
        self,
        tx_hash: Any,
        expected_to: Optional[str] = None,
        event: Optional[str] = None,
        registry: Optional[EventRegistry] = None,
        emitter: Optional[str] = None,
    ) -> VerifiedTransaction:
        """
        Run every verification gate and keep the receipt for follow-up lookups.

        Args:
            tx_hash: Transaction hash
            expected_to: Contract the transaction must have been sent to
            event: Event name or canonical signature that must be present
            registry: Compiled ABI used to decode logs
            emitter: Only logs emitted by this contract count, here and in later lookups

        Returns:
            VerifiedTransaction holding the receipt and the primary event

        Raises:
            TxNotFoundError: No receipt for the hash
            TxRevertedError: Receipt status is failure
            TxWrongDestinationError: Receipt "to" differs from expected_to
            EventNotFoundError: No log decodes to the requested event
        """
        # 1. Fetch receipt
        receipt = self.fetcher.fetch(tx_hash)

        # 2. Success
        if not receipt.success:
            self.logger.warning(f"Transaction {receipt.tx_hash} reverted (block {receipt.block_number})")
            raise TxRevertedError(f"Transaction {receipt.tx_hash} failed on chain", {"txHash": receipt.tx_hash})

        # 3. Destination
        if expected_to is not None and not addresses_equal(receipt.to_address, expected_to):
            self.logger.warning(
                f"Transaction {receipt.tx_hash} sent to {receipt.to_address}, expected {expected_to}"
            )
            raise TxWrongDestinationError(
                f"Transaction {receipt.tx_hash} was not sent to {expected_to}",
                {"txHash": receipt.tx_hash, "to": receipt.to_address},
            )

        decoder = EventLogDecoder(registry, logger=self.logger) if registry is not None else None

        # 4. Event
        decoded = None
        if event is not None and decoder is not None:
            decoded = decoder.find_first(receipt.logs, event, address=emitter)
            if decoded is None:
                self.logger.warning(f"Transaction {receipt.tx_hash} has no {event} event")
                raise EventNotFoundError(
                    f"Event {event} not found in transaction {receipt.tx_hash}",
                    {"txHash": receipt.tx_hash, "event": event},
                )

        self.logger.info(f"Verified transaction {receipt.tx_hash}" + (f" ({decoded.name})" if decoded else ""))
        return VerifiedTransaction(receipt=receipt, event=decoded, decoder=decoder, emitter=emitter)

    def verify(
        self,
        tx_hash: Any,
        expected_to: Optional[str] = None,
        event: Optional[str] = None,
        registry: Optional[EventRegistry] = None,
        emitter: Optional[str] = None,
    ) -> Union[Dict[str, Any], TxReceipt]:
        """
        Verify a transaction.

        Returns:
            The decoded arguments of the event when one is requested, otherwise the receipt
        """
        verified = self.inspect(tx_hash, expected_to=expected_to, event=event, registry=registry, emitter=emitter)
        if verified.event is not None:
            return dict(verified.event.args)
        return verified.receipt
