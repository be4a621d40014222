"""
Receipt retrieval from a blockchain node.
"""
import logging
from typing import Any, Optional

import requests
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from ..exceptions import ProviderError, TxNotFoundError
from ..models import RawLog, TxReceipt
from ..utils import normalize_tx_hash

logger = logging.getLogger(__name__)


def _hex(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return Web3.to_hex(value)


def _field(receipt: Any, key: str, default: Any = None) -> Any:
    try:
        return receipt[key]
    except (KeyError, TypeError):
        return getattr(receipt, key, default)


def receipt_from_web3(receipt: Any) -> TxReceipt:
    """Convert a web3 AttributeDict receipt (HexBytes fields) to a TxReceipt."""
    logs = [
        RawLog(
            address=_field(log, "address"),
            topics=[_hex(t) for t in _field(log, "topics", [])],
            data=_hex(_field(log, "data", b"")) or "0x",
            log_index=int(_field(log, "logIndex", 0) or 0),
        )
        for log in _field(receipt, "logs", []) or []
    ]
    return TxReceipt(
        transactionHash=_hex(_field(receipt, "transactionHash")),
        blockNumber=int(_field(receipt, "blockNumber", 0) or 0),
        blockHash=_hex(_field(receipt, "blockHash")),
        status=int(_field(receipt, "status", 0) or 0),
        gasUsed=int(_field(receipt, "gasUsed", 0) or 0),
        **{"from": _field(receipt, "from"), "to": _field(receipt, "to")},
        logs=logs,
    )


class ReceiptFetcher:
    """
    Fetches transaction receipts. Every call goes to the node; nothing is cached.

    Args:
        w3: Connected Web3 instance
        logger: Optional logger instance
    """

    def __init__(self, w3: Web3, logger: Optional[logging.Logger] = None):
        self.w3 = w3
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_rpc_url(cls, rpc_url: str, timeout: int = 30) -> "ReceiptFetcher":
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        return cls(w3)

    def fetch(self, tx_hash: Any) -> TxReceipt:
        """
        Fetch and convert the receipt of a transaction.

        Args:
            tx_hash: Transaction hash (hex with or without 0x, or bytes)

        Returns:
            The receipt

        Raises:
            ValidationError: If the hash is malformed
            TxNotFoundError: If the node has no receipt (unknown or not yet mined)
                or could not be reached
            ProviderError: If the node answered with a JSON-RPC error
        """
        tx_hash = normalize_tx_hash(tx_hash)
        try:
            raw = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            raw = None
        except requests.RequestException as e:
            self.logger.warning(f"RPC request for receipt {tx_hash} failed: {e}")
            raise TxNotFoundError(f"Could not fetch receipt for {tx_hash}: {e}", {"txHash": tx_hash})
        except (ValueError, Web3Exception) as e:
            # web3 raises JSON-RPC error responses as ValueError (v6) or Web3RPCError (v7)
            self.logger.error(f"RPC node rejected receipt request for {tx_hash}: {e}")
            raise ProviderError(f"RPC node error for {tx_hash}: {e}", error_type="rpc_error")
        if raw is None:
            self.logger.info(f"No receipt for {tx_hash}")
            raise TxNotFoundError(f"Transaction {tx_hash} not found or not yet mined", {"txHash": tx_hash})
        return receipt_from_web3(raw)
