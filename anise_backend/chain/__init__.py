"""
On-chain verification: receipt fetch, ABI-driven log decoding and the verifier.
"""
from .abi import EventRegistry, EventSpec
from .decoder import EventLogDecoder
from .receipts import ReceiptFetcher, receipt_from_web3
from .verifier import TransactionVerifier, VerifiedTransaction

__all__ = [
    'EventRegistry', 'EventSpec', 'EventLogDecoder', 'ReceiptFetcher',
    'receipt_from_web3', 'TransactionVerifier', 'VerifiedTransaction',
]
