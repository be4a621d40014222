"""
Pytest fixtures for the Anise backend tests.

Receipts are built from real ABI encodings of the packaged contract events and
served by a mocked Web3 client, so the decoder and verifier run unmodified.
"""
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import jwt
import pytest
from eth_abi import encode as abi_encode
from eth_account import Account
from web3 import Web3
from web3.exceptions import TransactionNotFound

from anise_backend.chain import EventRegistry, ReceiptFetcher, TransactionVerifier
from anise_backend.chain.abi import is_dynamic
from anise_backend.config import Settings
from anise_backend.dao import ADMIN_ROLE, MEMBER_ROLE
from anise_backend.models import CallerIdentity
from anise_backend.payments._rate_limited_log import reset_rate_limits
from anise_backend.reconcile import DocumentReconciler, build_pipelines
from anise_backend.store import MemoryDocumentStore, join_path

# Test accounts (deterministic keys)
ALICE = Account.from_key("0x" + "11" * 32)
BOB = Account.from_key("0x" + "22" * 32)
CAROL = Account.from_key("0x" + "33" * 32)
MALLORY = Account.from_key("0x" + "44" * 32)

DAO_ADDRESS = Web3.to_checksum_address("0x" + "da" * 20)
LOCAL_DAO_FACTORY = "0x5FbDB2315678afecb367f032d93F642f64180aa3"

MODULE_ADDRESSES = {
    "ProposalVotingModule": Web3.to_checksum_address("0x" + "a1" * 20),
    "ClaimVotingModule": Web3.to_checksum_address("0x" + "a2" * 20),
    "TaskManagementModule": Web3.to_checksum_address("0x" + "a3" * 20),
    "CalendarModule": Web3.to_checksum_address("0x" + "a4" * 20),
    "DocumentSigningModule": Web3.to_checksum_address("0x" + "a5" * 20),
    "AnnouncementModule": Web3.to_checksum_address("0x" + "a6" * 20),
    "MemberModule": Web3.to_checksum_address("0x" + "a7" * 20),
}

START = datetime(2026, 1, 1, tzinfo=timezone.utc)

_registries: Dict[str, EventRegistry] = {}


def _registry(module: str) -> EventRegistry:
    if module not in _registries:
        _registries[module] = EventRegistry.for_modules(module)
    return _registries[module]


def encode_event(module: str, event: str, address: str, /, **args: Any) -> Dict[str, Any]:
    """
    ABI-encode one event of a packaged module into a raw receipt log.

    Args:
        module: Contract module name, e.g. "ProposalVotingModule"
        event: Event name
        address: Emitting contract
        **args: Event arguments by name

    Returns:
        A log dict as a node would return it
    """
    spec = _registry(module).resolve(event)[0]
    topics = [spec.topic0]
    for param in spec.indexed_inputs:
        value = args[param.name]
        if is_dynamic(param.type):
            topics.append(Web3.to_hex(Web3.keccak(text=value)))
        else:
            topics.append(Web3.to_hex(abi_encode([param.type], [value])))
    data = abi_encode([p.type for p in spec.data_inputs], [args[p.name] for p in spec.data_inputs])
    return {"address": address, "topics": topics, "data": Web3.to_hex(data)}


def module_event(module: str, event: str, /, **args: Any) -> Dict[str, Any]:
    """encode_event emitted by the module's address in the test DAO."""
    return encode_event(module, event, MODULE_ADDRESSES[module], **args)


class FakeChain:
    """Serves receipts to a mocked Web3 client."""

    def __init__(self):
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self._counter = itertools.count(1)
        self.w3 = MagicMock()
        self.w3.eth.get_transaction_receipt.side_effect = self._lookup

    def _lookup(self, tx_hash: str) -> Dict[str, Any]:
        try:
            return self.receipts[tx_hash.lower()]
        except KeyError:
            raise TransactionNotFound(f"Transaction with hash: '{tx_hash}' not found.")

    def transact(self, sender: str, to: Optional[str], logs: List[Dict[str, Any]], status: int = 1) -> str:
        """Record a mined transaction and return its hash."""
        number = next(self._counter)
        tx_hash = "0x" + f"{number:064x}"
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "blockNumber": 1000 + number,
            "blockHash": "0x" + "ab" * 32,
            "status": status,
            "gasUsed": 52000,
            "from": sender,
            "to": to,
            "logs": [{**log, "logIndex": index} for index, log in enumerate(logs)],
        }
        return tx_hash

    def module_tx(self, sender: str, module: str, *logs: Dict[str, Any], status: int = 1) -> str:
        """A transaction sent to a module of the test DAO."""
        return self.transact(sender, MODULE_ADDRESSES[module], list(logs), status=status)


class TickingClock:
    """Each call is one second later than the previous one."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


def identity_for(account, uid: str, linked: bool = True) -> CallerIdentity:
    return CallerIdentity(uid=uid, wallet_address=account.address if linked else None)


def bearer(uid: str) -> Dict[str, str]:
    """Authorization header accepted in the development tier."""
    token = jwt.encode({"uid": uid}, "test-secret-0123456789abcdef0123456789", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store(clock):
    return MemoryDocumentStore(clock=clock)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def verifier(chain):
    return TransactionVerifier(ReceiptFetcher(chain.w3))


@pytest.fixture
def reconciler(store):
    return DocumentReconciler(store)


@pytest.fixture
def pipelines(verifier, reconciler):
    return build_pipelines(verifier, reconciler)


@pytest.fixture
def dao(store):
    """
    A DAO with every module installed.

    Alice (uid-alice) is its Admin, Bob (uid-bob) a Member. Carol (uid-carol)
    has a linked wallet but is not a member.
    """
    store.set(join_path("daos", DAO_ADDRESS), {
        "daoAddress": DAO_ADDRESS,
        "creator": ALICE.address,
        "metadata": {"name": "Garden Club", "description": "Community garden collective"},
        "modules": {name: {"address": address} for name, address in MODULE_ADDRESSES.items()},
        "memberCount": 2,
    })
    store.set(join_path("daos", DAO_ADDRESS, "members", ALICE.address), {"uid": "uid-alice", "role": ADMIN_ROLE})
    store.set(join_path("daos", DAO_ADDRESS, "members", BOB.address), {"uid": "uid-bob", "role": MEMBER_ROLE})
    for uid, account in (("uid-alice", ALICE), ("uid-bob", BOB), ("uid-carol", CAROL)):
        user = {"wallet": {"address": account.address}, "email": f"{uid}@example.com"}
        if account is not CAROL:
            user["daos"] = [DAO_ADDRESS]
        store.set(join_path("users", uid), user)
    return DAO_ADDRESS


@pytest.fixture
def alice():
    return identity_for(ALICE, "uid-alice")


@pytest.fixture
def bob():
    return identity_for(BOB, "uid-bob")


@pytest.fixture
def carol():
    return identity_for(CAROL, "uid-carol")


@pytest.fixture
def settings():
    return Settings(
        network="local",
        env_tier="development",
        gocardless_access_token="test-token",
        gocardless_success_url="https://app.example.com/success",
    )
