"""
Tests for configuration loading, shared utilities and the command line.
"""
import json
import os
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from anise_backend import __version__
from anise_backend.__main__ import main
from anise_backend.config import AbiLoader, NetworkConfig, Settings
from anise_backend.exceptions import ConfigurationError, FieldMismatchError, ValidationError
from anise_backend.services import build_services, build_store
from anise_backend.store import MemoryDocumentStore
from anise_backend.utils import (
    addresses_equal, epoch_to_datetime, normalize_address, normalize_tx_hash, require_secure_url,
    sanitize_for_log, strip_reserved_fields, to_checksum,
)

from conftest import ALICE, LOCAL_DAO_FACTORY


class TestNetworkConfig:
    """Packaged network definitions."""

    def test_known_networks(self):
        assert NetworkConfig.get_chain_id("polygon-amoy") == 80002
        assert NetworkConfig.get_chain_id("local") == 31337
        assert NetworkConfig.get_contract_address("local", "DaoFactory") == LOCAL_DAO_FACTORY

    def test_unknown_network(self):
        with pytest.raises(ConfigurationError, match="Available networks"):
            NetworkConfig.get_network("mainnet-classic")

    def test_rpc_url_precedence(self):
        with patch.dict(os.environ, {"POLYGON_AMOY_RPC_URL": "https://amoy.example.com"}):
            assert NetworkConfig.get_rpc_url("polygon-amoy") == "https://amoy.example.com"
            assert NetworkConfig.get_rpc_url("polygon-amoy", override="https://o.example.com") == "https://o.example.com"
        with patch.dict(os.environ, {}, clear=True):
            assert NetworkConfig.get_rpc_url("local") == "http://127.0.0.1:8545"


class TestAbiLoader:

    def test_loads_packaged_abi(self):
        abi = AbiLoader.load("ProposalVotingModule")
        names = {entry.get("name") for entry in abi if entry.get("type") == "event"}
        assert {"ProposalCreated", "VoteCast", "ProposalFinalized"} <= names

    def test_unknown_module(self):
        with pytest.raises(ConfigurationError):
            AbiLoader.load("NoSuchModule")


class TestSettings:
    """Runtime settings from the environment."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings.from_env()
        assert settings.network == "polygon-amoy"
        assert settings.env_tier == "production"
        assert settings.http_timeout == 30
        assert settings.gocardless_access_token is None

    def test_from_env(self):
        env = {
            "ANISE_NETWORK": "local",
            "ANISE_ENV_TIER": "test",
            "ANISE_HTTP_TIMEOUT": "5",
            "GOCARDLESS_ACCESS_TOKEN": "sandbox-token",
            "GOCARDLESS_ENVIRONMENT": "live",
            "ANISE_DAO_FACTORY_ADDRESS": ALICE.address,
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings.from_env()
        assert settings.http_timeout == 5
        assert settings.gocardless_environment == "live"
        assert settings.resolved_dao_factory() == ALICE.address

    def test_resolved_rpc_url(self):
        assert Settings(network="local").resolved_rpc_url() == "http://127.0.0.1:8545"
        with pytest.raises(ConfigurationError, match="https"):
            Settings(network="polygon", rpc_url="http://rpc.example.com").resolved_rpc_url()

    def test_factory_from_network(self):
        assert Settings(network="local").resolved_dao_factory() == LOCAL_DAO_FACTORY
        assert Settings(network="polygon").resolved_dao_factory() is None

    def test_store_backend_from_env(self):
        with patch.dict(os.environ, {}, clear=True):
            assert Settings.from_env().store_backend == "memory"
        env = {"ANISE_STORE": " Firestore ", "GOOGLE_CLOUD_PROJECT": "anise-prod"}
        with patch.dict(os.environ, env, clear=True):
            settings = Settings.from_env()
        assert settings.store_backend == "firestore"
        assert settings.firestore_project == "anise-prod"


class TestBuildStore:
    """The document store is chosen by settings.store_backend."""

    def test_memory(self):
        assert isinstance(build_store(Settings()), MemoryDocumentStore)

    def test_firestore(self):
        with patch("anise_backend.services.FirestoreDocumentStore") as firestore_store:
            store = build_store(Settings(store_backend="firestore", firestore_project="anise-prod"))
        firestore_store.assert_called_once_with(project="anise-prod")
        assert store is firestore_store.return_value

    def test_build_services_uses_configured_store(self, chain):
        settings = Settings(network="local", store_backend="firestore")
        with patch("anise_backend.services.FirestoreDocumentStore") as firestore_store:
            services = build_services(settings, w3=chain.w3)
        assert services.store is firestore_store.return_value

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError, match="redis"):
            build_store(Settings(store_backend="redis"))


def test_version():
    assert isinstance(__version__, str)
    assert __version__.count(".") >= 1


class TestUtils:

    def test_normalize_tx_hash(self):
        raw = "AB" * 32
        assert normalize_tx_hash(raw) == "0x" + "ab" * 32
        assert normalize_tx_hash(bytes.fromhex(raw)) == "0x" + "ab" * 32
        for bad in (None, "", "0x1234", 42):
            with pytest.raises(ValidationError):
                normalize_tx_hash(bad)

    def test_addresses(self):
        assert to_checksum(ALICE.address.lower()) == ALICE.address
        assert to_checksum(bytes.fromhex(ALICE.address[2:])) == ALICE.address
        with pytest.raises(FieldMismatchError):
            to_checksum("0x12", "creator")
        assert normalize_address(ALICE.address.lower(), "dao") == ALICE.address
        with pytest.raises(ValidationError):
            normalize_address("garden", "dao")
        assert addresses_equal(ALICE.address, ALICE.address.lower())
        assert not addresses_equal(None, None)

    def test_require_secure_url(self):
        assert require_secure_url("url", "https://example.com") == "https://example.com"
        assert require_secure_url("url", "http://localhost:3000") == "http://localhost:3000"
        with pytest.raises(ConfigurationError):
            require_secure_url("url", "http://example.com")

    def test_epoch_to_datetime(self):
        assert epoch_to_datetime("1767225600") == datetime(2026, 1, 1, tzinfo=timezone.utc)
        with pytest.raises(ValidationError):
            epoch_to_datetime("soon")

    def test_sanitize_for_log(self):
        payload = {"redirect_flow_id": "RE1", "session_token": "abcd", "nested": {"signature": "0x00"}}
        assert sanitize_for_log(payload) == {
            "redirect_flow_id": "RE1",
            "session_token": "[REDACTED - 4 chars]",
            "nested": {"signature": "[REDACTED - 4 chars]"},
        }
        assert sanitize_for_log("plain") == "plain"

    def test_strip_reserved_fields(self):
        data = {"id": "PM1", "__meta": 1, "items": [{"__x": 1, "y": 2}]}
        assert strip_reserved_fields(data) == {"id": "PM1", "items": [{"y": 2}]}


class TestCommandLine:

    def test_recount_one_dao(self, capsys):
        services = MagicMock()
        services.members.recount_members.return_value = 4
        with patch("anise_backend.__main__.build_services", return_value=services):
            assert main(["recount-members", "0xdao"]) == 0
        assert json.loads(capsys.readouterr().out) == {"0xdao": 4}

    def test_recount_all(self, capsys):
        services = MagicMock()
        services.members.recount_all_members.return_value = {"0xa": 1, "0xb": 2}
        with patch("anise_backend.__main__.build_services", return_value=services):
            main(["recount-members"])
        assert json.loads(capsys.readouterr().out) == {"0xa": 1, "0xb": 2}
