"""
Configuration for the Anise backend.

Static network data and contract ABIs ship inside the package and are loaded
once per process; runtime settings come from environment variables.
"""
import importlib.resources
import json
import logging
import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .exceptions import ConfigurationError
from .utils import require_secure_url

logger = logging.getLogger(__name__)

DEFAULT_NETWORK = "polygon-amoy"


class NetworkConfig:
    """Access to the packaged networks.json, cached at class level."""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load network definitions from the packaged networks.json

        Returns:
            Mapping of network name to its configuration
        """
        if cls._networks_cache is not None:
            return cls._networks_cache
        try:
            resource = importlib.resources.files("anise_backend") / "networks.json"
            cls._networks_cache = json.loads(resource.read_text(encoding="utf-8"))
        except (FileNotFoundError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to load networks.json: {e}")
        return cls._networks_cache

    @classmethod
    def get_network(cls, name: str) -> Dict[str, Any]:
        networks = cls.load_networks()
        if name not in networks:
            available = ", ".join(sorted(networks))
            raise ConfigurationError(f"Unknown network '{name}'. Available networks: {available}")
        return networks[name]

    @classmethod
    def get_rpc_url(cls, name: str, override: Optional[str] = None) -> str:
        """
        Resolve the RPC URL for a network.

        Precedence: explicit override, then <NETWORK>_RPC_URL, then networks.json.
        """
        if override:
            return override
        env_key = name.upper().replace("-", "_") + "_RPC_URL"
        env_value = os.environ.get(env_key)
        if env_value:
            return env_value
        return cls.get_network(name)["rpc"]

    @classmethod
    def get_chain_id(cls, name: str) -> int:
        return int(cls.get_network(name)["chainId"])

    @classmethod
    def get_contract_address(cls, name: str, contract: str) -> Optional[str]:
        return cls.get_network(name).get("contracts", {}).get(contract)


class AbiLoader:
    """Loads the packaged event ABIs of the DAO contract modules."""

    _abi_cache: Dict[str, List[Dict[str, Any]]] = {}

    @classmethod
    def load(cls, module_name: str) -> List[Dict[str, Any]]:
        """
        Load an ABI by contract module name (e.g. "ProposalVotingModule").

        Accepts both a bare ABI list and a build artifact with an "abi" key.
        """
        if module_name in cls._abi_cache:
            return cls._abi_cache[module_name]
        try:
            resource = importlib.resources.files("anise_backend") / "abis" / f"{module_name}.json"
            data = json.loads(resource.read_text(encoding="utf-8"))
        except (FileNotFoundError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to load ABI for {module_name}: {e}")
        abi = data.get("abi", data) if isinstance(data, dict) else data
        if not isinstance(abi, list):
            raise ConfigurationError(f"ABI for {module_name} must be a list")
        cls._abi_cache[module_name] = abi
        return abi


class Settings(BaseModel):
    """Process-wide runtime settings"""
    network: str = DEFAULT_NETWORK
    rpc_url: Optional[str] = None
    env_tier: str = "production"
    jwt_secret: Optional[str] = None
    gocardless_access_token: Optional[str] = None
    gocardless_environment: str = "sandbox"
    gocardless_success_url: str = "http://localhost:3001/success"
    http_timeout: int = Field(30, gt=0)
    dao_factory_address: Optional[str] = None
    store_backend: str = "memory"
    firestore_project: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ANISE_* and GOCARDLESS_* environment variables."""
        env = os.environ
        settings = cls(
            network=env.get("ANISE_NETWORK", DEFAULT_NETWORK),
            rpc_url=env.get("ANISE_RPC_URL") or None,
            env_tier=env.get("ANISE_ENV_TIER", "production"),
            jwt_secret=env.get("ANISE_JWT_SECRET") or None,
            gocardless_access_token=env.get("GOCARDLESS_ACCESS_TOKEN") or None,
            gocardless_environment=env.get("GOCARDLESS_ENVIRONMENT", "sandbox"),
            gocardless_success_url=env.get("GOCARDLESS_SUCCESS_URL", "http://localhost:3001/success"),
            http_timeout=int(env.get("ANISE_HTTP_TIMEOUT", "30")),
            dao_factory_address=env.get("ANISE_DAO_FACTORY_ADDRESS") or None,
            store_backend=env.get("ANISE_STORE", "memory").strip().lower(),
            firestore_project=env.get("GOOGLE_CLOUD_PROJECT") or None,
        )
        logger.debug(
            f"Loaded settings: network={settings.network}, env_tier={settings.env_tier}, store={settings.store_backend}, "
            f"gocardless_environment={settings.gocardless_environment}, "
            f"gocardless token {'set' if settings.gocardless_access_token else 'not set'}"
        )
        return settings

    def resolved_rpc_url(self) -> str:
        return require_secure_url("rpc_url", NetworkConfig.get_rpc_url(self.network, override=self.rpc_url))

    def resolved_dao_factory(self) -> Optional[str]:
        return self.dao_factory_address or NetworkConfig.get_contract_address(self.network, "DaoFactory")
