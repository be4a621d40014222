"""
Compiled event tables.

An ABI is turned into a lookup table keyed by topic0 once, when a module is
wired up. Decoding a log is then a dictionary lookup plus an eth_abi call.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from web3 import Web3

from ..config import AbiLoader
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Indexed values of these kinds are stored in topics as their keccak hash
_DYNAMIC_BASE_TYPES = ("string", "bytes")


def canonical_type(param: Dict[str, Any]) -> str:
    """Canonical ABI type of one input, expanding tuples to (t1,t2,...)."""
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def is_dynamic(abi_type: str) -> bool:
    return abi_type in _DYNAMIC_BASE_TYPES or abi_type.endswith("]") or abi_type.startswith("(")


@dataclass(frozen=True)
class EventInput:
    name: str
    type: str
    indexed: bool


@dataclass(frozen=True)
class EventSpec:
    """One event declaration: name, canonical signature and typed inputs."""
    name: str
    signature: str
    topic0: str
    inputs: Tuple[EventInput, ...]

    @property
    def indexed_inputs(self) -> Tuple[EventInput, ...]:
        return tuple(i for i in self.inputs if i.indexed)

    @property
    def data_inputs(self) -> Tuple[EventInput, ...]:
        return tuple(i for i in self.inputs if not i.indexed)

    @classmethod
    def from_abi_entry(cls, entry: Dict[str, Any]) -> "EventSpec":
        inputs = tuple(
            EventInput(
                name=param.get("name") or f"arg{position}",
                type=canonical_type(param),
                indexed=bool(param.get("indexed", False)),
            )
            for position, param in enumerate(entry.get("inputs", []))
        )
        signature = f"{entry['name']}({','.join(i.type for i in inputs)})"
        topic0 = Web3.to_hex(Web3.keccak(text=signature))
        return cls(name=entry["name"], signature=signature, topic0=topic0, inputs=inputs)


class EventRegistry:
    """
    Lookup table of the events declared in one or more ABIs.

    Raises ConfigurationError when two declarations share a topic0 but differ
    in argument layout, since a log could then decode into the wrong fields.
    """

    def __init__(self, specs: Iterable[EventSpec] = ()):
        self._by_topic: Dict[str, EventSpec] = {}
        self._by_name: Dict[str, List[EventSpec]] = {}
        for spec in specs:
            self.add(spec)

    @classmethod
    def from_abi(cls, *abis: List[Dict[str, Any]]) -> "EventRegistry":
        registry = cls()
        for abi in abis:
            for entry in abi:
                if entry.get("type") != "event" or entry.get("anonymous"):
                    continue
                registry.add(EventSpec.from_abi_entry(entry))
        return registry

    @classmethod
    def for_modules(cls, *module_names: str) -> "EventRegistry":
        """Build a registry from packaged ABIs by contract module name."""
        registry = cls.from_abi(*(AbiLoader.load(name) for name in module_names))
        logger.debug(f"Compiled {len(registry)} events from {', '.join(module_names)}")
        return registry

    def add(self, spec: EventSpec) -> None:
        existing = self._by_topic.get(spec.topic0)
        if existing is not None:
            layout = [(i.type, i.indexed) for i in spec.inputs]
            if [(i.type, i.indexed) for i in existing.inputs] != layout:
                raise ConfigurationError(
                    f"Event signature collision: {spec.signature} declared with two different layouts"
                )
            return
        self._by_topic[spec.topic0] = spec
        self._by_name.setdefault(spec.name, []).append(spec)

    def by_topic(self, topic0: str) -> Optional[EventSpec]:
        return self._by_topic.get(topic0.lower())

    def resolve(self, event: str) -> List[EventSpec]:
        """
        Resolve a bare event name or a canonical signature to its specs.

        Raises:
            ConfigurationError: If the event is not declared
        """
        if "(" in event:
            topic0 = Web3.to_hex(Web3.keccak(text=event.replace(" ", "")))
            spec = self._by_topic.get(topic0)
            specs = [spec] if spec else []
        else:
            specs = self._by_name.get(event, [])
        if not specs:
            raise ConfigurationError(f"Event {event} is not declared in this ABI")
        return specs

    def __contains__(self, event: str) -> bool:
        try:
            return bool(self.resolve(event))
        except ConfigurationError:
            return False

    def __len__(self) -> int:
        return len(self._by_topic)
