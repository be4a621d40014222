"""
Event log decoding.

Every raw log is matched structurally against the registry: topic0 must be a
declared event, the topic count must equal one plus the number of indexed
inputs, and the data must decode cleanly. Anything else is skipped, because a
transaction routinely emits logs from contracts the backend knows nothing about.
"""
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from ..models import DecodedEvent, RawLog
from ..utils import addresses_equal
from .abi import EventRegistry, EventSpec, is_dynamic

logger = logging.getLogger(__name__)

LogLike = Union[RawLog, Dict[str, Any]]


def _hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def _normalize_value(abi_type: str, value: Any) -> Any:
    """Convert eth_abi output to plain JSON-friendly Python values."""
    if isinstance(value, (list, tuple)):
        if abi_type.endswith("]"):
            inner = abi_type[: abi_type.rindex("[")]
            return [_normalize_value(inner, v) for v in value]
        return [_normalize_value("", v) for v in value]
    if abi_type == "address":
        return Web3.to_checksum_address(value)
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return value


class EventLogDecoder:
    """
    Decodes receipt logs against an EventRegistry.

    Args:
        registry: Compiled event table
        logger: Optional logger instance
    """

    def __init__(self, registry: EventRegistry, logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)

    def decode_log(self, log: LogLike) -> Optional[DecodedEvent]:
        """
        Decode a single log.

        Returns:
            The decoded event, or None if the log matches no declared event
        """
        if isinstance(log, dict):
            log = RawLog.model_validate(log)
        if not log.topics:
            return None
        spec = self.registry.by_topic(log.topics[0])
        if spec is None:
            return None
        if len(log.topics) != 1 + len(spec.indexed_inputs):
            self.logger.debug(
                f"Log {log.log_index} has topic0 of {spec.signature} but {len(log.topics)} topics, skipping"
            )
            return None
        try:
            return self._decode_with(spec, log)
        except (DecodingError, ValueError, TypeError, OverflowError) as e:
            self.logger.debug(f"Log {log.log_index} failed to decode as {spec.signature}: {e}")
            return None

    def _decode_with(self, spec: EventSpec, log: RawLog) -> DecodedEvent:
        data_inputs = spec.data_inputs
        data_values = abi_decode([i.type for i in data_inputs], _hex_to_bytes(log.data)) if data_inputs else ()
        data_iter = iter(data_values)
        topic_iter = iter(log.topics[1:])

        args: Dict[str, Any] = {}
        for param in spec.inputs:
            if param.indexed:
                topic = next(topic_iter)
                if is_dynamic(param.type):
                    # Only the hash of a dynamic indexed value is on chain
                    args[param.name] = topic.lower()
                    continue
                (value,) = abi_decode([param.type], _hex_to_bytes(topic))
            else:
                value = next(data_iter)
            args[param.name] = _normalize_value(param.type, value)

        return DecodedEvent(
            name=spec.name,
            signature=spec.signature,
            args=args,
            address=Web3.to_checksum_address(log.address) if Web3.is_address(log.address) else log.address,
            log_index=log.log_index,
        )

    def decode(self, logs: Iterable[LogLike], address: Optional[str] = None) -> Iterator[DecodedEvent]:
        """
        Lazily decode logs in emission order, skipping unmatched ones.

        Args:
            logs: Raw receipt logs
            address: Only consider logs emitted by this contract
        """
        for log in logs:
            if isinstance(log, dict):
                log = RawLog.model_validate(log)
            if address and not addresses_equal(log.address, address):
                continue
            event = self.decode_log(log)
            if event is not None:
                yield event

    def find_all(self, logs: Iterable[LogLike], event: str, address: Optional[str] = None) -> List[DecodedEvent]:
        """All decoded occurrences of an event (by name or canonical signature)."""
        signatures = {spec.signature for spec in self.registry.resolve(event)}
        return [e for e in self.decode(logs, address=address) if e.signature in signatures]

    def find_first(self, logs: Iterable[LogLike], event: str, address: Optional[str] = None) -> Optional[DecodedEvent]:
        """First decoded occurrence of an event in emission order, or None."""
        signatures = {spec.signature for spec in self.registry.resolve(event)}
        for decoded in self.decode(logs, address=address):
            if decoded.signature in signatures:
                return decoded
        return None
