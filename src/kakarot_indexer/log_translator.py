"""
Translation of Starknet events into Ethereum logs.

Kakarot emits every EVM log as a Starknet event whose first key is the
emitting EVM address and whose remaining keys are the topics, each split in
two 128-bit halves (low half first). Data is emitted one byte per felt.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from eth_utils import encode_hex

from .errors import DropReason, InvalidLog
from .models import SourceEvent
from .utils.blockchain_encoder import BlockchainEncoder
from .utils.hex_utils import int_to_fixed_bytes, quantity
from .utils.selectors import APPROVAL, EVM_CONTRACT_DEPLOYED, TRANSACTION_EXECUTED, TRANSFER

logger = logging.getLogger(__name__)

# Kakarot internal events and Starknet token events are not Ethereum logs.
IGNORED_KEYS = frozenset({TRANSACTION_EXECUTED, EVM_CONTRACT_DEPLOYED, TRANSFER, APPROVAL})

MAX_TOPICS = 4
HALF_WORD_BITS = 128


@dataclass(frozen=True, slots=True)
class TransactionPosition:
    """Where a transaction sits in the rebuilt Ethereum block."""

    transaction_hash: bytes
    transaction_index: int
    block_hash: bytes
    block_number: int


@dataclass(frozen=True, slots=True)
class LogEntry:
    """An Ethereum log.

    ``removed`` is always false: chain reorganizations are not tracked.
    """

    address: bytes
    topics: tuple[bytes, ...]
    data: bytes
    log_index: int
    position: TransactionPosition
    removed: bool = field(default=False)

    def to_rlp(self) -> list:
        return BlockchainEncoder.encode_log(self.address, self.topics, self.data)

    def to_json(self) -> dict[str, Any]:
        return {
            "removed": self.removed,
            "logIndex": quantity(self.log_index),
            "transactionIndex": quantity(self.position.transaction_index),
            "transactionHash": encode_hex(self.position.transaction_hash),
            "blockHash": encode_hex(self.position.block_hash),
            "blockNumber": quantity(self.position.block_number),
            "address": encode_hex(self.address),
            "data": encode_hex(self.data),
            "topics": [encode_hex(topic) for topic in self.topics],
        }


def _address(key: int) -> bytes:
    try:
        return int_to_fixed_bytes(key, 20)
    except ValueError:
        raise InvalidLog(
            f"Event address key {key:#x} is wider than 20 bytes",
            DropReason.INVALID_LOG_ADDRESS,
        ) from None


def _topics(keys: tuple[int, ...]) -> tuple[bytes, ...]:
    """Join consecutive (low, high) key pairs into 32-byte topics."""
    if len(keys) // 2 > MAX_TOPICS:
        raise InvalidLog(f"Too many topics: {len(keys) // 2}", DropReason.INVALID_LOG_TOPIC)

    topics = []
    for i in range(0, len(keys), 2):
        low, high = keys[i], keys[i + 1]
        if low >> HALF_WORD_BITS or high >> HALF_WORD_BITS:
            raise InvalidLog(
                f"Topic halves must fit in 128 bits: low={low:#x}, high={high:#x}",
                DropReason.INVALID_LOG_TOPIC,
            )
        topics.append(((high << HALF_WORD_BITS) | low).to_bytes(32, "big"))
    return tuple(topics)


def _data(felts: tuple[int, ...]) -> bytes:
    if any(felt > 0xFF for felt in felts):
        raise InvalidLog("Event data felts must be single bytes", DropReason.INVALID_LOG_DATA)
    return bytes(felts)


def to_eth_log(
    event: SourceEvent,
    position: TransactionPosition,
    log_index: int,
) -> LogEntry | None:
    """
    Map a Starknet event to an Ethereum log.

    Args:
        event: The Starknet event
        position: Position fields of the owning transaction
        log_index: Block scoped index of the log

    Returns:
        The log, or None if the event is a Kakarot internal event

    Raises:
        InvalidLog: If the key list or data cannot form a valid log
    """
    keys = event.keys
    if not keys:
        raise InvalidLog("Event has no keys", DropReason.INVALID_EVENT_KEYS)

    # Filter out ignored events which aren't ETH logs.
    if keys[0] in IGNORED_KEYS:
        return None

    if len(keys) % 2 != 1:
        raise InvalidLog(
            f"Event key count must be odd, got {len(keys)}",
            DropReason.INVALID_EVENT_KEYS,
        )

    # The address is the first key of the event.
    return LogEntry(
        address=_address(keys[0]),
        topics=_topics(keys[1:]),
        data=_data(event.data),
        log_index=log_index,
        position=position,
    )
