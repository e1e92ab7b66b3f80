"""Data models for the Starknet input of the Kakarot indexer.

This module provides immutable data classes for the block data delivered by
the Starknet event stream: the block header, the events, and the originating
transaction and receipt of each event.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .utils.hex_utils import felt_to_int
from .utils.selectors import TRANSACTION_EXECUTED

REVERTED_STATUS = "EXECUTION_STATUS_REVERTED"


def _felts(values: Any) -> tuple[int, ...]:
    if values is None:
        return ()
    return tuple(felt_to_int(value) for value in values)


def _timestamp(value: Any) -> int:
    """Accept unix seconds (int, hex or decimal) or an ISO-8601 string."""
    if isinstance(value, str) and ("T" in value or "-" in value):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp())
    return felt_to_int(value)


@dataclass(frozen=True, slots=True)
class SourceHeader:
    """A Starknet block header.

    Attributes:
        block_hash: Hash of the Starknet block
        parent_block_hash: Hash of the parent block
        block_number: Height of the block
        sequencer_address: Address of the sequencer that produced the block
        new_root: State root after the block
        timestamp: Unix timestamp of the block
    """

    block_hash: int
    parent_block_hash: int
    block_number: int
    sequencer_address: int
    new_root: int
    timestamp: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceHeader":
        return cls(
            block_hash=felt_to_int(data["blockHash"]),
            parent_block_hash=felt_to_int(data.get("parentBlockHash", 0)),
            block_number=felt_to_int(data["blockNumber"]),
            sequencer_address=felt_to_int(data.get("sequencerAddress", 0)),
            new_root=felt_to_int(data.get("newRoot", 0)),
            timestamp=_timestamp(data.get("timestamp", 0)),
        )


@dataclass(frozen=True, slots=True)
class SourceEvent:
    """A single Starknet event.

    Attributes:
        keys: Indexed keys, the first one being the selector or EVM address
        data: Non-indexed data felts
    """

    keys: tuple[int, ...]
    data: tuple[int, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceEvent":
        return cls(
            keys=_felts(data.get("keys")),
            data=_felts(data.get("data")),
        )


@dataclass(frozen=True, slots=True)
class SourceTransaction:
    """The Starknet invoke transaction that carried an Ethereum transaction.

    Attributes:
        hash: Starknet transaction hash
        calldata: Argument list of the account call, ``None`` if absent
        signature: Split signature ``[r_low, r_high, s_low, s_high, v]``
    """

    hash: int
    calldata: tuple[int, ...] | None
    signature: tuple[int, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceTransaction":
        meta = data.get("meta") or {}
        body = data.get("invokeV1") or data.get("invokeV3") or data.get("invokeV0") or {}
        calldata = body.get("calldata")
        return cls(
            hash=felt_to_int(meta["hash"]),
            calldata=_felts(calldata) if calldata is not None else None,
            signature=_felts(meta.get("signature")),
        )


@dataclass(frozen=True, slots=True)
class SourceReceipt:
    """The Starknet receipt of the originating transaction.

    Attributes:
        transaction_hash: Starknet transaction hash
        transaction_index: Index of the transaction in the Starknet block
        gas_used: Ethereum gas used, when the stream provides it
        execution_status: Starknet execution status, when provided
        events: Every event emitted by the transaction
    """

    transaction_hash: int
    transaction_index: int
    gas_used: int | None
    execution_status: str | None
    events: tuple[SourceEvent, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceReceipt":
        gas_used = data.get("gasUsed")
        return cls(
            transaction_hash=felt_to_int(data.get("transactionHash", 0)),
            transaction_index=felt_to_int(data.get("transactionIndex", 0)),
            gas_used=felt_to_int(gas_used) if gas_used is not None else None,
            execution_status=data.get("executionStatus"),
            events=tuple(SourceEvent.from_dict(e) for e in data.get("events") or ()),
        )

    def _execution_event(self) -> SourceEvent | None:
        for event in self.events:
            if event.keys and event.keys[0] == TRANSACTION_EXECUTED:
                return event
        return None

    def resolve_gas_used(self) -> int | None:
        """Gas used, falling back to the ``transaction_executed`` event data.

        The event is ``transaction_executed(response, success, gas_used)``, so
        gas used is the last data felt.
        """
        if self.gas_used is not None:
            return self.gas_used
        event = self._execution_event()
        if event is None or not event.data:
            return None
        return event.data[-1]

    def resolve_status(self) -> int:
        """1 for success, 0 for a reverted execution."""
        event = self._execution_event()
        if event is not None and len(event.data) >= 2:
            return 1 if event.data[-2] != 0 else 0
        return 0 if self.execution_status == REVERTED_STATUS else 1


@dataclass(frozen=True, slots=True)
class EventWithTransaction:
    """One delivered event with its originating transaction and receipt."""

    event: SourceEvent
    transaction: SourceTransaction
    receipt: SourceReceipt

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EventWithTransaction":
        return cls(
            event=SourceEvent.from_dict(data.get("event") or {}),
            transaction=SourceTransaction.from_dict(data["transaction"]),
            receipt=SourceReceipt.from_dict(data["receipt"]),
        )


@dataclass(frozen=True, slots=True)
class SourceBlock:
    """A block as delivered by the stream.

    Events are kept raw so that a malformed item only invalidates its own
    transaction when the transformer parses it.
    """

    header: SourceHeader
    events: tuple[dict[str, Any], ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceBlock":
        return cls(
            header=SourceHeader.from_dict(data["header"]),
            events=tuple(data.get("events") or ()),
        )
