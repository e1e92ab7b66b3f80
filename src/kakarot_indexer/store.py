"""
Output records and sinks.

Every record handed to the sink is a ``StoreItem`` tagged with the
collection it belongs to. For a given block the header is always the last
item.
"""

import json
import logging
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence, TextIO

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    TRANSACTIONS = "transactions"
    LOGS = "logs"
    RECEIPTS = "receipts"
    HEADERS = "headers"


PAYLOAD_KEYS: dict[Collection, str] = {
    Collection.TRANSACTIONS: "tx",
    Collection.LOGS: "log",
    Collection.RECEIPTS: "receipt",
    Collection.HEADERS: "header",
}


@dataclass(frozen=True, slots=True)
class StoreItem:
    """A record for the sink.

    Attributes:
        collection: Target collection
        data: ``{"tx" | "log" | "receipt" | "header": <JSON-RPC object>}``
    """

    collection: Collection
    data: dict[str, Any]

    @classmethod
    def of(cls, collection: Collection, payload: dict[str, Any]) -> "StoreItem":
        return cls(collection=collection, data={PAYLOAD_KEYS[collection]: payload})

    @property
    def payload(self) -> dict[str, Any]:
        return self.data[PAYLOAD_KEYS[self.collection]]

    def to_dict(self) -> dict[str, Any]:
        return {"collection": self.collection.value, "data": self.data}


class Sink(Protocol):
    """Persists the records of a block."""

    async def write(self, items: Sequence[StoreItem]) -> None:
        ...


class ConsoleSink:
    """Writes one JSON line per record."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout
        self.items_written = 0

    async def write(self, items: Sequence[StoreItem]) -> None:
        for item in items:
            self.stream.write(json.dumps(item.to_dict(), sort_keys=True) + "\n")
        self.stream.flush()
        self.items_written += len(items)
        logger.debug(f"Wrote {len(items)} items to console")
