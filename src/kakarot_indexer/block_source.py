"""
Sources of Starknet blocks.

Blocks are delivered as the JSON objects produced by the Starknet event
stream. ``JsonLinesBlockSource`` replays such objects from a file, one block
per line, applying the same filters the stream applies: blocks below the
starting block are skipped and only events whose first key is an allowed
selector are kept.
"""

import json
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Protocol

from .utils.hex_utils import felt_to_int

logger = logging.getLogger(__name__)


class BlockSource(Protocol):
    """Asynchronous stream of raw blocks, in block order."""

    def blocks(self) -> AsyncIterator[dict[str, Any]]:
        ...


def _event_selector(item: Any) -> int | None:
    try:
        return felt_to_int(item["event"]["keys"][0])
    except (KeyError, IndexError, TypeError, ValueError):
        return None


class JsonLinesBlockSource:
    """Replays blocks from a JSON-lines file."""

    def __init__(
        self,
        path: str | Path,
        starting_block: int = 0,
        event_selectors: Iterable[int] = (),
    ) -> None:
        """
        Initialize the source.

        Args:
            path: File with one block object per line
            starting_block: Blocks with a lower number are skipped
            event_selectors: Allowed first keys; empty allows every event
        """
        self.path = Path(path)
        self.starting_block = starting_block
        self.event_selectors = frozenset(event_selectors)
        self.blocks_skipped = 0

    def filter_events(self, events: list[Any]) -> list[Any]:
        """
        Keep the events whose selector is allowed.

        Items whose selector cannot be read are kept so that the pipeline
        reports them as malformed instead of losing them silently.
        """
        if not self.event_selectors:
            return list(events)

        kept = []
        for item in events:
            selector = _event_selector(item)
            if selector is None or selector in self.event_selectors:
                kept.append(item)
        return kept

    async def blocks(self) -> AsyncIterator[dict[str, Any]]:
        """
        Yield the blocks of the file.

        Raises:
            ValueError: If a line is not a JSON block object
        """
        with self.path.open("r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue

                try:
                    block = json.loads(line)
                except json.JSONDecodeError as e:
                    raise ValueError(f"{self.path}:{line_number}: invalid JSON: {e}") from e
                if not isinstance(block, dict) or "header" not in block:
                    raise ValueError(f"{self.path}:{line_number}: not a block object")

                block_number = felt_to_int(block["header"]["blockNumber"])
                if block_number < self.starting_block:
                    self.blocks_skipped += 1
                    logger.debug(f"Skipping block {block_number} below starting block {self.starting_block}")
                    continue

                block["events"] = self.filter_events(block.get("events") or [])
                yield block
