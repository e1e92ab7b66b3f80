"""
Kakarot indexer service.

This module contains the service loop that pulls blocks from a block source,
runs them through the block transformer and hands the resulting records to
a sink.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

from .block_source import BlockSource, JsonLinesBlockSource
from .block_transformer import BlockResult, BlockTransformer
from .config import IndexerConfig
from .errors import BlockFieldAccessError
from .field_accessor import BlockFieldAccessor, StarknetFieldAccessor, StaticFieldAccessor
from .models import SourceBlock
from .store import ConsoleSink, Sink

logger = logging.getLogger(__name__)


def build_accessor(config: IndexerConfig) -> BlockFieldAccessor:
    """
    Create the header field accessor selected by the configuration.

    Args:
        config: Indexer configuration

    Returns:
        A remote accessor when a Starknet RPC is configured, static values otherwise
    """
    starknet = config.starknet
    if not starknet.remote:
        logger.info("No Starknet RPC configured, using static header fields")
        return StaticFieldAccessor(
            coinbase=starknet.coinbase,
            base_fee=starknet.base_fee,
            gas_limit=starknet.gas_limit,
        )

    return StarknetFieldAccessor(
        rpc_url=starknet.rpc_url,
        kakarot_address=starknet.kakarot_address,
        request_timeout=starknet.request_timeout,
        retry_count=starknet.retry_count,
        base_delay=starknet.base_delay,
        max_delay=starknet.max_delay,
    )


def build_sink(config: IndexerConfig) -> Sink:
    match config.sink_type:
        case "console":
            return ConsoleSink()
        case _:
            raise ValueError(f"Unsupported sink: {config.sink_type}")


class Indexer:
    """
    Service that indexes Starknet blocks as Ethereum blocks.

    Blocks are processed one after another. A block whose header fields
    cannot be read is retried as a whole; once retries are exhausted the
    service stops rather than skipping the block.
    """

    def __init__(
        self,
        config: IndexerConfig,
        source: BlockSource,
        sink: Sink | None = None,
        accessor: BlockFieldAccessor | None = None,
    ):
        """
        Initialize the indexer.

        Args:
            config: Indexer configuration
            source: Where blocks come from
            sink: Where records go; built from the configuration if omitted
            accessor: Header field accessor; built from the configuration if omitted
        """
        self.config = config
        self.source = source
        self.sink = sink or build_sink(config)
        self.transformer = BlockTransformer(accessor or build_accessor(config))
        self.running = False
        self.blocks_processed = 0
        self.last_block: int | None = None

        # Async coordination
        self.shutdown_event = asyncio.Event()

    @classmethod
    def from_env(cls, input_path: str | Path) -> "Indexer":
        """
        Create an Indexer replaying ``input_path`` with configuration from the environment.

        Raises:
            ConfigurationError: If environment variables are missing or invalid
        """
        config = IndexerConfig.from_env()
        config.log_config()
        source = JsonLinesBlockSource(
            input_path,
            starting_block=config.stream.starting_block,
            event_selectors=config.stream.event_selectors,
        )
        return cls(config, source)

    async def process_block(self, raw: SourceBlock | dict[str, Any]) -> BlockResult:
        """
        Transform a block, retrying when its header fields cannot be read.

        Raises:
            BlockFieldAccessError: If the block still fails after ``retry_count`` retries
        """
        block = raw if isinstance(raw, SourceBlock) else SourceBlock.from_dict(raw)
        retry_count = self.config.starknet.retry_count
        attempt = 0

        while True:
            try:
                return await self.transformer.transform(block)
            except BlockFieldAccessError as e:
                if attempt >= retry_count:
                    raise
                attempt += 1
                delay = min(
                    self.config.starknet.base_delay * (2 ** (attempt - 1)),
                    self.config.starknet.max_delay,
                )
                logger.warning(
                    f"Block {block.header.block_number} failed (attempt {attempt}/{retry_count}): {e}. "
                    f"Retrying in {delay} seconds..."
                )
                await asyncio.sleep(delay)

    async def run(self) -> None:
        """Main loop of the indexer service."""
        self.running = True
        logger.info("Kakarot Indexer starting...")

        try:
            async for raw in self.source.blocks():
                if self.shutdown_event.is_set():
                    logger.info("Shutdown requested, stopping before next block")
                    break

                result = await self.process_block(raw)
                await self.sink.write(result.items)
                self.blocks_processed += 1
                self.last_block = result.block_number

        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            raise
        finally:
            self.running = False
            stats = self.transformer.get_stats()
            logger.info(
                f"Kakarot Indexer stopped after {self.blocks_processed} blocks "
                f"(last block: {self.last_block}), stats: {stats}"
            )

    def stop(self) -> None:
        """Stop the service once the in-flight block is written."""
        self.running = False
        self.shutdown_event.set()
