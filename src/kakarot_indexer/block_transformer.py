"""
Per-block pipeline turning Starknet activity into Ethereum records.

A block is processed in two phases. First every delivered item is parsed
and its embedded transaction decoded; this phase has no shared state and
any item may fail on its own. Then the decoded transactions are folded, in
delivery order, into the block state: logs get their block scoped index,
receipts get the running cumulative gas, and both tries receive the entry at
the transaction's position. The header is built last.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any

from eth_utils import encode_hex

from .block_assembler import BlockHeader, BlockState, build_header, fetch_block_fields, fold_transaction
from .calldata import decode_call
from .errors import DropReason, InvalidLog, MalformedInput, TransactionDropped
from .field_accessor import BlockFieldAccessor
from .log_translator import LogEntry, TransactionPosition, to_eth_log
from .models import EventWithTransaction, SourceBlock
from .receipt_assembler import build_receipt
from .store import Collection, StoreItem
from .transaction_codec import DecodedTransaction, decode_transaction, to_json_rpc_tx
from .utils.hex_utils import int_to_fixed_bytes, quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Drop:
    """Diagnostic for a transaction or log left out of the block.

    Attributes:
        reason: Reason code
        starknet_transaction_hash: Originating Starknet transaction, if known
        detail: Human readable explanation
    """

    reason: DropReason
    starknet_transaction_hash: int | None
    detail: str

    def __str__(self) -> str:
        tx = f"{self.starknet_transaction_hash:#x}" if self.starknet_transaction_hash is not None else "unknown"
        return f"Drop({self.reason.value}, tx={tx}, {self.detail})"


@dataclass(frozen=True, slots=True)
class StagedTransaction:
    """A delivered item whose transaction decoded successfully."""

    source: EventWithTransaction
    decoded: DecodedTransaction


@dataclass(frozen=True, slots=True)
class BlockResult:
    """Output of one block.

    Attributes:
        block_number: Number of the processed block
        items: Records for the sink, header last
        drops: Diagnostics of everything left out
        header: The rebuilt header
    """

    block_number: int
    items: tuple[StoreItem, ...]
    drops: tuple[Drop, ...]
    header: BlockHeader


class BlockTransformer:
    """Rebuilds the Ethereum view of a Starknet block.

    The transformer holds no per-block state; blocks can be transformed
    concurrently as long as the accessor supports it.
    """

    def __init__(self, accessor: BlockFieldAccessor) -> None:
        """
        Initialize the transformer.

        Args:
            accessor: Source of coinbase, base fee and gas limit
        """
        self.accessor = accessor
        self.stats: Counter[str] = Counter()

    def _record_drop(self, drops: list[Drop], drop: Drop) -> None:
        drops.append(drop)
        self.stats[drop.reason.value] += 1
        logger.warning(f"Dropped: {drop}")

    @staticmethod
    def parse_item(raw: dict[str, Any]) -> EventWithTransaction:
        """
        Parse one delivered item.

        Raises:
            MalformedInput: If the item does not have the expected shape
        """
        try:
            return EventWithTransaction.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedInput(f"Invalid event item: {e!r}") from e

    @staticmethod
    def decode_item(item: EventWithTransaction) -> StagedTransaction:
        """
        Decode the Ethereum transaction carried by an item.

        Raises:
            TransactionDropped: If the transaction is structurally invalid
        """
        call = decode_call(item.transaction)
        decoded = decode_transaction(call.payload, call.signature)
        return StagedTransaction(source=item, decoded=decoded)

    def stage(self, block: SourceBlock, drops: list[Drop]) -> list[StagedTransaction]:
        """Parse and decode every item, keeping delivery order."""
        staged: list[StagedTransaction] = []
        seen: set[int] = set()

        for raw in block.events:
            try:
                item = self.parse_item(raw)
            except TransactionDropped as e:
                self._record_drop(drops, Drop(e.reason, None, str(e)))
                continue

            starknet_hash = item.transaction.hash
            if starknet_hash in seen:
                self._record_drop(drops, Drop(
                    DropReason.DUPLICATE_TRANSACTION, starknet_hash, "Transaction delivered twice"
                ))
                continue

            try:
                staged.append(self.decode_item(item))
            except TransactionDropped as e:
                self._record_drop(drops, Drop(e.reason, starknet_hash, str(e)))
                continue
            seen.add(starknet_hash)

        return staged

    def translate_logs(
        self,
        staged: StagedTransaction,
        position: TransactionPosition,
        first_log_index: int,
    ) -> tuple[tuple[LogEntry, ...], list[Drop]]:
        """Translate the receipt events of a transaction, collecting invalid ones as drops."""
        logs: list[LogEntry] = []
        log_drops: list[Drop] = []
        starknet_hash = staged.source.transaction.hash

        for event in staged.source.receipt.events:
            try:
                log = to_eth_log(event, position, first_log_index + len(logs))
            except InvalidLog as e:
                log_drops.append(Drop(e.reason, starknet_hash, str(e)))
                continue
            if log is None:
                logger.debug(f"{DropReason.FILTERED.value}: Kakarot event {event.keys[0]:#x} is not a log")
                continue
            logs.append(log)

        return tuple(logs), log_drops

    def apply(
        self,
        state: BlockState,
        staged: StagedTransaction,
        block: SourceBlock,
        drops: list[Drop],
    ) -> tuple[BlockState, list[StoreItem]]:
        """
        Fold one transaction into the block.

        Either the transaction, its logs and its receipt are all returned, or
        ``TransactionDropped`` is raised and ``state`` is left untouched. Invalid
        logs are only recorded in ``drops`` once the transaction is folded.
        """
        header = block.header
        block_hash = int_to_fixed_bytes(header.block_hash, 32)
        position = TransactionPosition(
            transaction_hash=staged.decoded.hash,
            transaction_index=state.transaction_count,
            block_hash=block_hash,
            block_number=header.block_number,
        )

        logs, log_drops = self.translate_logs(staged, position, state.log_count)
        receipt = build_receipt(
            decoded=staged.decoded,
            logs=logs,
            source_receipt=staged.source.receipt,
            position=position,
            cumulative_gas_used=state.cumulative_gas_used,
        )
        new_state = fold_transaction(state, staged.decoded, receipt)

        rpc_tx = to_json_rpc_tx(
            staged.decoded,
            block_hash=encode_hex(block_hash),
            block_number=quantity(header.block_number),
            index=quantity(position.transaction_index),
        )
        items = [StoreItem.of(Collection.TRANSACTIONS, rpc_tx)]
        items.extend(StoreItem.of(Collection.LOGS, log.to_json()) for log in logs)
        items.append(StoreItem.of(Collection.RECEIPTS, receipt.to_json()))

        for drop in log_drops:
            self._record_drop(drops, drop)
        return new_state, items

    async def transform(self, block: SourceBlock | dict[str, Any]) -> BlockResult:
        """
        Transform a block into its ordered records.

        Args:
            block: The block, parsed or as delivered by the stream

        Returns:
            Records and drop diagnostics of the block

        Raises:
            BlockFieldAccessError: If the header fields cannot be read; the
                whole block should be retried
        """
        if not isinstance(block, SourceBlock):
            block = SourceBlock.from_dict(block)

        # Fetched first; the whole block is retried when this fails
        fields = await fetch_block_fields(self.accessor, block.header)

        drops: list[Drop] = []
        items: list[StoreItem] = []
        state = BlockState.empty()

        for staged in self.stage(block, drops):
            try:
                state, tx_items = self.apply(state, staged, block, drops)
            except TransactionDropped as e:
                self._record_drop(drops, Drop(e.reason, staged.source.transaction.hash, str(e)))
                continue
            items.extend(tx_items)

        header = build_header(block.header, state, fields)
        items.append(StoreItem.of(Collection.HEADERS, header.to_json()))

        self.stats["blocks"] += 1
        self.stats["transactions"] += state.transaction_count
        self.stats["logs"] += state.log_count
        logger.info(
            f"Block {block.header.block_number}: {state.transaction_count} transactions, "
            f"{state.log_count} logs, {len(drops)} dropped, gas used {state.cumulative_gas_used}"
        )

        return BlockResult(
            block_number=block.header.block_number,
            items=tuple(items),
            drops=tuple(drops),
            header=header,
        )

    def get_stats(self) -> dict[str, int]:
        """
        Get transformer statistics.

        Returns:
            Counts of blocks, transactions, logs and drops per reason code
        """
        return dict(self.stats)
