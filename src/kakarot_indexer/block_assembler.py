"""
Block assembly: transactions and receipts tries, block bloom and header.

Tries and bloom live for a single block. They are carried in a
``BlockState`` accumulator folded over the block's transactions in delivery
order, so the trie key of every entry is the position of its transaction in
the rebuilt block.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any

import rlp
from eth_utils import encode_hex, keccak
from trie import HexaryTrie
from trie.constants import BLANK_NODE_HASH

from .errors import BlockFieldAccessError
from .field_accessor import BlockField, BlockFieldAccessor, BlockIdentifier
from .models import SourceHeader
from .receipt_assembler import Receipt
from .transaction_codec import DecodedTransaction
from .utils.blockchain_encoder import EMPTY_BLOOM, BlockchainEncoder
from .utils.hex_utils import int_to_fixed_bytes, quantity

logger = logging.getLogger(__name__)

# Post-merge constants
EMPTY_UNCLE_HASH = keccak(rlp.encode([]))
EMPTY_TRIE_ROOT = BLANK_NODE_HASH
ZERO_HASH = b"\x00" * 32
ZERO_NONCE = b"\x00" * 8


@dataclass(frozen=True, slots=True)
class BlockState:
    """Accumulator of a block being assembled.

    Attributes:
        transactions_trie: Index keyed trie of signed transactions
        receipts_trie: Index keyed trie of encoded receipts
        bloom: OR of every receipt bloom folded so far
        cumulative_gas_used: Gas used by every transaction folded so far
        transaction_count: Number of transactions folded so far
        log_count: Number of logs folded so far
    """

    transactions_trie: HexaryTrie
    receipts_trie: HexaryTrie
    bloom: bytes
    cumulative_gas_used: int
    transaction_count: int
    log_count: int

    @classmethod
    def empty(cls) -> "BlockState":
        return cls(
            transactions_trie=HexaryTrie({}),
            receipts_trie=HexaryTrie({}),
            bloom=EMPTY_BLOOM,
            cumulative_gas_used=0,
            transaction_count=0,
            log_count=0,
        )

    @property
    def transactions_root(self) -> bytes:
        return self.transactions_trie.root_hash

    @property
    def receipts_root(self) -> bytes:
        return self.receipts_trie.root_hash


def fold_transaction(
    state: BlockState,
    decoded: DecodedTransaction,
    receipt: Receipt,
) -> BlockState:
    """
    Insert a transaction and its receipt into the block.

    Args:
        state: Block state before this transaction
        decoded: The signed transaction
        receipt: Its receipt, built from ``state.cumulative_gas_used``

    Returns:
        Block state after this transaction

    Raises:
        ValueError: If the receipt does not follow the previous transaction
    """
    index = receipt.position.transaction_index
    if index != state.transaction_count:
        raise ValueError(f"Transaction index {index} folded out of order, expected {state.transaction_count}")
    if receipt.cumulative_gas_used < state.cumulative_gas_used:
        raise ValueError("Cumulative gas used must not decrease within a block")

    key = BlockchainEncoder.encode_transaction_index(index)
    state.transactions_trie[key] = decoded.raw
    state.receipts_trie[key] = receipt.encode()

    return replace(
        state,
        bloom=BlockchainEncoder.combine_blooms(state.bloom, receipt.logs_bloom),
        cumulative_gas_used=receipt.cumulative_gas_used,
        transaction_count=state.transaction_count + 1,
        log_count=state.log_count + len(receipt.logs),
    )


@dataclass(frozen=True, slots=True)
class BlockFields:
    """Header fields read from the field accessor."""

    coinbase: bytes
    base_fee_per_gas: int
    gas_limit: int


async def fetch_block_fields(accessor: BlockFieldAccessor, header: SourceHeader) -> BlockFields:
    """
    Read coinbase, base fee and gas limit for the block.

    Raises:
        BlockFieldAccessError: If a field cannot be read or is out of range
    """
    block = BlockIdentifier(number=header.block_number, hash=header.block_hash)
    coinbase = await accessor.get(BlockField.COINBASE, block)
    if coinbase is None:
        coinbase = header.sequencer_address
    base_fee = await accessor.get(BlockField.BASE_FEE, block)
    gas_limit = await accessor.get(BlockField.GAS_LIMIT, block)

    try:
        coinbase_bytes = int_to_fixed_bytes(coinbase, 20)
    except ValueError as e:
        raise BlockFieldAccessError(f"Invalid coinbase: {e}") from e

    return BlockFields(coinbase=coinbase_bytes, base_fee_per_gas=base_fee, gas_limit=gas_limit)


@dataclass(frozen=True, slots=True)
class BlockHeader:
    """The rebuilt Ethereum block header."""

    number: int
    hash: bytes
    parent_hash: bytes
    state_root: bytes
    transactions_root: bytes
    receipts_root: bytes
    logs_bloom: bytes
    gas_used: int
    gas_limit: int
    base_fee_per_gas: int
    coinbase: bytes
    timestamp: int
    transaction_count: int

    def to_json(self) -> dict[str, Any]:
        return {
            "number": quantity(self.number),
            "hash": encode_hex(self.hash),
            "parentHash": encode_hex(self.parent_hash),
            "nonce": encode_hex(ZERO_NONCE),
            "sha3Uncles": encode_hex(EMPTY_UNCLE_HASH),
            "logsBloom": encode_hex(self.logs_bloom),
            "transactionsRoot": encode_hex(self.transactions_root),
            "stateRoot": encode_hex(self.state_root),
            "receiptsRoot": encode_hex(self.receipts_root),
            "miner": encode_hex(self.coinbase),
            "difficulty": quantity(0),
            "totalDifficulty": quantity(0),
            "extraData": "0x",
            "size": quantity(0),
            "gasLimit": quantity(self.gas_limit),
            "gasUsed": quantity(self.gas_used),
            "timestamp": quantity(self.timestamp),
            "mixHash": encode_hex(ZERO_HASH),
            "baseFeePerGas": quantity(self.base_fee_per_gas),
            "withdrawalsRoot": encode_hex(EMPTY_TRIE_ROOT),
            "transactionCount": quantity(self.transaction_count),
        }


def build_header(source: SourceHeader, state: BlockState, fields: BlockFields) -> BlockHeader:
    """
    Build the header once every transaction of the block has been folded.

    Args:
        source: The Starknet header
        state: Final block state
        fields: Header fields read from the remote accessor
    """
    return BlockHeader(
        number=source.block_number,
        hash=int_to_fixed_bytes(source.block_hash, 32),
        parent_hash=int_to_fixed_bytes(source.parent_block_hash, 32),
        state_root=int_to_fixed_bytes(source.new_root, 32),
        transactions_root=state.transactions_root,
        receipts_root=state.receipts_root,
        logs_bloom=state.bloom,
        gas_used=state.cumulative_gas_used,
        gas_limit=fields.gas_limit,
        base_fee_per_gas=fields.base_fee_per_gas,
        coinbase=fields.coinbase,
        timestamp=source.timestamp,
        transaction_count=state.transaction_count,
    )
