"""
Kakarot indexer package.

Rebuilds the Ethereum view (transactions, receipts, logs and headers) of the
blocks of the Kakarot EVM running on Starknet.
"""

from .block_transformer import BlockResult, BlockTransformer, Drop
from .config import IndexerConfig
from .errors import DropReason, IndexerError, TransactionDropped
from .indexer import Indexer
from .store import Collection, StoreItem

__all__ = [
    "BlockResult",
    "BlockTransformer",
    "Collection",
    "Drop",
    "DropReason",
    "Indexer",
    "IndexerConfig",
    "IndexerError",
    "StoreItem",
    "TransactionDropped",
]
__version__ = "0.1.0"
