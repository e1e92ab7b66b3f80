"""
Receipt assembly for rebuilt Ethereum transactions.

A receipt depends on the gas used by every transaction before it in the
block, so receipts must be assembled in transaction order with the running
cumulative gas threaded through by the caller.
"""

import logging
from dataclasses import dataclass
from typing import Any

from eth_utils import encode_hex

from .errors import ReceiptAssemblyError
from .log_translator import LogEntry, TransactionPosition
from .models import SourceReceipt
from .transaction_codec import (
    DecodedTransaction,
    TransactionType,
    contract_address,
    effective_gas_price,
    transaction_type,
)
from .utils.blockchain_encoder import BlockchainEncoder
from .utils.hex_utils import quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Receipt:
    """An Ethereum transaction receipt."""

    tx_type: TransactionType
    status: int
    gas_used: int
    cumulative_gas_used: int
    logs_bloom: bytes
    logs: tuple[LogEntry, ...]
    position: TransactionPosition
    sender: bytes
    to: bytes | None
    contract_address: bytes | None
    effective_gas_price: int

    def encode(self) -> bytes:
        """Receipt encoding stored in the receipts trie."""
        return BlockchainEncoder.encode_receipt(
            tx_type=self.tx_type,
            status=self.status,
            cumulative_gas_used=self.cumulative_gas_used,
            logs_bloom=self.logs_bloom,
            encoded_logs=[log.to_rlp() for log in self.logs],
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "transactionHash": encode_hex(self.position.transaction_hash),
            "transactionIndex": quantity(self.position.transaction_index),
            "blockHash": encode_hex(self.position.block_hash),
            "blockNumber": quantity(self.position.block_number),
            "from": encode_hex(self.sender),
            "to": encode_hex(self.to) if self.to else None,
            "cumulativeGasUsed": quantity(self.cumulative_gas_used),
            "gasUsed": quantity(self.gas_used),
            "effectiveGasPrice": quantity(self.effective_gas_price),
            "contractAddress": encode_hex(self.contract_address) if self.contract_address else None,
            "logs": [log.to_json() for log in self.logs],
            "logsBloom": encode_hex(self.logs_bloom),
            "type": quantity(self.tx_type),
            "status": quantity(self.status),
        }


def build_receipt(
    decoded: DecodedTransaction,
    logs: tuple[LogEntry, ...],
    source_receipt: SourceReceipt,
    position: TransactionPosition,
    cumulative_gas_used: int,
) -> Receipt:
    """
    Assemble the receipt of a transaction.

    Args:
        decoded: The signed transaction
        logs: Logs emitted by the transaction, in order
        source_receipt: Starknet receipt of the originating transaction
        position: Position of the transaction in the block
        cumulative_gas_used: Gas used by every previous transaction in the block

    Returns:
        The receipt; its cumulative gas includes this transaction

    Raises:
        ReceiptAssemblyError: If the Starknet receipt does not tell the gas used
    """
    gas_used = source_receipt.resolve_gas_used()
    if gas_used is None:
        raise ReceiptAssemblyError(
            f"Missing gas used for Starknet transaction {source_receipt.transaction_hash:#x}"
        )

    tx = decoded.transaction
    created = contract_address(decoded.sender, tx.nonce) if tx.to is None else None

    return Receipt(
        tx_type=transaction_type(tx),
        status=source_receipt.resolve_status(),
        gas_used=gas_used,
        cumulative_gas_used=cumulative_gas_used + gas_used,
        logs_bloom=BlockchainEncoder.logs_bloom([(log.address, log.topics) for log in logs]),
        logs=logs,
        position=position,
        sender=decoded.sender,
        to=tx.to,
        contract_address=created,
        effective_gas_price=effective_gas_price(tx),
    )
