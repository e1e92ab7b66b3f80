"""
Blockchain encoding utilities for the Kakarot indexer.

This module provides the RLP encoding used to build the transactions and
receipts tries, and the logs bloom computation, for Ethereum typed
(EIP-2718) and legacy data structures.
"""

import logging
from typing import Sequence

import rlp
from web3 import Web3

logger = logging.getLogger(__name__)

BLOOM_BYTE_SIZE = 256
EMPTY_BLOOM = b"\x00" * BLOOM_BYTE_SIZE


class BlockchainEncoder:
    """Utilities for encoding blockchain data structures."""

    @staticmethod
    def encode_transaction_index(tx_index: int) -> bytes:
        """
        Encode a transaction index according to Ethereum RLP rules.

        Special case: Transaction index 0 encodes as the empty byte string (0x80).
        All other indices encode normally as integers.

        Args:
            tx_index: Transaction index to encode

        Returns:
            RLP-encoded transaction index, used as trie key
        """
        if tx_index == 0:
            return rlp.encode(b'')
        else:
            return rlp.encode(tx_index)

    @staticmethod
    def encode_log(address: bytes, topics: Sequence[bytes], data: bytes) -> list:
        """Log entry as the ``[address, [topics], data]`` RLP structure."""
        return [address, list(topics), data]

    @staticmethod
    def encode_receipt(
        tx_type: int,
        status: int,
        cumulative_gas_used: int,
        logs_bloom: bytes,
        encoded_logs: list,
    ) -> bytes:
        """
        RLP encode a transaction receipt with proper type handling.

        Handles both legacy (type 0) and typed transactions (EIP-2718).

        Args:
            tx_type: Type of the transaction the receipt belongs to
            status: 1 for success, 0 for failure
            cumulative_gas_used: Gas used in the block up to and including this transaction
            logs_bloom: 256-byte bloom of the receipt logs
            encoded_logs: Logs built with ``encode_log``

        Returns:
            RLP encoded receipt with type prefix if needed
        """
        encoded_status = b'\x01' if status == 1 else b''

        # Create receipt tuple
        receipt_data = [encoded_status, cumulative_gas_used, logs_bloom, encoded_logs]
        encoded = rlp.encode(receipt_data)

        # Add transaction type prefix for typed transactions
        if tx_type == 0:
            return encoded
        else:
            # For typed transactions, prepend the type byte
            return bytes([tx_type]) + encoded

    @staticmethod
    def add_to_bloom(bloom: bytearray, bloom_entry: bytes) -> None:
        """
        Add an entry to a bloom filter in place.

        Three bits are set, taken from the low 11 bits of the first three
        16-bit words of the keccak256 hash of the entry.

        Args:
            bloom: 256-byte bloom filter
            bloom_entry: Address or topic bytes
        """
        entry_hash = Web3.keccak(bloom_entry)

        for idx in (0, 2, 4):
            bit_to_set = int.from_bytes(entry_hash[idx:idx + 2], "big") & 0x07FF
            # Byte 0 holds the most significant bits.
            bit_index = 0x07FF - bit_to_set
            byte_index = bit_index // 8
            bloom[byte_index] |= 1 << (7 - (bit_index % 8))

    @staticmethod
    def logs_bloom(logs: Sequence[tuple[bytes, Sequence[bytes]]]) -> bytes:
        """
        Compute the bloom of a list of logs.

        Args:
            logs: ``(address, topics)`` pairs

        Returns:
            256-byte bloom with the address and every topic added
        """
        bloom = bytearray(EMPTY_BLOOM)
        for address, topics in logs:
            BlockchainEncoder.add_to_bloom(bloom, address)
            for topic in topics:
                BlockchainEncoder.add_to_bloom(bloom, topic)
        return bytes(bloom)

    @staticmethod
    def combine_blooms(first: bytes, second: bytes) -> bytes:
        """Bitwise OR of two blooms."""
        combined = int.from_bytes(first, "big") | int.from_bytes(second, "big")
        return combined.to_bytes(BLOOM_BYTE_SIZE, "big")
