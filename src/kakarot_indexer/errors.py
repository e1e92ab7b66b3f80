"""Error taxonomy for the Kakarot indexer.

Errors derived from ``TransactionDropped`` and ``InvalidLog`` are recovered
locally by the block transformer: the offending transaction (or log) is left
out of the block and a ``Drop`` diagnostic carrying the reason code is
recorded. Anything else is treated as fatal and propagates to the caller.
"""

from enum import Enum


class DropReason(str, Enum):
    """Reason codes attached to every dropped transaction or log."""

    UNSUPPORTED_MULTICALL = "UNSUPPORTED_MULTICALL"
    INVALID_SIGNATURE_LENGTH = "INVALID_SIGNATURE_LENGTH"
    UNSUPPORTED_TRANSACTION_TYPE = "UNSUPPORTED_TRANSACTION_TYPE"
    INVALID_SIGNATURE_V = "INVALID_SIGNATURE_V"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    MALFORMED_TRANSACTION = "MALFORMED_TRANSACTION"
    MALFORMED_INPUT = "MALFORMED_INPUT"
    MISSING_GAS_USED = "MISSING_GAS_USED"
    DUPLICATE_TRANSACTION = "DUPLICATE_TRANSACTION"
    FILTERED = "FILTERED"
    INVALID_EVENT_KEYS = "INVALID_EVENT_KEYS"
    INVALID_LOG_ADDRESS = "INVALID_LOG_ADDRESS"
    INVALID_LOG_TOPIC = "INVALID_LOG_TOPIC"
    INVALID_LOG_DATA = "INVALID_LOG_DATA"


class IndexerError(Exception):
    """Base class for every error raised on purpose by the indexer."""


class TransactionDropped(IndexerError):
    """A transaction is structurally invalid and must be left out of the block."""

    reason: DropReason = DropReason.MALFORMED_TRANSACTION

    def __init__(self, message: str, reason: DropReason | None = None) -> None:
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class UnsupportedMultiCall(TransactionDropped):
    reason = DropReason.UNSUPPORTED_MULTICALL


class InvalidSignatureLength(TransactionDropped):
    reason = DropReason.INVALID_SIGNATURE_LENGTH


class UnsupportedTransactionType(TransactionDropped):
    reason = DropReason.UNSUPPORTED_TRANSACTION_TYPE


class InvalidSignatureV(TransactionDropped):
    reason = DropReason.INVALID_SIGNATURE_V


class InvalidSignature(TransactionDropped):
    reason = DropReason.INVALID_SIGNATURE


class MalformedTransaction(TransactionDropped):
    reason = DropReason.MALFORMED_TRANSACTION


class MalformedInput(TransactionDropped):
    reason = DropReason.MALFORMED_INPUT


class ReceiptAssemblyError(TransactionDropped):
    reason = DropReason.MISSING_GAS_USED


class InvalidLog(IndexerError):
    """A Starknet event cannot be rendered as an Ethereum log."""

    def __init__(self, message: str, reason: DropReason) -> None:
        super().__init__(message)
        self.reason = reason


class BlockFieldAccessError(IndexerError):
    """The remote accessor could not provide a header field.

    Fatal for the header of the block being processed; the whole block
    should be retried.
    """


class ConfigurationError(ValueError):
    """Invalid or missing configuration."""
