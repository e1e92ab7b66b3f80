"""
Extraction of the embedded Ethereum transaction from a Starknet invoke.

The Kakarot account contract receives the unsigned Ethereum transaction as
the calldata of a single call, one byte per felt, and the signature as the
Starknet transaction signature split into 128-bit halves.
"""

import logging
from dataclasses import dataclass

from .errors import InvalidSignatureLength, UnsupportedMultiCall
from .models import SourceTransaction
from .utils.hex_utils import int_to_bytes

logger = logging.getLogger(__name__)

# call_array_len, to, selector, data_offset, data_len, calldata_len
CALL_FRAMING_LENGTH = 6
SIGNATURE_LENGTH = 5


@dataclass(frozen=True, slots=True)
class RawSignature:
    """Signature values as sent by the account, before any validation."""

    r: int
    s: int
    v: int


@dataclass(frozen=True, slots=True)
class DecodedCall:
    """Unsigned transaction bytes and signature of a Kakarot invoke."""

    payload: bytes
    signature: RawSignature


def uint256_to_int(low: int, high: int) -> int:
    """Join a Cairo ``Uint256`` split into low and high 128-bit halves."""
    return (high << 128) | low


def decode_payload(calldata: tuple[int, ...]) -> bytes:
    """
    Concatenate the payload felts following the call framing.

    Raises:
        UnsupportedMultiCall: If the call array does not hold exactly one call
    """
    if not calldata:
        raise UnsupportedMultiCall("No calldata")

    call_array_len = calldata[0]
    # Multi-calls are not supported.
    if call_array_len != 1:
        raise UnsupportedMultiCall(f"Invalid call array length {call_array_len}")

    return b"".join(int_to_bytes(felt) for felt in calldata[CALL_FRAMING_LENGTH:])


def decode_signature(signature: tuple[int, ...]) -> RawSignature:
    """
    Rebuild (r, s, v) from ``[r_low, r_high, s_low, s_high, v]``.

    Raises:
        InvalidSignatureLength: If the signature does not have 5 elements
    """
    if len(signature) != SIGNATURE_LENGTH:
        raise InvalidSignatureLength(f"Invalid signature length {len(signature)}")

    return RawSignature(
        r=uint256_to_int(low=signature[0], high=signature[1]),
        s=uint256_to_int(low=signature[2], high=signature[3]),
        v=signature[4],
    )


def decode_call(transaction: SourceTransaction) -> DecodedCall:
    """
    Extract the embedded transaction bytes and raw signature.

    Args:
        transaction: The originating Starknet transaction

    Returns:
        The unsigned payload and the raw signature

    Raises:
        UnsupportedMultiCall: If calldata is missing or holds several calls
        InvalidSignatureLength: If the signature is not 5 felts long
    """
    if transaction.calldata is None:
        raise UnsupportedMultiCall("No calldata")

    payload = decode_payload(transaction.calldata)
    signature = decode_signature(transaction.signature)
    logger.debug(
        f"Decoded call of {transaction.hash:#x}: {len(payload)} payload bytes"
    )
    return DecodedCall(payload=payload, signature=signature)
