"""
Hex and byte helpers shared by every encoder.

Starknet hands us felts as hex strings, decimal strings or plain integers;
Ethereum JSON-RPC wants minimal quantities for numbers and fixed-width,
zero-padded data for hashes and addresses. These helpers convert between
the two worlds.
"""

from typing import Union

from eth_utils import int_to_big_endian, to_hex

Felt = Union[int, str]

FELT_BITS = 252


def felt_to_int(value: Felt) -> int:
    """
    Parse a felt given as an int, a 0x-prefixed hex string or a decimal string.

    Raises:
        ValueError: If the value cannot be parsed or is negative
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid felt: {value!r}")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            result = int(text, 16)
        else:
            result = int(text, 10)
    else:
        raise ValueError(f"Invalid felt type: {type(value).__name__}")

    if result < 0:
        raise ValueError(f"Felt must be non-negative, got {result}")
    return result


def quantity(value: int) -> str:
    """Minimal JSON-RPC quantity encoding (``0`` is ``0x0``)."""
    return to_hex(value)


def int_to_bytes(value: int) -> bytes:
    """Minimal big-endian bytes of ``value``; zero is a single zero byte."""
    return int_to_big_endian(value)


def int_to_fixed_bytes(value: int, length: int) -> bytes:
    """
    Big-endian bytes of ``value`` padded to exactly ``length`` bytes.

    Raises:
        ValueError: If the value does not fit
    """
    if value >= 1 << (8 * length):
        raise ValueError(f"Value {value:#x} does not fit in {length} bytes")
    return value.to_bytes(length, "big")
