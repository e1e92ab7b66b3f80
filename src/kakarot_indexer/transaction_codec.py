"""
Ethereum transaction codec.

Classifies the unsigned bytes embedded in a Kakarot invoke into one of the
supported transaction variants, attaches and validates the signature sent
alongside, and renders the signed transaction both as its canonical
serialization (used for hashing and the transactions trie) and as a JSON-RPC
object.

Supported variants:
- Legacy (untyped, EIP-155 replay protected once signed)
- Access list (EIP-2930, type 0x01)
- Fee market (EIP-1559, type 0x02)
"""

import logging
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Any, Union

import rlp
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import big_endian_to_int, encode_hex, keccak
from rlp.exceptions import DecodingError

from .calldata import RawSignature
from .errors import (
    InvalidSignature,
    InvalidSignatureV,
    MalformedTransaction,
    UnsupportedTransactionType,
)
from .utils.hex_utils import quantity

logger = logging.getLogger(__name__)

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Replay protected legacy signatures carry v = chain_id * 2 + 35 + y_parity.
EIP155_V_OFFSET = 35
MIN_LEGACY_CHAIN_ID = 37


class TransactionType(IntEnum):
    LEGACY = 0
    ACCESS_LIST = 1
    FEE_MARKET = 2
    BLOB = 3


AccessList = tuple[tuple[bytes, tuple[bytes, ...]], ...]


@dataclass(frozen=True, slots=True)
class LegacyTransaction:
    nonce: int
    gas_price: int
    gas_limit: int
    to: bytes | None
    value: int
    data: bytes
    chain_id: int | None = None
    v: int | None = None
    r: int | None = None
    s: int | None = None


@dataclass(frozen=True, slots=True)
class AccessListTransaction:
    chain_id: int
    nonce: int
    gas_price: int
    gas_limit: int
    to: bytes | None
    value: int
    data: bytes
    access_list: AccessList = ()
    v: int | None = None
    r: int | None = None
    s: int | None = None


@dataclass(frozen=True, slots=True)
class FeeMarketTransaction:
    chain_id: int
    nonce: int
    max_priority_fee_per_gas: int
    max_fee_per_gas: int
    gas_limit: int
    to: bytes | None
    value: int
    data: bytes
    access_list: AccessList = ()
    v: int | None = None
    r: int | None = None
    s: int | None = None


TypedTransaction = Union[LegacyTransaction, AccessListTransaction, FeeMarketTransaction]


@dataclass(frozen=True, slots=True)
class DecodedTransaction:
    """A signed transaction together with its derived identity.

    Attributes:
        transaction: The signed transaction
        sender: Recovered 20-byte sender address
        raw: Canonical signed serialization
        hash: keccak256 of ``raw``, the authoritative transaction hash
    """

    transaction: TypedTransaction
    sender: bytes
    raw: bytes
    hash: bytes


# Decoding

def _decode_int(field: Any, name: str) -> int:
    if not isinstance(field, bytes):
        raise MalformedTransaction(f"Field {name} must be a byte string")
    if field[:1] == b"\x00":
        raise MalformedTransaction(f"Field {name} has leading zeros")
    return big_endian_to_int(field)


def _decode_bytes(field: Any, name: str) -> bytes:
    if not isinstance(field, bytes):
        raise MalformedTransaction(f"Field {name} must be a byte string")
    return field


def _decode_to(field: Any) -> bytes | None:
    to = _decode_bytes(field, "to")
    if not to:
        return None
    if len(to) != 20:
        raise MalformedTransaction(f"Invalid recipient length {len(to)}")
    return to


def _decode_access_list(field: Any) -> AccessList:
    if not isinstance(field, list):
        raise MalformedTransaction("Access list must be a list")

    entries = []
    for entry in field:
        if not isinstance(entry, list) or len(entry) != 2:
            raise MalformedTransaction("Access list entry must be [address, storageKeys]")
        address, storage_keys = entry
        if not isinstance(address, bytes) or len(address) != 20:
            raise MalformedTransaction("Invalid access list address")
        if not isinstance(storage_keys, list):
            raise MalformedTransaction("Access list storage keys must be a list")
        for key in storage_keys:
            if not isinstance(key, bytes) or len(key) != 32:
                raise MalformedTransaction("Invalid access list storage key")
        entries.append((address, tuple(storage_keys)))
    return tuple(entries)


def _decode_list(payload: bytes) -> list:
    try:
        fields = rlp.decode(payload)
    except DecodingError as e:
        raise MalformedTransaction(f"Invalid RLP: {e}") from e
    if not isinstance(fields, list):
        raise MalformedTransaction("Transaction payload is not an RLP list")
    return fields


def _decode_legacy(payload: bytes) -> LegacyTransaction:
    fields = _decode_list(payload)
    if len(fields) not in (6, 9):
        raise MalformedTransaction(f"Legacy transaction has {len(fields)} fields")

    chain_id = None
    if len(fields) == 9:
        chain_id = _decode_int(fields[6], "chainId")
        # Replay protection needs a chain id >= 37 when signature math is applied;
        # add_signature later takes the chain id from v.
        if chain_id <= MIN_LEGACY_CHAIN_ID:
            chain_id = MIN_LEGACY_CHAIN_ID

    return LegacyTransaction(
        nonce=_decode_int(fields[0], "nonce"),
        gas_price=_decode_int(fields[1], "gasPrice"),
        gas_limit=_decode_int(fields[2], "gasLimit"),
        to=_decode_to(fields[3]),
        value=_decode_int(fields[4], "value"),
        data=_decode_bytes(fields[5], "data"),
        chain_id=chain_id,
    )


def _decode_access_list_tx(payload: bytes) -> AccessListTransaction:
    fields = _decode_list(payload)
    if len(fields) != 8:
        raise MalformedTransaction(f"Access list transaction has {len(fields)} fields")

    return AccessListTransaction(
        chain_id=_decode_int(fields[0], "chainId"),
        nonce=_decode_int(fields[1], "nonce"),
        gas_price=_decode_int(fields[2], "gasPrice"),
        gas_limit=_decode_int(fields[3], "gasLimit"),
        to=_decode_to(fields[4]),
        value=_decode_int(fields[5], "value"),
        data=_decode_bytes(fields[6], "data"),
        access_list=_decode_access_list(fields[7]),
    )


def _decode_fee_market_tx(payload: bytes) -> FeeMarketTransaction:
    fields = _decode_list(payload)
    if len(fields) != 9:
        raise MalformedTransaction(f"Fee market transaction has {len(fields)} fields")

    return FeeMarketTransaction(
        chain_id=_decode_int(fields[0], "chainId"),
        nonce=_decode_int(fields[1], "nonce"),
        max_priority_fee_per_gas=_decode_int(fields[2], "maxPriorityFeePerGas"),
        max_fee_per_gas=_decode_int(fields[3], "maxFeePerGas"),
        gas_limit=_decode_int(fields[4], "gasLimit"),
        to=_decode_to(fields[5]),
        value=_decode_int(fields[6], "value"),
        data=_decode_bytes(fields[7], "data"),
        access_list=_decode_access_list(fields[8]),
    )


def decode_unsigned(payload: bytes) -> TypedTransaction:
    """
    Classify and decode an unsigned transaction.

    A leading byte <= 0x7f is an EIP-2718 type tag; a leading byte >= 0xc0
    starts the RLP list of a legacy transaction.

    Raises:
        UnsupportedTransactionType: For any type tag other than 0x01 or 0x02
        MalformedTransaction: If the bytes do not decode
    """
    if not payload:
        raise MalformedTransaction("Empty transaction payload")

    first = payload[0]
    if first <= 0x7F:
        match first:
            case TransactionType.ACCESS_LIST:
                return _decode_access_list_tx(payload[1:])
            case TransactionType.FEE_MARKET:
                return _decode_fee_market_tx(payload[1:])
            case _:
                raise UnsupportedTransactionType(f"Unsupported transaction type {first:#04x}")
    if first >= 0xC0:
        return _decode_legacy(payload)
    raise MalformedTransaction(f"Invalid leading byte {first:#04x}")


# Encoding

def transaction_type(tx: TypedTransaction) -> TransactionType:
    match tx:
        case LegacyTransaction():
            return TransactionType.LEGACY
        case AccessListTransaction():
            return TransactionType.ACCESS_LIST
        case FeeMarketTransaction():
            return TransactionType.FEE_MARKET
        case _:
            raise UnsupportedTransactionType(f"Invalid transaction type: {type(tx).__name__}")


def _encode_access_list(access_list: AccessList) -> list:
    return [[address, list(storage_keys)] for address, storage_keys in access_list]


def _unsigned_fields(tx: TypedTransaction) -> list:
    to = tx.to or b""
    match tx:
        case LegacyTransaction():
            return [tx.nonce, tx.gas_price, tx.gas_limit, to, tx.value, tx.data]
        case AccessListTransaction():
            return [
                tx.chain_id, tx.nonce, tx.gas_price, tx.gas_limit, to, tx.value, tx.data,
                _encode_access_list(tx.access_list),
            ]
        case FeeMarketTransaction():
            return [
                tx.chain_id, tx.nonce, tx.max_priority_fee_per_gas, tx.max_fee_per_gas,
                tx.gas_limit, to, tx.value, tx.data, _encode_access_list(tx.access_list),
            ]
        case _:
            raise UnsupportedTransactionType(f"Invalid transaction type: {type(tx).__name__}")


def signing_hash(tx: TypedTransaction) -> bytes:
    """Hash signed by the sender (EIP-155 for legacy, EIP-2718 for typed)."""
    fields = _unsigned_fields(tx)
    match tx:
        case LegacyTransaction(chain_id=None):
            return keccak(rlp.encode(fields))
        case LegacyTransaction():
            return keccak(rlp.encode(fields + [tx.chain_id, 0, 0]))
        case AccessListTransaction() | FeeMarketTransaction():
            return keccak(bytes([transaction_type(tx)]) + rlp.encode(fields))
        case _:
            raise UnsupportedTransactionType(f"Invalid transaction type: {type(tx).__name__}")


def serialize(tx: TypedTransaction) -> bytes:
    """
    Canonical signed serialization.

    Raises:
        ValueError: If the transaction is not signed
    """
    if tx.v is None or tx.r is None or tx.s is None:
        raise ValueError(f"Transaction is not signed: {{r: {tx.r}, s: {tx.s}, v: {tx.v}}}")

    encoded = rlp.encode(_unsigned_fields(tx) + [tx.v, tx.r, tx.s])
    match tx:
        case LegacyTransaction():
            return encoded
        case AccessListTransaction() | FeeMarketTransaction():
            return bytes([transaction_type(tx)]) + encoded
        case _:
            raise UnsupportedTransactionType(f"Invalid transaction type: {type(tx).__name__}")


def y_parity(tx: TypedTransaction) -> int:
    if tx.v is None:
        raise ValueError("Transaction is not signed")
    match tx:
        case LegacyTransaction():
            return (tx.v - EIP155_V_OFFSET) % 2
        case AccessListTransaction() | FeeMarketTransaction():
            return tx.v
        case _:
            raise UnsupportedTransactionType(f"Invalid transaction type: {type(tx).__name__}")


def effective_gas_price(tx: TypedTransaction) -> int:
    """Gas price reported over JSON-RPC; the fee cap for fee market transactions."""
    match tx:
        case FeeMarketTransaction():
            return tx.max_fee_per_gas
        case LegacyTransaction() | AccessListTransaction():
            return tx.gas_price
        case _:
            raise UnsupportedTransactionType(f"Invalid transaction type: {type(tx).__name__}")


# Signing

def add_signature(tx: TypedTransaction, r: int, s: int, v: int) -> TypedTransaction:
    """
    Attach a signature to an unsigned transaction.

    For legacy transactions the chain id implied by ``v`` replaces the one
    decoded from the payload, including the decode-time minimum of 37; the
    signed transaction, its hash and its JSON-RPC form all use it.

    Args:
        tx: Unsigned transaction
        r: Signature r value
        s: Signature s value
        v: Signature v value; for legacy transactions it must include the chain id

    Returns:
        A new, signed transaction

    Raises:
        InvalidSignatureV: If v is < 35 for a legacy transaction, or not a
            y-parity for a typed one
        UnsupportedTransactionType: For any other variant
    """
    match tx:
        case LegacyTransaction():
            if v < EIP155_V_OFFSET:
                raise InvalidSignatureV(f"Invalid v value: {v}")
            return replace(tx, chain_id=(v - EIP155_V_OFFSET) // 2, v=v, r=r, s=s)
        case AccessListTransaction() | FeeMarketTransaction():
            if v not in (0, 1):
                raise InvalidSignatureV(f"Invalid v value: {v}")
            return replace(tx, v=v, r=r, s=s)
        case _:
            raise UnsupportedTransactionType(f"Invalid transaction type: {type(tx).__name__}")


def recover_sender(tx: TypedTransaction) -> bytes:
    """
    Recover the sender address from a signed transaction.

    Raises:
        InvalidSignature: If r or s is out of range or no key can be recovered
    """
    if tx.r is None or tx.s is None:
        raise InvalidSignature("Transaction is not signed")
    if not 0 < tx.r < SECP256K1_N:
        raise InvalidSignature(f"Invalid r value: {tx.r:#x}")
    # s-values greater than secp256k1n/2 are considered invalid.
    if not 0 < tx.s <= SECP256K1_N // 2:
        raise InvalidSignature(f"Invalid s value: {tx.s:#x}")

    try:
        signature = keys.Signature(vrs=(y_parity(tx), tx.r, tx.s))
        public_key = signature.recover_public_key_from_msg_hash(signing_hash(tx))
    except (BadSignature, ValidationError) as e:
        raise InvalidSignature(f"Cannot recover sender: {e}") from e
    return public_key.to_canonical_address()


def decode_transaction(payload: bytes, signature: RawSignature) -> DecodedTransaction:
    """
    Decode, sign and validate an embedded transaction.

    Raises:
        TransactionDropped: Any subclass describing why the transaction is invalid
    """
    unsigned = decode_unsigned(payload)
    signed = add_signature(unsigned, r=signature.r, s=signature.s, v=signature.v)
    sender = recover_sender(signed)
    raw = serialize(signed)
    return DecodedTransaction(transaction=signed, sender=sender, raw=raw, hash=keccak(raw))


def contract_address(sender: bytes, nonce: int) -> bytes:
    """Address of a contract created by ``sender`` at ``nonce``."""
    return keccak(rlp.encode([sender, nonce]))[12:]


# JSON-RPC

def _access_list_json(access_list: AccessList) -> list[dict[str, Any]]:
    return [
        {
            "address": encode_hex(address),
            "storageKeys": [encode_hex(key) for key in storage_keys],
        }
        for address, storage_keys in access_list
    ]


def to_json_rpc_tx(
    decoded: DecodedTransaction,
    block_hash: str | None,
    block_number: str | None,
    index: str | None,
) -> dict[str, Any]:
    """
    Render a decoded transaction as a JSON-RPC transaction object.

    Args:
        decoded: The decoded transaction
        block_hash: Block hash of the transaction
        block_number: Block number of the transaction
        index: Index of the transaction in the block
    """
    tx = decoded.transaction
    max_fee_per_gas = None
    max_priority_fee_per_gas = None
    access_list = None
    match tx:
        case FeeMarketTransaction():
            max_fee_per_gas = quantity(tx.max_fee_per_gas)
            max_priority_fee_per_gas = quantity(tx.max_priority_fee_per_gas)
            access_list = _access_list_json(tx.access_list)
        case AccessListTransaction():
            access_list = _access_list_json(tx.access_list)
        case LegacyTransaction():
            pass
        case _:
            raise UnsupportedTransactionType(f"Invalid transaction type: {type(tx).__name__}")

    rpc_tx: dict[str, Any] = {
        "blockHash": block_hash,
        "blockNumber": block_number,
        "from": encode_hex(decoded.sender),
        "gas": quantity(tx.gas_limit),
        "gasPrice": quantity(effective_gas_price(tx)),
        "maxFeePerGas": max_fee_per_gas,
        "maxPriorityFeePerGas": max_priority_fee_per_gas,
        "type": quantity(transaction_type(tx)),
        "accessList": access_list,
        "chainId": quantity(tx.chain_id) if tx.chain_id is not None else None,
        "hash": encode_hex(decoded.hash),
        "input": encode_hex(tx.data),
        "nonce": quantity(tx.nonce),
        "to": encode_hex(tx.to) if tx.to else None,
        "transactionIndex": index,
        "value": quantity(tx.value),
        "v": quantity(tx.v or 0),
        "r": quantity(tx.r or 0),
        "s": quantity(tx.s or 0),
    }
    if not isinstance(tx, LegacyTransaction):
        rpc_tx["yParity"] = quantity(y_parity(tx))
    return rpc_tx
