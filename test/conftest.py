#!/usr/bin/env python3
"""Shared fixtures: signed Ethereum transactions wrapped in Starknet blocks."""

from dataclasses import dataclass
from typing import Any

import pytest
import rlp
from eth_account import Account
from eth_utils import big_endian_to_int, to_checksum_address

from kakarot_indexer.field_accessor import StaticFieldAccessor
from kakarot_indexer.utils.selectors import TRANSACTION_EXECUTED, get_selector_from_name

PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
SENDER = Account.from_key(PRIVATE_KEY).address
RECIPIENT = to_checksum_address("0x" + "ab" * 20)

LOW_MASK = (1 << 128) - 1
BLOCK_HASH = 0x0123
PARENT_HASH = 0x0122
BLOCK_NUMBER = 930_800
EVM_CONTRACT = 0xDEADBEEF


@dataclass
class SignedFixture:
    """A transaction signed by eth_account and its Starknet encoding."""

    raw: bytes
    hash: bytes
    payload: bytes
    calldata: list[int]
    signature: list[int]


def split_signed(raw: bytes) -> tuple[bytes, int, int, int]:
    """Unsigned payload and (v, r, s) of a signed transaction."""
    if raw[0] >= 0xC0:
        fields = rlp.decode(raw)
        v, r, s = (big_endian_to_int(f) for f in fields[6:])
        chain_id = (v - 35) // 2
        return rlp.encode(fields[:6] + [chain_id, 0, 0]), v, r, s

    fields = rlp.decode(raw[1:])
    v, r, s = (big_endian_to_int(f) for f in fields[-3:])
    return raw[:1] + rlp.encode(fields[:-3]), v, r, s


def to_calldata(payload: bytes) -> list[int]:
    """Single call framing followed by one felt per payload byte."""
    selector = get_selector_from_name("eth_send_transaction")
    return [1, 0x1234, selector, 0, len(payload), len(payload)] + list(payload)


def to_signature(v: int, r: int, s: int) -> list[int]:
    return [r & LOW_MASK, r >> 128, s & LOW_MASK, s >> 128, v]


def sign(tx: dict[str, Any]) -> SignedFixture:
    signed = Account.sign_transaction(tx, PRIVATE_KEY)
    raw = bytes(signed.raw_transaction)
    payload, v, r, s = split_signed(raw)
    return SignedFixture(
        raw=raw,
        hash=bytes(signed.hash),
        payload=payload,
        calldata=to_calldata(payload),
        signature=to_signature(v, r, s),
    )


def legacy_tx(nonce: int = 0, **overrides: Any) -> dict[str, Any]:
    tx = {
        "nonce": nonce,
        "gasPrice": 1_000_000_000,
        "gas": 21_000,
        "to": RECIPIENT,
        "value": 1,
        "data": b"",
        "chainId": 1,
    }
    tx.update(overrides)
    return tx


def access_list_tx(nonce: int = 0, **overrides: Any) -> dict[str, Any]:
    tx = {
        "type": 1,
        "chainId": 1,
        "nonce": nonce,
        "gasPrice": 2_000_000_000,
        "gas": 50_000,
        "to": RECIPIENT,
        "value": 0,
        "data": b"\x01\x02",
        "accessList": [
            {"address": RECIPIENT, "storageKeys": ["0x" + "00" * 31 + "01"]},
        ],
    }
    tx.update(overrides)
    return tx


def fee_market_tx(nonce: int = 0, **overrides: Any) -> dict[str, Any]:
    tx = {
        "type": 2,
        "chainId": 1,
        "nonce": nonce,
        "maxFeePerGas": 3_000_000_000,
        "maxPriorityFeePerGas": 1_000_000_000,
        "gas": 60_000,
        "to": RECIPIENT,
        "value": 5,
        "data": b"",
    }
    tx.update(overrides)
    return tx


def log_event(address: int = EVM_CONTRACT, topics: list[int] | None = None, data: bytes = b"") -> dict[str, Any]:
    """Starknet event of an EVM log, topics split in (low, high) halves."""
    keys = [hex(address)]
    for topic in topics or []:
        keys += [hex(topic & LOW_MASK), hex(topic >> 128)]
    return {"fromAddress": "0x1", "keys": keys, "data": [hex(b) for b in data], "index": 0}


def executed_event(gas_used: int, success: bool = True) -> dict[str, Any]:
    return {
        "fromAddress": "0x1",
        "keys": [hex(TRANSACTION_EXECUTED)],
        "data": ["0x0", "0x1" if success else "0x0", hex(gas_used)],
        "index": 0,
    }


def block_item(
    fixture: SignedFixture,
    starknet_hash: int,
    gas_used: int | None = 21_000,
    events: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Delivered item as produced by the Starknet event stream."""
    receipt: dict[str, Any] = {
        "transactionHash": hex(starknet_hash),
        "transactionIndex": "0x0",
        "executionStatus": "EXECUTION_STATUS_SUCCEEDED",
        "events": events or [],
    }
    if gas_used is not None:
        receipt["gasUsed"] = hex(gas_used)
    return {
        "event": {"fromAddress": "0x1", "keys": [hex(TRANSACTION_EXECUTED)], "data": [], "index": 0},
        "transaction": {
            "meta": {"hash": hex(starknet_hash), "signature": [hex(x) for x in fixture.signature]},
            "invokeV1": {"senderAddress": "0x5", "calldata": [hex(x) for x in fixture.calldata]},
        },
        "receipt": receipt,
    }


def make_block(items: list[dict[str, Any]], number: int = BLOCK_NUMBER) -> dict[str, Any]:
    return {
        "header": {
            "blockHash": hex(BLOCK_HASH),
            "parentBlockHash": hex(PARENT_HASH),
            "blockNumber": str(number),
            "sequencerAddress": "0x99",
            "newRoot": "0x42",
            "timestamp": "2023-10-01T12:00:00Z",
        },
        "events": items,
    }


@pytest.fixture
def legacy_fixture() -> SignedFixture:
    return sign(legacy_tx())


@pytest.fixture
def access_list_fixture() -> SignedFixture:
    return sign(access_list_tx())


@pytest.fixture
def fee_market_fixture() -> SignedFixture:
    return sign(fee_market_tx())


@pytest.fixture
def static_accessor() -> StaticFieldAccessor:
    return StaticFieldAccessor(coinbase=0xC0FFEE, base_fee=7, gas_limit=1_000_000)
