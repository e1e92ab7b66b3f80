#!/usr/bin/env python3
"""End-to-end tests of the per-block pipeline."""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import (
    BLOCK_HASH,
    SENDER,
    block_item,
    executed_event,
    fee_market_tx,
    legacy_tx,
    log_event,
    make_block,
    sign,
)
from kakarot_indexer.block_transformer import BlockTransformer
from kakarot_indexer.errors import BlockFieldAccessError, DropReason
from kakarot_indexer.store import Collection
from kakarot_indexer.utils.selectors import TRANSFER

TOPIC = 0xDDF252AD1BE2C89B69C2B068FC378DAA952BA7F163C4A11628F55A4DF523B3EF


def collections(result):
    return [item.collection for item in result.items]


def payloads(result, collection):
    return [item.payload for item in result.items if item.collection == collection]


class TestBlockTransformer:
    """Test suite for BlockTransformer."""

    @pytest.mark.asyncio
    async def test_two_transactions(self, static_accessor):
        first = sign(legacy_tx(nonce=0))
        second = sign(fee_market_tx(nonce=1))
        block = make_block([
            block_item(first, 0x100, gas_used=21_000, events=[log_event(topics=[TOPIC], data=b"\x01")]),
            block_item(second, 0x101, gas_used=50_000, events=[
                log_event(topics=[TOPIC, 1]),
                executed_event(50_000),
            ]),
        ])

        result = await BlockTransformer(static_accessor).transform(block)

        assert result.drops == ()
        assert collections(result) == [
            Collection.TRANSACTIONS, Collection.LOGS, Collection.RECEIPTS,
            Collection.TRANSACTIONS, Collection.LOGS, Collection.RECEIPTS,
            Collection.HEADERS,
        ]

        txs = payloads(result, Collection.TRANSACTIONS)
        assert [tx["hash"] for tx in txs] == ["0x" + first.hash.hex(), "0x" + second.hash.hex()]
        assert [tx["transactionIndex"] for tx in txs] == ["0x0", "0x1"]
        assert all(tx["from"] == SENDER.lower() for tx in txs)
        assert all(tx["blockHash"] == "0x" + BLOCK_HASH.to_bytes(32, "big").hex() for tx in txs)

        logs = payloads(result, Collection.LOGS)
        assert [log["logIndex"] for log in logs] == ["0x0", "0x1"]
        assert logs[0]["topics"] == ["0x" + TOPIC.to_bytes(32, "big").hex()]
        assert logs[0]["transactionHash"] == "0x" + first.hash.hex()

        receipts = payloads(result, Collection.RECEIPTS)
        assert [r["cumulativeGasUsed"] for r in receipts] == [hex(21_000), hex(71_000)]

        header = result.items[-1].payload
        assert header["gasUsed"] == hex(71_000)
        assert header["transactionCount"] == "0x2"
        assert header["miner"] == "0x" + "00" * 17 + "c0ffee"
        assert header["gasLimit"] == hex(1_000_000)
        assert header["baseFeePerGas"] == "0x7"
        assert header["timestamp"] == hex(1696161600)
        assert header["number"] == hex(930_800)

    @pytest.mark.asyncio
    async def test_transform_is_deterministic(self, static_accessor):
        block = make_block([
            block_item(sign(legacy_tx(nonce=0)), 0x100),
            block_item(sign(fee_market_tx(nonce=1)), 0x101),
        ])
        transformer = BlockTransformer(static_accessor)

        first = await transformer.transform(block)
        second = await transformer.transform(block)

        assert [item.to_dict() for item in first.items] == [item.to_dict() for item in second.items]

    @pytest.mark.asyncio
    async def test_empty_block_still_has_header(self, static_accessor):
        result = await BlockTransformer(static_accessor).transform(make_block([]))

        assert collections(result) == [Collection.HEADERS]
        assert result.header.gas_used == 0
        assert result.header.transaction_count == 0

    @pytest.mark.asyncio
    async def test_dropped_transaction_does_not_shift_others(self, static_accessor):
        good = sign(legacy_tx(nonce=0))
        multicall = sign(legacy_tx(nonce=1))
        multicall.calldata[0] = 2
        block = make_block([
            block_item(multicall, 0x200),
            block_item(good, 0x201),
        ])

        transformer = BlockTransformer(static_accessor)
        result = await transformer.transform(block)

        assert [drop.reason for drop in result.drops] == [DropReason.UNSUPPORTED_MULTICALL]
        assert result.drops[0].starknet_transaction_hash == 0x200
        tx = payloads(result, Collection.TRANSACTIONS)[0]
        assert tx["hash"] == "0x" + good.hash.hex()
        assert tx["transactionIndex"] == "0x0"
        assert transformer.get_stats()[DropReason.UNSUPPORTED_MULTICALL.value] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mutate, reason", [
        (lambda f: f.signature.pop(), DropReason.INVALID_SIGNATURE_LENGTH),
        (lambda f: f.signature.__setitem__(4, 27), DropReason.INVALID_SIGNATURE_V),
        (lambda f: f.signature.__setitem__(0, 0) or f.signature.__setitem__(1, 0), DropReason.INVALID_SIGNATURE),
        (lambda f: f.calldata.__setitem__(6, 0x85), DropReason.MALFORMED_TRANSACTION),
        (lambda f: f.calldata.__setitem__(6, 0x03), DropReason.UNSUPPORTED_TRANSACTION_TYPE),
    ])
    async def test_drop_reasons(self, static_accessor, mutate, reason):
        fixture = sign(legacy_tx())
        mutate(fixture)
        result = await BlockTransformer(static_accessor).transform(make_block([block_item(fixture, 0x300)]))

        assert [drop.reason for drop in result.drops] == [reason]
        assert collections(result) == [Collection.HEADERS]

    @pytest.mark.asyncio
    async def test_missing_gas_used_drops_whole_transaction(self, static_accessor):
        fixture = sign(legacy_tx())
        item = block_item(fixture, 0x400, gas_used=None, events=[log_event(topics=[TOPIC])])
        result = await BlockTransformer(static_accessor).transform(make_block([item]))

        assert [drop.reason for drop in result.drops] == [DropReason.MISSING_GAS_USED]
        assert collections(result) == [Collection.HEADERS]
        assert result.header.transactions_root == result.header.receipts_root

    @pytest.mark.asyncio
    async def test_invalid_logs_of_dropped_transaction_not_counted(self, static_accessor):
        fixture = sign(legacy_tx())
        events = [{"fromAddress": "0x1", "keys": ["0x1", "0x2"], "data": [], "index": 0}]
        item = block_item(fixture, 0x450, gas_used=None, events=events)
        transformer = BlockTransformer(static_accessor)
        result = await transformer.transform(make_block([item]))

        assert [drop.reason for drop in result.drops] == [DropReason.MISSING_GAS_USED]
        stats = transformer.get_stats()
        assert DropReason.INVALID_EVENT_KEYS.value not in stats
        assert stats[DropReason.MISSING_GAS_USED.value] == 1

    @pytest.mark.asyncio
    async def test_duplicate_starknet_transaction(self, static_accessor):
        fixture = sign(legacy_tx())
        block = make_block([block_item(fixture, 0x500), block_item(fixture, 0x500)])
        result = await BlockTransformer(static_accessor).transform(block)

        assert [drop.reason for drop in result.drops] == [DropReason.DUPLICATE_TRANSACTION]
        assert len(payloads(result, Collection.TRANSACTIONS)) == 1

    @pytest.mark.asyncio
    async def test_malformed_item(self, static_accessor):
        block = make_block([{"event": {}, "transaction": {"meta": {}}, "receipt": {}}])
        result = await BlockTransformer(static_accessor).transform(block)

        assert [drop.reason for drop in result.drops] == [DropReason.MALFORMED_INPUT]
        assert result.drops[0].starknet_transaction_hash is None

    @pytest.mark.asyncio
    async def test_invalid_and_filtered_logs(self, static_accessor):
        fixture = sign(legacy_tx())
        events = [
            {"fromAddress": "0x1", "keys": [hex(TRANSFER), "0x1", "0x2"], "data": [], "index": 0},
            {"fromAddress": "0x1", "keys": ["0x1", "0x2"], "data": [], "index": 1},
            log_event(topics=[TOPIC]),
        ]
        result = await BlockTransformer(static_accessor).transform(make_block([block_item(fixture, 0x600, events=events)]))

        assert [drop.reason for drop in result.drops] == [DropReason.INVALID_EVENT_KEYS]
        logs = payloads(result, Collection.LOGS)
        assert len(logs) == 1
        assert logs[0]["logIndex"] == "0x0"
        receipt = payloads(result, Collection.RECEIPTS)[0]
        assert receipt["logs"] == logs

    @pytest.mark.asyncio
    async def test_field_access_error_propagates(self):
        accessor = AsyncMock()
        accessor.get = AsyncMock(side_effect=BlockFieldAccessError("rpc down"))
        transformer = BlockTransformer(accessor)

        with pytest.raises(BlockFieldAccessError, match="rpc down"):
            await transformer.transform(make_block([block_item(sign(legacy_tx()), 0x700)]))
        assert transformer.get_stats() == {}

    @pytest.mark.asyncio
    async def test_unknown_errors_propagate(self, static_accessor):
        block = make_block([block_item(sign(legacy_tx()), 0x800)])
        with patch("kakarot_indexer.block_transformer.build_receipt", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError, match="boom"):
                await BlockTransformer(static_accessor).transform(block)
