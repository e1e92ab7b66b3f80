#!/usr/bin/env python3
"""Tests for the translation of Starknet events into Ethereum logs."""

import pytest

from kakarot_indexer.errors import DropReason, InvalidLog
from kakarot_indexer.log_translator import IGNORED_KEYS, TransactionPosition, to_eth_log
from kakarot_indexer.models import SourceEvent
from kakarot_indexer.utils.selectors import APPROVAL, EVM_CONTRACT_DEPLOYED, TRANSACTION_EXECUTED, TRANSFER


@pytest.fixture
def position():
    return TransactionPosition(
        transaction_hash=b"\x11" * 32,
        transaction_index=2,
        block_hash=b"\x22" * 32,
        block_number=100,
    )


def event(keys, data=()):
    return SourceEvent(keys=tuple(keys), data=tuple(data))


class TestToEthLog:
    """Tests for to_eth_log."""

    def test_topic_pairing_low_half_first(self, position):
        log = to_eth_log(event([0xABC, 0x1, 0x2]), position, log_index=5)

        assert log.address == b"\x00" * 18 + b"\x0a\xbc"
        assert log.topics == ((0x2 << 128 | 0x1).to_bytes(32, "big"),)
        assert log.log_index == 5

    def test_known_topic_fixture(self, position):
        # Transfer(address,address,uint256)
        topic = 0xDDF252AD1BE2C89B69C2B068FC378DAA952BA7F163C4A11628F55A4DF523B3EF
        low, high = topic & ((1 << 128) - 1), topic >> 128
        log = to_eth_log(event([0x1, low, high]), position, log_index=0)

        assert log.topics[0].hex() == "ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

    def test_address_only_event(self, position):
        log = to_eth_log(event([0x1], data=[0xDE, 0xAD]), position, log_index=0)
        assert log.topics == ()
        assert log.data == b"\xde\xad"

    def test_json_rendering(self, position):
        log = to_eth_log(event([0x1, 0x3, 0x0], data=[0x01]), position, log_index=4)
        rendered = log.to_json()

        assert rendered["removed"] is False
        assert rendered["logIndex"] == "0x4"
        assert rendered["transactionIndex"] == "0x2"
        assert rendered["transactionHash"] == "0x" + "11" * 32
        assert rendered["blockNumber"] == "0x64"
        assert rendered["address"] == "0x" + "00" * 19 + "01"
        assert rendered["data"] == "0x01"
        assert rendered["topics"] == ["0x" + "00" * 31 + "03"]

    @pytest.mark.parametrize("selector", [TRANSACTION_EXECUTED, EVM_CONTRACT_DEPLOYED, TRANSFER, APPROVAL])
    def test_ignored_events(self, position, selector):
        assert selector in IGNORED_KEYS
        assert to_eth_log(event([selector, 0x1, 0x2]), position, log_index=0) is None

    def test_empty_keys(self, position):
        with pytest.raises(InvalidLog) as exc_info:
            to_eth_log(event([]), position, log_index=0)
        assert exc_info.value.reason == DropReason.INVALID_EVENT_KEYS

    def test_even_key_count(self, position):
        with pytest.raises(InvalidLog, match="odd") as exc_info:
            to_eth_log(event([0x1, 0x2, 0x3, 0x4]), position, log_index=0)
        assert exc_info.value.reason == DropReason.INVALID_EVENT_KEYS

    def test_ignored_checked_before_key_count(self, position):
        assert to_eth_log(event([TRANSFER, 0x1]), position, log_index=0) is None

    def test_wide_address(self, position):
        with pytest.raises(InvalidLog) as exc_info:
            to_eth_log(event([1 << 160]), position, log_index=0)
        assert exc_info.value.reason == DropReason.INVALID_LOG_ADDRESS

    def test_too_many_topics(self, position):
        with pytest.raises(InvalidLog) as exc_info:
            to_eth_log(event([0x1] + [0x0] * 10), position, log_index=0)
        assert exc_info.value.reason == DropReason.INVALID_LOG_TOPIC

    def test_wide_topic_half(self, position):
        with pytest.raises(InvalidLog) as exc_info:
            to_eth_log(event([0x1, 1 << 128, 0x0]), position, log_index=0)
        assert exc_info.value.reason == DropReason.INVALID_LOG_TOPIC

    def test_data_felt_above_byte(self, position):
        with pytest.raises(InvalidLog) as exc_info:
            to_eth_log(event([0x1], data=[0x100]), position, log_index=0)
        assert exc_info.value.reason == DropReason.INVALID_LOG_DATA

    def test_rlp_shape(self, position):
        log = to_eth_log(event([0x1, 0x3, 0x0], data=[0x07]), position, log_index=0)
        assert log.to_rlp() == [log.address, [log.topics[0]], b"\x07"]
