#!/usr/bin/env python3
"""Tests for the configuration module."""

import logging
import os
from unittest.mock import patch

import pytest

from kakarot_indexer.config import IndexerConfig, StarknetConfig, StreamConfig
from kakarot_indexer.errors import ConfigurationError
from kakarot_indexer.utils.selectors import TRANSACTION_EXECUTED


class TestStreamConfig:
    """Tests for StreamConfig."""

    def test_defaults(self):
        config = StreamConfig()

        assert config.stream_url == "https://goerli.starknet.a5a.ch"
        assert config.starting_block == 930_793
        assert config.event_selectors == (TRANSACTION_EXECUTED,)

    def test_invalid_url_scheme(self):
        with pytest.raises(ValueError, match="Invalid stream URL scheme"):
            StreamConfig(stream_url="ftp://invalid.scheme")

    def test_websocket_url(self):
        assert StreamConfig(stream_url="wss://stream.example").stream_url == "wss://stream.example"

    def test_negative_starting_block(self):
        with pytest.raises(ConfigurationError, match="non-negative"):
            StreamConfig(starting_block=-1)

    def test_selector_wider_than_felt(self):
        with pytest.raises(ConfigurationError, match="does not fit in a felt"):
            StreamConfig(event_selectors=(1 << 252,))


class TestStarknetConfig:
    """Tests for StarknetConfig."""

    def test_static_by_default(self):
        config = StarknetConfig()
        assert config.remote is False

    def test_rpc_requires_kakarot_address(self):
        with pytest.raises(ConfigurationError, match="KAKAROT_ADDRESS"):
            StarknetConfig(rpc_url="https://rpc.example")

    def test_request_timeout_bounds(self):
        with pytest.raises(ValueError, match="must be positive"):
            StarknetConfig(request_timeout=0)
        with pytest.raises(ValueError, match="too long"):
            StarknetConfig(request_timeout=121)

    def test_retry_count_bounds(self):
        with pytest.raises(ValueError, match="non-negative"):
            StarknetConfig(retry_count=-1)
        with pytest.raises(ValueError, match="too high"):
            StarknetConfig(retry_count=11)

    def test_backoff_delays(self):
        with pytest.raises(ValueError, match="Invalid backoff delays"):
            StarknetConfig(base_delay=10.0, max_delay=1.0)

    def test_static_header_values(self):
        config = StarknetConfig()
        assert config.coinbase is None
        assert config.base_fee == 100_000_000_000
        assert config.gas_limit == 30_000_000

    def test_coinbase_wider_than_address(self):
        with pytest.raises(ConfigurationError, match="20-byte address"):
            StarknetConfig(coinbase=1 << 160)

    def test_non_positive_gas_limit(self):
        with pytest.raises(ConfigurationError, match="Gas limit must be positive"):
            StarknetConfig(gas_limit=0)


class TestIndexerConfig:
    """Tests for IndexerConfig."""

    def test_from_env_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = IndexerConfig.from_env()

        assert config.stream.starting_block == 930_793
        assert config.stream.auth_token == ""
        assert config.starknet.remote is False
        assert config.sink_type == "console"

    def test_from_env_full(self):
        env = {
            "STREAM_URL": "https://mainnet.starknet.a5a.ch",
            "APIBARA_AUTH_TOKEN": "secret-token",
            "STARTING_BLOCK": "1000",
            "EVENT_SELECTORS": "0x1, 0x2",
            "STARKNET_NETWORK": "https://rpc.example",
            "KAKAROT_ADDRESS": "0x7a4f",
            "REQUEST_TIMEOUT": "10",
            "RETRY_COUNT": "5",
        }
        with patch.dict(os.environ, env, clear=True):
            config = IndexerConfig.from_env()

        assert config.stream.stream_url == "https://mainnet.starknet.a5a.ch"
        assert config.stream.starting_block == 1000
        assert config.stream.event_selectors == (1, 2)
        assert config.starknet.rpc_url == "https://rpc.example"
        assert config.starknet.kakarot_address == 0x7A4F
        assert config.starknet.request_timeout == 10
        assert config.starknet.retry_count == 5

    def test_from_env_static_header_values(self):
        env = {"COINBASE_ADDRESS": "0xc0ffee", "BASE_FEE_PER_GAS": "7", "BLOCK_GAS_LIMIT": "1000"}
        with patch.dict(os.environ, env, clear=True):
            config = IndexerConfig.from_env()

        assert config.starknet.coinbase == 0xC0FFEE
        assert config.starknet.base_fee == 7
        assert config.starknet.gas_limit == 1000

    def test_from_env_invalid_number(self):
        with patch.dict(os.environ, {"STARTING_BLOCK": "abc"}, clear=True):
            with pytest.raises(ConfigurationError, match="Invalid numeric setting"):
                IndexerConfig.from_env()

    def test_from_env_invalid_selector(self):
        with patch.dict(os.environ, {"EVENT_SELECTORS": "0xzz"}, clear=True):
            with pytest.raises(ConfigurationError, match="Invalid event selector"):
                IndexerConfig.from_env()

    def test_unsupported_sink(self):
        with pytest.raises(ConfigurationError, match="Unsupported sink"):
            IndexerConfig(sink_type="mongo")

    def test_log_config_masks_token(self, caplog):
        config = IndexerConfig(stream=StreamConfig(auth_token="secret-token"))
        with caplog.at_level(logging.INFO):
            config.log_config()

        assert "[SET]" in caplog.text
        assert "secret-token" not in caplog.text
        assert "static header fields" in caplog.text
