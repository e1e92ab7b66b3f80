#!/usr/bin/env python3
"""Configuration management for the Kakarot indexer.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables once at startup, with
sensible defaults where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import ClassVar
from urllib.parse import urlparse

from .errors import ConfigurationError
from .field_accessor import DEFAULT_BASE_FEE_PER_GAS, DEFAULT_BLOCK_GAS_LIMIT
from .utils.hex_utils import FELT_BITS, felt_to_int
from .utils.selectors import TRANSACTION_EXECUTED

# Get logger for this module
logger = logging.getLogger(__name__)

DEFAULT_STREAM_URL = "https://goerli.starknet.a5a.ch"
DEFAULT_STARTING_BLOCK = 930_793


def _validate_url(url: str, name: str, schemes: tuple[str, ...]) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in schemes:
        raise ConfigurationError(
            f"Invalid {name} scheme: {parsed.scheme}. "
            f"Expected {', '.join(schemes)}"
        )


def _parse_felt(value: str, name: str) -> int:
    try:
        felt = felt_to_int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid {name}: {value}") from None
    if felt >= 1 << FELT_BITS:
        raise ConfigurationError(f"{name} does not fit in a felt: {value}")
    return felt


@dataclass(frozen=True, slots=True)
class StreamConfig:
    """Configuration of the Starknet event stream.

    Attributes:
        stream_url: URL of the event stream
        auth_token: Authentication token of the stream (optional)
        starting_block: First block to index
        event_selectors: Selectors of the events the stream delivers
    """

    stream_url: str = DEFAULT_STREAM_URL
    auth_token: str = ""
    starting_block: int = DEFAULT_STARTING_BLOCK
    event_selectors: tuple[int, ...] = (TRANSACTION_EXECUTED,)

    def __post_init__(self) -> None:
        """Validate stream configuration."""
        if not self.stream_url:
            raise ConfigurationError("Stream URL is required (STREAM_URL)")
        _validate_url(self.stream_url, "stream URL", ("http", "https", "ws", "wss"))

        if self.starting_block < 0:
            raise ConfigurationError(f"Starting block must be non-negative, got {self.starting_block}")

        if not self.event_selectors:
            raise ConfigurationError("At least one event selector is required (EVENT_SELECTORS)")
        for selector in self.event_selectors:
            if not 0 <= selector < 1 << FELT_BITS:
                raise ConfigurationError(f"Event selector does not fit in a felt: {selector:#x}")


@dataclass(frozen=True, slots=True)
class StarknetConfig:
    """Configuration of the Starknet RPC used to read header fields.

    Attributes:
        rpc_url: Starknet JSON-RPC endpoint; without one, static header
            fields are used
        kakarot_address: Address of the Kakarot contract
        request_timeout: HTTP request timeout in seconds
        retry_count: Retry attempts for transient failures
        base_delay: First backoff delay in seconds
        max_delay: Maximum backoff delay in seconds
        coinbase: Static coinbase; the block's sequencer address when unset
        base_fee: Static base fee per gas
        gas_limit: Static block gas limit
    """

    rpc_url: str | None = None
    kakarot_address: int | None = None
    request_timeout: int = 30
    retry_count: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    coinbase: int | None = None
    base_fee: int = DEFAULT_BASE_FEE_PER_GAS
    gas_limit: int = DEFAULT_BLOCK_GAS_LIMIT

    def __post_init__(self) -> None:
        """Validate Starknet configuration."""
        if self.rpc_url:
            _validate_url(self.rpc_url, "RPC URL", ("http", "https"))
            if self.kakarot_address is None:
                raise ConfigurationError(
                    "KAKAROT_ADDRESS environment variable is required when STARKNET_NETWORK is set"
                )

        if self.request_timeout <= 0:
            raise ConfigurationError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ConfigurationError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.retry_count < 0:
            raise ConfigurationError(f"Retry count must be non-negative, got {self.retry_count}")
        if self.retry_count > 10:
            raise ConfigurationError(f"Retry count too high (max 10), got {self.retry_count}")

        if self.base_delay <= 0 or self.max_delay < self.base_delay:
            raise ConfigurationError(
                f"Invalid backoff delays: base={self.base_delay}, max={self.max_delay}"
            )

        if self.coinbase is not None and not 0 <= self.coinbase < 1 << 160:
            raise ConfigurationError(f"Coinbase is not a 20-byte address: {self.coinbase:#x}")
        if self.base_fee < 0:
            raise ConfigurationError(f"Base fee must be non-negative, got {self.base_fee}")
        if self.gas_limit <= 0:
            raise ConfigurationError(f"Gas limit must be positive, got {self.gas_limit}")

    @property
    def remote(self) -> bool:
        return bool(self.rpc_url)


@dataclass(frozen=True, slots=True)
class IndexerConfig:
    """Main configuration for the Kakarot indexer.

    Attributes:
        stream: Configuration of the event stream
        starknet: Configuration of the Starknet RPC
        sink_type: Where records are written
    """

    stream: StreamConfig = field(default_factory=StreamConfig)
    starknet: StarknetConfig = field(default_factory=StarknetConfig)
    sink_type: str = "console"

    SUPPORTED_SINKS: ClassVar[set[str]] = {"console"}

    def __post_init__(self) -> None:
        """Validate indexer configuration."""
        if self.sink_type not in self.SUPPORTED_SINKS:
            raise ConfigurationError(
                f"Unsupported sink: {self.sink_type}. "
                f"Supported sinks: {', '.join(sorted(self.SUPPORTED_SINKS))}"
            )

    @classmethod
    def from_env(cls) -> "IndexerConfig":
        """Load configuration from environment variables.

        Returns:
            IndexerConfig instance with loaded values

        Raises:
            ConfigurationError: If environment variables are missing or invalid
        """
        try:
            starting_block = int(os.environ.get("STARTING_BLOCK", str(DEFAULT_STARTING_BLOCK)))
            request_timeout = int(os.environ.get("REQUEST_TIMEOUT", "30"))
            retry_count = int(os.environ.get("RETRY_COUNT", "3"))
            base_delay = float(os.environ.get("RETRY_BASE_DELAY", "1.0"))
            max_delay = float(os.environ.get("RETRY_MAX_DELAY", "30.0"))
            base_fee = int(os.environ.get("BASE_FEE_PER_GAS", str(DEFAULT_BASE_FEE_PER_GAS)))
            gas_limit = int(os.environ.get("BLOCK_GAS_LIMIT", str(DEFAULT_BLOCK_GAS_LIMIT)))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from None

        selectors_env = os.environ.get("EVENT_SELECTORS", "")
        if selectors_env.strip():
            event_selectors = tuple(
                _parse_felt(selector.strip(), "event selector")
                for selector in selectors_env.split(",")
                if selector.strip()
            )
        else:
            event_selectors = (TRANSACTION_EXECUTED,)

        stream_config = StreamConfig(
            stream_url=os.environ.get("STREAM_URL", DEFAULT_STREAM_URL),
            auth_token=os.environ.get("APIBARA_AUTH_TOKEN", ""),
            starting_block=starting_block,
            event_selectors=event_selectors,
        )

        kakarot_env = os.environ.get("KAKAROT_ADDRESS", "")
        coinbase_env = os.environ.get("COINBASE_ADDRESS", "")
        starknet_config = StarknetConfig(
            rpc_url=os.environ.get("STARKNET_NETWORK") or None,
            kakarot_address=_parse_felt(kakarot_env, "KAKAROT_ADDRESS") if kakarot_env else None,
            request_timeout=request_timeout,
            retry_count=retry_count,
            base_delay=base_delay,
            max_delay=max_delay,
            coinbase=_parse_felt(coinbase_env, "COINBASE_ADDRESS") if coinbase_env else None,
            base_fee=base_fee,
            gas_limit=gas_limit,
        )

        return cls(
            stream=stream_config,
            starknet=starknet_config,
            sink_type=os.environ.get("SINK_TYPE", "console"),
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Kakarot Indexer Configuration")
        logger.info("=" * 60)

        logger.info("Stream:")
        logger.info(f"  URL: {self.stream.stream_url}")
        logger.info(f"  Auth Token: {'[SET]' if self.stream.auth_token else '[NOT SET]'}")
        logger.info(f"  Starting Block: {self.stream.starting_block}")
        logger.info(f"  Event Selectors: {', '.join(hex(s) for s in self.stream.event_selectors)}")

        logger.info("Starknet:")
        if self.starknet.remote:
            logger.info(f"  RPC URL: {self.starknet.rpc_url}")
            logger.info(f"  Kakarot: {self.starknet.kakarot_address:#x}")
            logger.info(f"  Request Timeout: {self.starknet.request_timeout} seconds")
            logger.info(f"  Retry Count: {self.starknet.retry_count}")
        else:
            logger.info("  RPC URL: [NOT SET] (static header fields)")
            coinbase = f"{self.starknet.coinbase:#x}" if self.starknet.coinbase is not None else "[sequencer address]"
            logger.info(f"  Coinbase: {coinbase}")
            logger.info(f"  Base Fee: {self.starknet.base_fee}")
            logger.info(f"  Gas Limit: {self.starknet.gas_limit}")

        logger.info(f"Sink: {self.sink_type}")
        logger.info("=" * 60)
