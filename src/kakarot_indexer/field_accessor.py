"""
Per-block header fields that Starknet does not carry.

The Ethereum header needs a coinbase, a base fee and a gas limit. Kakarot
exposes them as view entry points; ``StarknetFieldAccessor`` reads them with
``starknet_call`` at the block being indexed. ``StaticFieldAccessor`` serves
fixed values for deployments without an RPC endpoint; without a configured
coinbase the block's sequencer address is used.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import httpx

from .errors import BlockFieldAccessError
from .utils.hex_utils import felt_to_int
from .utils.selectors import get_selector_from_name

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_GAS_LIMIT = 30_000_000
DEFAULT_BASE_FEE_PER_GAS = 100_000_000_000


class BlockField(str, Enum):
    COINBASE = "coinbase"
    BASE_FEE = "base_fee"
    GAS_LIMIT = "gas_limit"


@dataclass(frozen=True, slots=True)
class BlockIdentifier:
    """Identifies a block by hash, number, or both (hash wins)."""

    number: int | None = None
    hash: int | None = None

    def to_rpc(self) -> dict[str, Any]:
        if self.hash is not None:
            return {"block_hash": hex(self.hash)}
        if self.number is not None:
            return {"block_number": self.number}
        raise ValueError("Block identifier needs a hash or a number")


class BlockFieldAccessor(Protocol):
    """Read-only access to header fields of a given block.

    A ``None`` coinbase stands for the sequencer address of the block.
    """

    async def get(self, field: BlockField, block: BlockIdentifier) -> int | None:
        ...


class StaticFieldAccessor:
    """Serves the same values for every block."""

    def __init__(
        self,
        coinbase: int | None = None,
        base_fee: int = DEFAULT_BASE_FEE_PER_GAS,
        gas_limit: int = DEFAULT_BLOCK_GAS_LIMIT,
    ) -> None:
        self.values: dict[BlockField, int | None] = {
            BlockField.COINBASE: coinbase,
            BlockField.BASE_FEE: base_fee,
            BlockField.GAS_LIMIT: gas_limit,
        }

    async def get(self, field: BlockField, block: BlockIdentifier) -> int | None:
        return self.values[field]


class StarknetFieldAccessor:
    """
    Reads header fields from the Kakarot contract over Starknet JSON-RPC.

    Transport failures and 5xx responses are retried with exponential
    backoff; JSON-RPC errors are not retried.
    """

    ENTRY_POINTS: dict[BlockField, str] = {
        BlockField.COINBASE: "get_coinbase",
        BlockField.BASE_FEE: "get_base_fee",
        BlockField.GAS_LIMIT: "get_block_gas_limit",
    }

    def __init__(
        self,
        rpc_url: str,
        kakarot_address: int,
        request_timeout: float = 30.0,
        retry_count: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the accessor.

        Args:
            rpc_url: Starknet JSON-RPC endpoint
            kakarot_address: Address of the Kakarot contract
            request_timeout: Timeout of a single request in seconds
            retry_count: Attempts after the first one on transient failures
            base_delay: First backoff delay in seconds
            max_delay: Upper bound of the backoff delay
            transport: Optional httpx transport, mostly for tests
        """
        self.rpc_url = rpc_url
        self.kakarot_address = kakarot_address
        self.request_timeout = request_timeout
        self.retry_count = retry_count
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.transport = transport
        self._request_id = 0

    async def _rpc_post(self, method: str, params: Any) -> Any:
        """Post a JSON-RPC request and return its ``result``.

        Raises:
            httpx.HTTPError: On transport failures and HTTP error statuses
            BlockFieldAccessError: On JSON-RPC errors or malformed responses
        """
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}

        async with httpx.AsyncClient(transport=self.transport) as client:
            logger.debug(f"Posting to {self.rpc_url}: {json.dumps(payload)}")
            response: httpx.Response = await client.post(
                self.rpc_url, json=payload, timeout=self.request_timeout
            )
            response.raise_for_status()
            body = response.json()

        if not isinstance(body, dict):
            raise BlockFieldAccessError(f"Malformed JSON-RPC response: {body!r}")
        if "error" in body:
            raise BlockFieldAccessError(f"{method} failed: {body['error']}")
        if "result" not in body:
            raise BlockFieldAccessError(f"{method} returned no result")
        return body["result"]

    @staticmethod
    def _is_transient(error: httpx.HTTPError) -> bool:
        if isinstance(error, httpx.HTTPStatusError):
            return error.response.status_code >= 500
        return isinstance(error, httpx.TransportError)

    async def call(self, entry_point: str, block: BlockIdentifier) -> list[int]:
        """
        Call a Kakarot view entry point at ``block``.

        Raises:
            BlockFieldAccessError: If the call fails or retries are exhausted
        """
        params = {
            "request": {
                "contract_address": hex(self.kakarot_address),
                "entry_point_selector": hex(get_selector_from_name(entry_point)),
                "calldata": [],
            },
            "block_id": block.to_rpc(),
        }

        attempt = 0
        while True:
            try:
                result = await self._rpc_post("starknet_call", params)
                return [felt_to_int(felt) for felt in result]
            except httpx.HTTPError as e:
                if not self._is_transient(e) or attempt >= self.retry_count:
                    raise BlockFieldAccessError(
                        f"{entry_point} at {block} failed after {attempt + 1} attempts: {e}"
                    ) from e
                attempt += 1
                delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
                logger.warning(
                    f"{entry_point} failed (attempt {attempt}/{self.retry_count}): {e}. "
                    f"Retrying in {delay} seconds..."
                )
                await asyncio.sleep(delay)
            except (TypeError, ValueError) as e:
                raise BlockFieldAccessError(f"{entry_point} returned malformed felts: {e}") from e

    async def get(self, field: BlockField, block: BlockIdentifier) -> int:
        felts = await self.call(self.ENTRY_POINTS[field], block)
        match felts:
            case [value]:
                return value
            case [low, high]:
                # Uint256 return value
                return (high << 128) | low
            case _:
                raise BlockFieldAccessError(
                    f"Unexpected return value for {field.value}: {felts}"
                )
