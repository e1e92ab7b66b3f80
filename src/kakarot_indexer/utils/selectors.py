"""Starknet entry point and event selectors."""

from functools import lru_cache

from web3 import Web3

# Selectors are keccak256 truncated to the 250 low bits.
MASK_250 = (1 << 250) - 1


@lru_cache(maxsize=None)
def get_selector_from_name(name: str) -> int:
    """Compute the Starknet selector of an entry point or event name."""
    return int.from_bytes(Web3.keccak(text=name), "big") & MASK_250


TRANSACTION_EXECUTED = get_selector_from_name("transaction_executed")
EVM_CONTRACT_DEPLOYED = get_selector_from_name("evm_contract_deployed")
TRANSFER = get_selector_from_name("Transfer")
APPROVAL = get_selector_from_name("Approval")
