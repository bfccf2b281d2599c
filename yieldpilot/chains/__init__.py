"""
Chain Client Package

Blockchain clients used by the execution pipeline.

Usage:
    from yieldpilot.chains import EVMChainClient
    from yieldpilot.config import NetworkName

    async def example():
        client = EVMChainClient(NetworkName.ROOTSTOCK)
        await client.initialize()
        balance = await client.call_contract(vault, "totalAssets", [], STRATEGY_VAULT_ABI)
"""

from .base_client import (
    BaseChainClient,
    ChainClientError,
    ChainExecutionError,
    TransactionFailedError,
)
from .contracts import ERC20_ABI, LENDING_POOL_ABI, STRATEGY_VAULT_ABI
from .evm_client import EVMChainClient

__all__ = [
    # Base classes and exceptions
    "BaseChainClient",
    "ChainClientError",
    "ChainExecutionError",
    "TransactionFailedError",
    # Implementations
    "EVMChainClient",
    # ABIs
    "ERC20_ABI",
    "LENDING_POOL_ABI",
    "STRATEGY_VAULT_ABI",
]
