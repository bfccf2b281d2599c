"""
Chain Client Base

This module provides the abstract base class for blockchain interactions
on the networks a strategy vault can live on. The execution pipeline only
depends on this interface, so tests and alternative transports can supply
their own implementation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from ..config import NetworkName, YieldPilotConfig, get_yieldpilot_config
from ..models import TransactionReceipt

logger = logging.getLogger(__name__)


class ChainClientError(Exception):
    """Base exception for chain client errors."""
    pass


class ChainExecutionError(ChainClientError):
    """
    Raised when an RPC call fails or a transaction reverts.

    The underlying exception is kept on ``cause``.
    """

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class TransactionFailedError(ChainExecutionError):
    """Raised when a mined transaction reverted."""
    pass


class BaseChainClient(ABC):
    """
    Abstract base class for blockchain client implementations.

    The client handles:
    - Read-only contract calls (vault balance)
    - Calldata encoding for batched sub-calls
    - Signed contract execution and receipt confirmation
    """

    def __init__(self, network: NetworkName, config: YieldPilotConfig | None = None):
        """
        Initialize the chain client.

        Args:
            network: The network this client connects to
            config: Optional configuration (global config by default)
        """
        self.network = network
        self.config = config or get_yieldpilot_config()
        self._rpc_endpoint = self.config.resolve_network_context(network).rpc_url
        self._initialized = False

    @abstractmethod
    async def initialize(self) -> None:
        """Establish the RPC connection and load the signing account."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the chain connection and cleanup resources."""
        pass

    @abstractmethod
    async def call_contract(
        self,
        contract_address: str,
        function_name: str,
        args: list[Any],
        abi: list[dict[str, Any]],
    ) -> Any:
        """
        Call a read-only contract function.

        Args:
            contract_address: The contract to call
            function_name: Name of the function to call
            args: Arguments to pass to the function
            abi: Contract ABI

        Returns:
            The return value from the contract call
        """
        pass

    @abstractmethod
    def encode_call(
        self,
        contract_address: str,
        function_name: str,
        args: list[Any],
        abi: list[dict[str, Any]],
    ) -> bytes:
        """Encode calldata for a contract function without sending it."""
        pass

    @abstractmethod
    async def execute_contract(
        self,
        contract_address: str,
        function_name: str,
        args: list[Any],
        abi: list[dict[str, Any]],
        value: int = 0,
    ) -> str:
        """
        Sign and submit a state-changing contract call.

        Returns:
            The transaction hash
        """
        pass

    @abstractmethod
    async def wait_for_transaction(
        self,
        tx_hash: str,
        timeout_seconds: int | None = None,
    ) -> TransactionReceipt:
        """
        Wait for a transaction to be mined.

        Raises:
            ChainExecutionError: If not mined within the timeout
            TransactionFailedError: If the transaction reverted
        """
        pass

    @property
    def is_initialized(self) -> bool:
        """Check if the client has been initialized."""
        return self._initialized

    def _ensure_initialized(self) -> None:
        """Raise error if client is not initialized."""
        if not self._initialized:
            raise ChainClientError(
                f"Chain client for {self.network.value} not initialized. "
                "Call initialize() first."
            )
