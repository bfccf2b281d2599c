"""
EVM Chain Client Implementation

This module provides the concrete implementation of the chain client
for the EVM-compatible networks strategy vaults are deployed on
(Rootstock, Celo, Saga). It uses web3.py for all blockchain interactions.

Fee handling follows the network: EIP-1559 fees where the latest block
reports a base fee, legacy gas pricing otherwise (Rootstock).
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TransactionNotFound

from ..config import NetworkName, YieldPilotConfig
from ..models import TransactionReceipt
from .base_client import (
    BaseChainClient,
    ChainClientError,
    ChainExecutionError,
    TransactionFailedError,
)

logger: logging.Logger = logging.getLogger(__name__)


class EVMChainClient(BaseChainClient):
    """
    Chain client implementation for EVM-compatible blockchains.

    The client is not connected until initialize() is called. Transactions
    are signed locally with the agent account loaded from configuration.
    """

    def __init__(self, network: NetworkName, config: YieldPilotConfig | None = None) -> None:
        super().__init__(network, config)
        self._w3: AsyncWeb3 | None = None
        self._agent_account: LocalAccount | None = None
        self._contract_cache: dict[tuple[str, int], Any] = {}
        self._tx_lock = asyncio.Lock()
        # Next nonce after the last broadcast, ahead of what the node may report
        self._pending_nonce: int | None = None

    def _get_w3(self) -> AsyncWeb3:
        """Return the Web3 instance, raising if not initialized."""
        if self._w3 is None:
            raise ChainClientError(
                f"Chain client for {self.network.value} not initialized. "
                "Call initialize() first."
            )
        return self._w3

    async def initialize(self) -> None:
        """
        Initialize the chain connection and agent wallet.

        The agent account signs vault transactions. A missing key is not
        fatal here: read-only calls still work and submissions fail later.
        """
        self._w3 = AsyncWeb3(AsyncHTTPProvider(self._rpc_endpoint))

        try:
            chain_id: int = await self._w3.eth.chain_id
            logger.info(f"Connected to {self.network.value} (chain_id: {chain_id})")
        except Exception as e:
            raise ChainClientError(f"Failed to connect to {self.network.value}: {e}")

        if self.config.agent_private_key:
            try:
                self._agent_account = Account.from_key(self.config.agent_private_key)
                logger.info(f"Agent account loaded: {self._agent_account.address}")
            except Exception as e:
                logger.warning(f"Failed to load agent account: {e}")

        self._initialized = True

    async def close(self) -> None:
        """Dispose of the provider and cached contracts."""
        if self._w3 and hasattr(self._w3.provider, "disconnect"):
            await self._w3.provider.disconnect()
        self._w3 = None
        self._agent_account = None
        self._contract_cache.clear()
        self._pending_nonce = None
        self._initialized = False

    # ==================== Contract Operations ====================

    async def call_contract(
        self,
        contract_address: str,
        function_name: str,
        args: list[Any],
        abi: list[dict[str, Any]],
    ) -> Any:
        """Call a view function. No transaction is sent."""
        self._ensure_initialized()
        contract = self._get_contract(contract_address, abi)

        try:
            func: Any = getattr(contract.functions, function_name)
            return await func(*args).call()
        except Exception as e:
            raise ChainExecutionError(
                f"Call to {function_name} on {contract_address} failed: {e}", cause=e
            ) from e

    def encode_call(
        self,
        contract_address: str,
        function_name: str,
        args: list[Any],
        abi: list[dict[str, Any]],
    ) -> bytes:
        """ABI-encode a function call into raw calldata."""
        contract = self._get_contract(contract_address, abi)
        encoded: str = contract.encode_abi(function_name, args=args)
        return bytes.fromhex(encoded.removeprefix("0x"))

    async def execute_contract(
        self,
        contract_address: str,
        function_name: str,
        args: list[Any],
        abi: list[dict[str, Any]],
        value: int = 0,
    ) -> str:
        """Encode, sign and broadcast a state-changing call."""
        self._ensure_initialized()
        data = self.encode_call(contract_address, function_name, args, abi)

        try:
            tx_hash = await self.send_transaction(contract_address, data=data, value=value)
        except ChainClientError:
            raise
        except Exception as e:
            raise ChainExecutionError(
                f"Submitting {function_name} to {contract_address} failed: {e}", cause=e
            ) from e

        logger.info(f"Transaction sent: {tx_hash} ({function_name})")
        return tx_hash

    # ==================== Transaction Operations ====================

    async def send_transaction(
        self,
        to_address: str,
        data: bytes | None = None,
        value: int = 0,
        gas_limit: int | None = None,
    ) -> str:
        """
        Build, sign and broadcast a transaction from the agent account.

        Args:
            to_address: Recipient contract
            data: Calldata
            value: Native value in wei
            gas_limit: Optional gas limit override

        Returns:
            The transaction hash as 0x-prefixed hex
        """
        self._ensure_initialized()
        w3 = self._get_w3()

        if not self._agent_account:
            raise ChainExecutionError("No agent signing account configured")

        agent_account: LocalAccount = self._agent_account

        # One signer: nonce assignment, signing and broadcast must not interleave
        async with self._tx_lock:
            nonce = await self._next_nonce(w3, agent_account.address)
            tx: dict[str, Any] = {
                "from": agent_account.address,
                "to": w3.to_checksum_address(to_address),
                "value": value,
                "nonce": nonce,
                "chainId": await w3.eth.chain_id,
            }
            if data:
                tx["data"] = data

            if gas_limit:
                tx["gas"] = gas_limit
            else:
                tx["gas"] = await w3.eth.estimate_gas(tx)

            latest_block: Any = await w3.eth.get_block("latest")
            base_fee: int | None = latest_block.get("baseFeePerGas")
            if base_fee is not None:
                max_priority_fee: int = await w3.eth.max_priority_fee
                tx["maxFeePerGas"] = base_fee * 2 + max_priority_fee
                tx["maxPriorityFeePerGas"] = max_priority_fee
            else:
                tx["gasPrice"] = await w3.eth.gas_price

            signed_tx: Any = agent_account.sign_transaction(tx)
            tx_hash: Any = await w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            self._pending_nonce = nonce + 1

        return w3.to_hex(tx_hash)

    async def _next_nonce(self, w3: AsyncWeb3, address: str) -> int:
        """Pending nonce from the node, never below the last one this client used."""
        chain_nonce: int = await w3.eth.get_transaction_count(address, "pending")
        if self._pending_nonce is None:
            return chain_nonce
        return max(chain_nonce, self._pending_nonce)

    async def wait_for_transaction(
        self,
        tx_hash: str,
        timeout_seconds: int | None = None,
    ) -> TransactionReceipt:
        """
        Wait for a transaction to be mined.

        Polls for the receipt with exponential backoff, capped at 10 seconds
        between polls.
        """
        self._ensure_initialized()
        w3 = self._get_w3()
        timeout = timeout_seconds or self.config.receipt_timeout_seconds

        loop = asyncio.get_running_loop()
        start_time: float = loop.time()
        poll_interval: float = 1.0

        while True:
            if loop.time() - start_time > timeout:
                raise ChainExecutionError(
                    f"Transaction {tx_hash} not confirmed within {timeout}s"
                )

            try:
                receipt: Any = await w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None  # Not mined yet
            except Exception as e:
                raise ChainExecutionError(
                    f"Failed to fetch receipt for {tx_hash}: {e}", cause=e
                ) from e

            if receipt:
                if receipt["status"] != 1:
                    raise TransactionFailedError(f"Transaction {tx_hash} reverted")

                block: Any = await w3.eth.get_block(receipt["blockNumber"])
                logger.info(f"Transaction confirmed in block {receipt['blockNumber']}")
                return TransactionReceipt(
                    tx_hash=tx_hash,
                    network=self.network.value,
                    block_number=receipt["blockNumber"],
                    timestamp=datetime.fromtimestamp(block["timestamp"], UTC),
                    from_address=receipt["from"],
                    to_address=receipt["to"] or "",
                    gas_used=receipt["gasUsed"],
                    status="success",
                )

            await asyncio.sleep(poll_interval)
            poll_interval = min(poll_interval * 1.5, 10.0)

    # ==================== Helper Methods ====================

    def _get_contract(self, contract_address: str, abi: list[dict[str, Any]]) -> Any:
        """Get or create a contract instance for an address/ABI pair."""
        w3 = self._get_w3()
        address = w3.to_checksum_address(contract_address)
        key = (address, id(abi))
        if key not in self._contract_cache:
            self._contract_cache[key] = w3.eth.contract(address=address, abi=abi)
        return self._contract_cache[key]
