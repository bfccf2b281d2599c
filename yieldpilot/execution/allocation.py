"""
Lending Allocation

Sizes the transfer from the vault into the lending pool and submits it
through the vault's batched execute() entry point. All sub-calls of a batch
share one transaction: if any of them reverts, none of them take effect.

For the lending flow the batch is always, in order:
1. token.approve(lendingPool, amount)
2. lendingPool.deposit(amount)

Failed submissions are reported, never resubmitted.
"""

import math
from dataclasses import dataclass
from fractions import Fraction
from numbers import Real

import structlog

from ..chains.base_client import BaseChainClient, ChainExecutionError
from ..chains.contracts import ERC20_ABI, LENDING_POOL_ABI, STRATEGY_VAULT_ABI
from ..models import TransactionReceipt

logger = structlog.get_logger(__name__)


class NoAllocationError(Exception):
    """No positive percentage is configured for the lending protocol."""
    pass


class AllocationLimitError(Exception):
    """The configured percentage would move more than the vault holds."""
    pass


def compute_amount(total_balance: int, percentage: int | float | None) -> int:
    """
    Convert a percentage of the vault balance into a transfer amount.

    The result is floored: remainders are dropped, never rounded up.

    >>> compute_amount(999, 70)
    699

    Raises:
        NoAllocationError: percentage is missing, zero or negative
        AllocationLimitError: percentage is above 100
    """
    if percentage is None or isinstance(percentage, bool) or not isinstance(percentage, Real):
        raise NoAllocationError("No allocation for lending protocol found in strategy")
    if percentage <= 0:
        raise NoAllocationError("No allocation for lending protocol found in strategy")
    if percentage > 100:
        raise AllocationLimitError(
            f"Lending allocation of {percentage}% exceeds the vault balance"
        )

    if isinstance(percentage, int):
        return total_balance * percentage // 100
    # Exact rational arithmetic keeps fractional percentages floor-correct
    return math.floor(total_balance * Fraction(str(percentage)) / 100)


@dataclass(frozen=True)
class BatchCall:
    """One sub-call of a batched vault execution."""

    target: str
    data: bytes
    value: int = 0
    label: str = ""


def build_lending_allocation_batch(
    client: BaseChainClient,
    token_address: str,
    lending_pool_address: str,
    amount: int,
) -> list[BatchCall]:
    """Encode the approve + deposit pair for the lending pool."""
    approve = client.encode_call(
        token_address, "approve", [lending_pool_address, amount], ERC20_ABI
    )
    deposit = client.encode_call(lending_pool_address, "deposit", [amount], LENDING_POOL_ABI)
    return [
        BatchCall(target=token_address, data=approve, value=0, label="approve"),
        BatchCall(target=lending_pool_address, data=deposit, value=0, label="deposit"),
    ]


class VaultBatchExecutor:
    """
    Submits ordered sub-call batches through a StrategyVault.

    Example:
        ```python
        executor = VaultBatchExecutor(client, vault_address)
        total = await executor.get_total_assets()
        receipt = await executor.execute_lending_allocation(token, pool, amount)
        ```
    """

    def __init__(self, client: BaseChainClient, vault_address: str):
        self._client = client
        self.vault_address = vault_address

    async def get_total_assets(self) -> int:
        """Read the live vault balance. Not cached."""
        try:
            total = await self._client.call_contract(
                self.vault_address, "totalAssets", [], STRATEGY_VAULT_ABI
            )
        except ChainExecutionError:
            raise
        except Exception as e:
            raise ChainExecutionError(f"Failed to read vault total assets: {e}", cause=e) from e

        logger.info("vault_total_assets", vault=self.vault_address, total_assets=str(total))
        return int(total)

    async def execute(
        self,
        targets: list[str],
        calls: list[bytes],
        values: list[int],
    ) -> TransactionReceipt:
        """
        Run the calls atomically in one vault transaction and wait for it.

        Raises:
            ValueError: If the three lists differ in length or are empty
            ChainExecutionError: On RPC failure or revert
        """
        if not targets or not (len(targets) == len(calls) == len(values)):
            raise ValueError("targets, calls and values must be non-empty and equal length")

        try:
            tx_hash = await self._client.execute_contract(
                self.vault_address,
                "execute",
                [list(targets), list(calls), list(values)],
                STRATEGY_VAULT_ABI,
            )
            receipt = await self._client.wait_for_transaction(tx_hash)
        except ChainExecutionError:
            raise
        except Exception as e:
            raise ChainExecutionError(f"Vault execute failed: {e}", cause=e) from e

        receipt.transaction_type = "vault_execute"
        return receipt

    async def execute_batch(self, batch: list[BatchCall]) -> TransactionReceipt:
        return await self.execute(
            [c.target for c in batch], [c.data for c in batch], [c.value for c in batch]
        )

    async def execute_lending_allocation(
        self,
        token_address: str,
        lending_pool_address: str,
        amount: int,
    ) -> TransactionReceipt:
        """Approve and deposit ``amount`` into the lending pool in one batch."""
        batch = build_lending_allocation_batch(
            self._client, token_address, lending_pool_address, amount
        )
        logger.info(
            "allocation_submitting",
            vault=self.vault_address,
            lending_pool=lending_pool_address,
            amount=str(amount),
            calls=[c.label for c in batch],
        )
        receipt = await self.execute_batch(batch)
        logger.info(
            "allocation_confirmed",
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
        )
        return receipt
