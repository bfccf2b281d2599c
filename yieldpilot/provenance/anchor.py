"""
Strategy Reference Anchor

Records where a published strategy document lives by writing
(strategyId, referenceUrl) to the vault's setStrategyReference() function.
A failed anchor does not undo the publication or the allocation.
"""

import structlog

from ..chains.base_client import BaseChainClient, ChainExecutionError
from ..chains.contracts import STRATEGY_VAULT_ABI
from ..models import TransactionReceipt

logger = structlog.get_logger(__name__)


class ReferenceAnchor:
    """Writes strategy reference pointers to a StrategyVault."""

    def __init__(self, client: BaseChainClient, contract_address: str):
        self._client = client
        self.contract_address = contract_address

    async def anchor(self, strategy_id: int, reference_url: str) -> TransactionReceipt:
        """
        Submit the pointer and wait for it to be mined.

        Raises:
            ValueError: If the reference is empty
            ChainExecutionError: On RPC failure or revert
        """
        if not reference_url:
            raise ValueError("Reference URL must not be empty")

        logger.info(
            "strategy_reference_submitting",
            strategy_id=strategy_id,
            reference_url=reference_url,
            contract=self.contract_address,
        )

        try:
            tx_hash = await self._client.execute_contract(
                self.contract_address,
                "setStrategyReference",
                [strategy_id, reference_url],
                STRATEGY_VAULT_ABI,
            )
            receipt = await self._client.wait_for_transaction(tx_hash)
        except ChainExecutionError:
            raise
        except Exception as e:
            raise ChainExecutionError(f"Setting strategy reference failed: {e}", cause=e) from e

        receipt.transaction_type = "strategy_reference"
        logger.info(
            "strategy_reference_confirmed",
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
        )
        return receipt
