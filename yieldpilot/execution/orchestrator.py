"""
Strategy Execution Orchestrator

Runs one strategy invocation end to end:

    IDLE -> GATING -> ALLOCATING -> PUBLISHING -> ANCHORING -> DONE

1. Gating: the investment condition is evaluated against the network's
   current APY, then the live vault balance is read. A false condition or
   an empty vault skips the allocation; that is not an error.
2. Allocating: the lending share of the balance is approved and deposited
   through one batched vault transaction.
3. Publishing: the strategy document is pinned to IPFS, whether or not the
   allocation succeeded.
4. Anchoring: the document URL is written on-chain, only if publishing
   produced a CID.

Only pre-flight failures (invalid strategy, missing addresses) raise. Once a
request is admitted every step failure is captured in the ExecutionOutcome.

A request id is handled at most once per dedup store, and identical result
payloads are flagged so callers do not send the same confirmation twice.
"""

from collections.abc import Callable
from typing import Any

import structlog

from ..chains.base_client import BaseChainClient
from ..chains.evm_client import EVMChainClient
from ..config import NetworkContext, YieldPilotConfig, get_yieldpilot_config
from ..models import (
    ExecutionOutcome,
    ExecutionPhase,
    ExecutionStep,
    StepStatus,
    Strategy,
)
from ..provenance.anchor import ReferenceAnchor
from ..provenance.publisher import PinataPublisher
from .allocation import VaultBatchExecutor, compute_amount
from .conditions import evaluate_condition
from .dedup_store import DedupStore, create_dedup_store
from .locks import VaultLockRegistry

logger = structlog.get_logger(__name__)


class StrategyOrchestrator:
    """
    Sequences gating, allocation, publication and anchoring.

    Example:
        ```python
        orchestrator = await create_orchestrator()
        outcome = await orchestrator.execute("msg-42", strategy, strategy_id=7)
        if outcome.allocation_receipt:
            print(outcome.allocation_receipt.tx_hash)
        ```
    """

    def __init__(
        self,
        chain_client: BaseChainClient,
        publisher: PinataPublisher,
        dedup_store: DedupStore | None = None,
        vault_locks: VaultLockRegistry | None = None,
        config: YieldPilotConfig | None = None,
        context_provider: Callable[[], NetworkContext] | None = None,
    ):
        """
        Args:
            chain_client: Initialized client for the active network
            publisher: Strategy document publisher
            dedup_store: Store of handled request ids (a private one by default)
            vault_locks: Per-vault lock registry (a private one by default)
            config: Optional configuration (global config by default)
            context_provider: Resolves the NetworkContext for each invocation
        """
        self.config = config or get_yieldpilot_config()
        self._client = chain_client
        self._publisher = publisher
        self._dedup = dedup_store or DedupStore(
            ttl_seconds=self.config.dedup_ttl_seconds,
            max_entries=self.config.dedup_max_entries,
        )
        self._vault_locks = vault_locks if vault_locks is not None else VaultLockRegistry()
        self._context_provider = context_provider or self.config.resolve_network_context

    async def execute(
        self,
        request_id: str | None,
        strategy: Strategy | dict[str, Any] | str,
        strategy_id: int | None = None,
    ) -> ExecutionOutcome:
        """
        Execute a strategy once per request id.

        Args:
            request_id: Identifier of the inbound trigger; None disables the
                request-level duplicate check
            strategy: A Strategy or a strategy document to validate
            strategy_id: Id anchored on-chain (config default when None)

        Returns:
            The composite outcome. ``duplicate`` is set when the request id
            was already handled, in which case nothing was contacted.

        Raises:
            StrategyValidationError: The strategy document is malformed
            ConfigurationError: Required addresses are missing
        """
        if not isinstance(strategy, Strategy):
            strategy = Strategy.from_document(strategy)

        context = self._context_provider()
        context.require_addresses()

        if request_id is not None and not await self._dedup.claim(f"request:{request_id}"):
            logger.info("request_already_handled", request_id=request_id)
            return ExecutionOutcome.duplicate_of(request_id)

        outcome = ExecutionOutcome(
            request_id=request_id,
            network=context.network.value,
            strategy_id=strategy_id if strategy_id is not None else self.config.default_strategy_id,
        )

        with structlog.contextvars.bound_contextvars(
            request_id=request_id, network=context.network.value
        ):
            logger.info(
                "strategy_execution_started",
                vault=context.strategy_vault_address,
                lending_pool=context.lending_pool_address,
                current_apy=context.current_apy,
            )

            await self._allocate(strategy, context, outcome)
            await self._publish_and_anchor(strategy, context, outcome)
            outcome.enter(ExecutionPhase.DONE)

            outcome.repeated_payload = not await self._dedup.claim(
                f"payload:{outcome.content_hash()}"
            )
            logger.info(
                "strategy_execution_finished",
                allocation=outcome.allocation_status.value,
                publication=outcome.publication_status.value,
                anchor=outcome.anchor_status.value,
                errors=len(outcome.errors),
                repeated_payload=outcome.repeated_payload,
            )

        return outcome

    async def _allocate(
        self, strategy: Strategy, context: NetworkContext, outcome: ExecutionOutcome
    ) -> None:
        outcome.enter(ExecutionPhase.GATING)

        if not evaluate_condition(strategy.investment_condition, context.current_apy):
            self._skip(
                outcome,
                f"investment condition not met (current APY {context.current_apy}%)",
            )
            return

        executor = VaultBatchExecutor(self._client, context.strategy_vault_address)

        # Balance read, sizing and submission must not interleave per vault
        async with self._vault_locks.hold(context.strategy_vault_address):
            try:
                total_assets = await executor.get_total_assets()
            except Exception as e:
                logger.error("vault_balance_read_failed", error=str(e))
                outcome.record_error(ExecutionStep.ALLOCATION, e)
                return

            if total_assets <= 0:
                self._skip(outcome, "no assets in vault")
                return

            outcome.enter(ExecutionPhase.ALLOCATING)
            try:
                amount = compute_amount(total_assets, strategy.lending_allocation_percentage)
                outcome.allocation_amount = amount
                if amount == 0:
                    self._skip(outcome, "allocation amount rounds down to zero")
                    return

                receipt = await executor.execute_lending_allocation(
                    context.token_address, context.lending_pool_address, amount
                )
            except Exception as e:
                logger.error("allocation_failed", error=str(e), error_type=type(e).__name__)
                outcome.record_error(ExecutionStep.ALLOCATION, e)
                return

        outcome.allocation_receipt = receipt
        outcome.allocation_status = StepStatus.SUCCEEDED

    async def _publish_and_anchor(
        self, strategy: Strategy, context: NetworkContext, outcome: ExecutionOutcome
    ) -> None:
        outcome.enter(ExecutionPhase.PUBLISHING)
        try:
            record = await self._publisher.publish(strategy.to_document())
        except Exception as e:
            logger.error("strategy_publish_failed", error=str(e))
            outcome.record_error(ExecutionStep.PUBLICATION, e)
            outcome.anchor_status = StepStatus.SKIPPED
            return

        outcome.provenance = record
        outcome.publication_status = StepStatus.SUCCEEDED

        if not record.id:
            outcome.anchor_status = StepStatus.SKIPPED
            return

        outcome.enter(ExecutionPhase.ANCHORING)
        anchor = ReferenceAnchor(self._client, context.strategy_vault_address)
        try:
            outcome.anchor_receipt = await anchor.anchor(
                outcome.strategy_id, record.retrieval_url
            )
        except Exception as e:
            logger.error("strategy_anchor_failed", error=str(e))
            outcome.record_error(ExecutionStep.ANCHOR, e)
            return

        outcome.anchor_status = StepStatus.SUCCEEDED

    @staticmethod
    def _skip(outcome: ExecutionOutcome, reason: str) -> None:
        logger.info("allocation_skipped", reason=reason)
        outcome.allocation_status = StepStatus.SKIPPED
        outcome.skip_reason = reason

    async def close(self) -> None:
        """Close the chain client and the dedup store."""
        await self._client.close()
        await self._dedup.close()


async def create_orchestrator(config: YieldPilotConfig | None = None) -> StrategyOrchestrator:
    """Build an orchestrator wired to the configured network, Pinata and dedup store."""
    config = config or get_yieldpilot_config()

    client = EVMChainClient(config.current_network, config)
    await client.initialize()

    dedup_store = await create_dedup_store(
        config.redis_url,
        ttl_seconds=config.dedup_ttl_seconds,
        max_entries=config.dedup_max_entries,
    )
    return StrategyOrchestrator(
        client,
        PinataPublisher(config),
        dedup_store=dedup_store,
        config=config,
    )
