"""
Strategy Repository

In-process storage for validated strategies and their execution records.
Strategies get sequential integer ids, which are also the ids anchored
on-chain.
"""

import asyncio

import structlog

from ..models import ExecutionOutcome, ExecutionRecord, Strategy

logger = structlog.get_logger(__name__)


class StrategyNotFoundError(LookupError):
    """Raised when a strategy id is unknown."""
    pass


class StrategyRepository:
    """
    Repository for strategies and execution history.

    Stored strategies are immutable; re-executing one re-reads the same value.
    """

    def __init__(self) -> None:
        self._strategies: dict[int, Strategy] = {}
        self._executions: dict[int, list[ExecutionRecord]] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def create(self, strategy: Strategy) -> int:
        """Store a strategy and return its id."""
        async with self._lock:
            strategy_id = self._next_id
            self._next_id += 1
            self._strategies[strategy_id] = strategy
        logger.debug("strategy_stored", strategy_id=strategy_id)
        return strategy_id

    async def get(self, strategy_id: int) -> Strategy:
        try:
            return self._strategies[strategy_id]
        except KeyError:
            raise StrategyNotFoundError(f"Strategy {strategy_id} not found") from None

    async def get_latest(self) -> tuple[int, Strategy]:
        """Most recently stored strategy."""
        if not self._strategies:
            raise StrategyNotFoundError("No strategies have been stored")
        strategy_id = max(self._strategies)
        return strategy_id, self._strategies[strategy_id]

    async def record_execution(
        self,
        strategy_id: int,
        outcome: ExecutionOutcome,
        summary: list[str] | None = None,
    ) -> ExecutionRecord:
        record = ExecutionRecord(
            strategy_id=strategy_id, outcome=outcome, summary=summary or []
        )
        self._executions.setdefault(strategy_id, []).append(record)
        logger.debug("execution_recorded", strategy_id=strategy_id)
        return record

    async def list_executions(self, strategy_id: int) -> list[ExecutionRecord]:
        await self.get(strategy_id)
        return list(self._executions.get(strategy_id, []))
