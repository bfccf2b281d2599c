"""
FastAPI Router for Strategy Execution

REST endpoints for storing validated strategies and executing them.

- POST /strategies                      store a strategy document
- GET  /strategies/{id}                 fetch a stored strategy
- POST /strategies/{id}/executions      execute a stored strategy
- POST /strategies/latest/executions    execute the most recent strategy
- GET  /strategies/{id}/executions      execution history

Executions carry a request_id; replaying the same id returns a duplicate
marker without touching the chain or IPFS again.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from ..config import ConfigurationError, get_yieldpilot_config
from ..execution import (
    StrategyOrchestrator,
    create_orchestrator,
    render_execution_steps,
    render_execution_text,
)
from ..models import Strategy, StrategyValidationError
from ..monitoring import configure_logging
from ..repositories import StrategyNotFoundError, StrategyRepository

logger = logging.getLogger(__name__)


def _sanitized_error(context: str, e: Exception) -> HTTPException:
    """Log the real error and return a generic one to the client."""
    logger.error(f"yieldpilot_api_error: {context}: {e}", exc_info=True)
    return HTTPException(
        status_code=500,
        detail=f"Internal error during {context}. Please try again or contact support.",
    )


# ==================== Request/Response Models ====================

class APIResponse(BaseModel):
    """Standard API response wrapper."""
    success: bool = True
    data: Any | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ExecuteStrategyRequest(BaseModel):
    """Trigger for a strategy execution."""
    request_id: str | None = Field(
        default=None, description="Idempotency key of the inbound trigger"
    )


# ==================== Dependency Injection ====================

def get_strategy_repository(request: Request) -> StrategyRepository:
    repository: StrategyRepository = request.app.state.strategy_repository
    return repository


def get_orchestrator(request: Request) -> StrategyOrchestrator:
    orchestrator: StrategyOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Strategy executor is not available")
    return orchestrator


# ==================== Routes ====================

def create_strategy_router() -> APIRouter:
    router = APIRouter(prefix="/strategies", tags=["strategies"])

    async def _run_execution(
        strategy_id: int,
        strategy: Strategy,
        body: ExecuteStrategyRequest,
        orchestrator: StrategyOrchestrator,
        repository: StrategyRepository,
    ) -> APIResponse:
        try:
            outcome = await orchestrator.execute(body.request_id, strategy, strategy_id=strategy_id)
        except ConfigurationError as e:
            raise HTTPException(status_code=503, detail=str(e))
        except StrategyValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except Exception as e:
            raise _sanitized_error("strategy execution", e)

        if outcome.duplicate:
            return APIResponse(data={"duplicate": True, "request_id": outcome.request_id})

        summary = render_execution_steps(strategy, outcome)
        await repository.record_execution(strategy_id, outcome, summary)

        return APIResponse(
            data={
                "strategy_id": strategy_id,
                "outcome": outcome.model_dump(mode="json"),
                "summary": summary,
                # Identical results are confirmed only once
                "message": None
                if outcome.repeated_payload
                else render_execution_text(strategy, outcome),
            }
        )

    @router.post("", status_code=201, response_model=APIResponse)
    async def create_strategy(
        document: dict[str, Any],
        repository: StrategyRepository = Depends(get_strategy_repository),
    ) -> APIResponse:
        try:
            strategy = Strategy.from_document(document)
        except StrategyValidationError as e:
            raise HTTPException(
                status_code=422, detail={"message": str(e), "errors": e.errors}
            )

        strategy_id = await repository.create(strategy)
        return APIResponse(data={"strategy_id": strategy_id, **strategy.to_document()})

    @router.post("/latest/executions", response_model=APIResponse)
    async def execute_latest_strategy(
        body: ExecuteStrategyRequest,
        orchestrator: StrategyOrchestrator = Depends(get_orchestrator),
        repository: StrategyRepository = Depends(get_strategy_repository),
    ) -> APIResponse:
        try:
            strategy_id, strategy = await repository.get_latest()
        except StrategyNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return await _run_execution(strategy_id, strategy, body, orchestrator, repository)

    @router.get("/{strategy_id}", response_model=APIResponse)
    async def get_strategy(
        strategy_id: int,
        repository: StrategyRepository = Depends(get_strategy_repository),
    ) -> APIResponse:
        try:
            strategy = await repository.get(strategy_id)
        except StrategyNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return APIResponse(data={"strategy_id": strategy_id, **strategy.to_document()})

    @router.post("/{strategy_id}/executions", response_model=APIResponse)
    async def execute_strategy(
        strategy_id: int,
        body: ExecuteStrategyRequest,
        orchestrator: StrategyOrchestrator = Depends(get_orchestrator),
        repository: StrategyRepository = Depends(get_strategy_repository),
    ) -> APIResponse:
        try:
            strategy = await repository.get(strategy_id)
        except StrategyNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return await _run_execution(strategy_id, strategy, body, orchestrator, repository)

    @router.get("/{strategy_id}/executions", response_model=APIResponse)
    async def list_executions(
        strategy_id: int,
        repository: StrategyRepository = Depends(get_strategy_repository),
    ) -> APIResponse:
        try:
            records = await repository.list_executions(strategy_id)
        except StrategyNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return APIResponse(data=[r.model_dump(mode="json") for r in records])

    return router


def create_app(
    orchestrator: StrategyOrchestrator | None = None,
    repository: StrategyRepository | None = None,
) -> FastAPI:
    """
    Build the application.

    Without an injected orchestrator one is created from configuration at
    startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owns_orchestrator = app.state.orchestrator is None
        if owns_orchestrator:
            config = get_yieldpilot_config()
            configure_logging(config.log_level, json_output=config.log_json)
            app.state.orchestrator = await create_orchestrator(config)
        try:
            yield
        finally:
            if owns_orchestrator:
                await app.state.orchestrator.close()
                app.state.orchestrator = None

    app = FastAPI(title="YieldPilot", lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.state.strategy_repository = repository or StrategyRepository()
    app.include_router(create_strategy_router())
    return app
