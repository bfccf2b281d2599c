"""
HTTP API for storing and executing strategies.
"""

from .routes import (
    APIResponse,
    ExecuteStrategyRequest,
    create_app,
    create_strategy_router,
    get_orchestrator,
    get_strategy_repository,
)

__all__ = [
    "APIResponse",
    "ExecuteStrategyRequest",
    "create_app",
    "create_strategy_router",
    "get_orchestrator",
    "get_strategy_repository",
]
