"""
YieldPilot - Yield Strategy Execution

Executes structured yield strategies against a custodial strategy vault:

- Gating: evaluate the strategy's APY condition against the current rate
- Allocation: move the lending share of the vault balance into a lending
  pool with one atomic approve + deposit batch
- Provenance: pin the strategy document to IPFS and anchor its URL on-chain

Quick Start:
    # 1. Configure environment
    export YIELDPILOT_CURRENT_NETWORK=rootstock
    export YIELDPILOT_ROOTSTOCK__STRATEGY_VAULT_ADDRESS="0x..."
    export YIELDPILOT_ROOTSTOCK__LENDING_POOL_ADDRESS="0x..."
    export YIELDPILOT_ROOTSTOCK__TOKEN_ADDRESS="0x..."
    export YIELDPILOT_AGENT_PRIVATE_KEY="0x..."
    export YIELDPILOT_PINATA_JWT="..."

    # 2. Execute a strategy
    from yieldpilot import Strategy, create_orchestrator

    orchestrator = await create_orchestrator()
    outcome = await orchestrator.execute("request-1", Strategy.from_document(doc))
"""

__version__ = "0.1.0"

from .config import (
    ConfigurationError,
    NetworkContext,
    NetworkName,
    YieldPilotConfig,
    configure_yieldpilot,
    get_yieldpilot_config,
)
from .execution import StrategyOrchestrator, create_orchestrator, evaluate_condition
from .models import ExecutionOutcome, StepStatus, Strategy, StrategyValidationError

__all__ = [
    "__version__",
    # Configuration
    "ConfigurationError",
    "NetworkContext",
    "NetworkName",
    "YieldPilotConfig",
    "configure_yieldpilot",
    "get_yieldpilot_config",
    # Execution
    "StrategyOrchestrator",
    "create_orchestrator",
    "evaluate_condition",
    # Models
    "ExecutionOutcome",
    "StepStatus",
    "Strategy",
    "StrategyValidationError",
]
