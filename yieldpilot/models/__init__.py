"""
YieldPilot Models

Pydantic models shared across the execution pipeline.
"""

from .base import (
    ErrorRecord,
    ExecutionOutcome,
    ExecutionPhase,
    ExecutionRecord,
    ExecutionStep,
    ProvenanceRecord,
    StepStatus,
    TransactionReceipt,
)
from .strategy import (
    LENDING_ALLOCATION_KEY,
    LendingProtocolRules,
    RebalancingPolicy,
    Strategy,
    StrategyValidationError,
    TransactionLimits,
)

__all__ = [
    # Execution records
    "ErrorRecord",
    "ExecutionOutcome",
    "ExecutionPhase",
    "ExecutionRecord",
    "ExecutionStep",
    "ProvenanceRecord",
    "StepStatus",
    "TransactionReceipt",
    # Strategy
    "LENDING_ALLOCATION_KEY",
    "LendingProtocolRules",
    "RebalancingPolicy",
    "Strategy",
    "StrategyValidationError",
    "TransactionLimits",
]
