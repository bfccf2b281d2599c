"""
Execution Package

Gating, sizing and submitting strategy allocations, plus the orchestrator
that chains them with publication and anchoring.
"""

from .allocation import (
    AllocationLimitError,
    BatchCall,
    NoAllocationError,
    VaultBatchExecutor,
    build_lending_allocation_batch,
    compute_amount,
)
from .conditions import (
    ConditionParseError,
    ParsedCondition,
    UnparsedCondition,
    evaluate_condition,
    parse_condition,
)
from .dedup_store import DedupStore, create_dedup_store
from .locks import VaultLockRegistry
from .orchestrator import StrategyOrchestrator, create_orchestrator
from .summary import render_execution_steps, render_execution_text

__all__ = [
    # Conditions
    "ConditionParseError",
    "ParsedCondition",
    "UnparsedCondition",
    "evaluate_condition",
    "parse_condition",
    # Allocation
    "AllocationLimitError",
    "BatchCall",
    "NoAllocationError",
    "VaultBatchExecutor",
    "build_lending_allocation_batch",
    "compute_amount",
    # Orchestration
    "DedupStore",
    "StrategyOrchestrator",
    "VaultLockRegistry",
    "create_dedup_store",
    "create_orchestrator",
    # Summaries
    "render_execution_steps",
    "render_execution_text",
]
