"""
Base Models for Strategy Execution

This module defines the records produced while executing a strategy:
transaction receipts, provenance records, per-step errors and the
composite ExecutionOutcome handed back to callers.
"""

import hashlib
import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ExecutionPhase(str, Enum):
    """
    Phases an orchestrator invocation moves through.

    IDLE -> GATING -> ALLOCATING -> PUBLISHING -> ANCHORING -> DONE
    GATING may jump straight to PUBLISHING when the allocation is skipped.
    """

    IDLE = "idle"
    GATING = "gating"
    ALLOCATING = "allocating"
    PUBLISHING = "publishing"
    ANCHORING = "anchoring"
    DONE = "done"


class StepStatus(str, Enum):
    """Result of a single pipeline step."""

    NOT_ATTEMPTED = "not_attempted"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"  # No action required, not an error
    FAILED = "failed"


class ExecutionStep(str, Enum):
    """Steps that can fail independently and are reported in the outcome."""

    ALLOCATION = "allocation"
    PUBLICATION = "publication"
    ANCHOR = "anchor"


class TransactionReceipt(BaseModel):
    """
    Receipt of a mined transaction.

    Used for the batched allocation and for the reference anchor write.
    """

    tx_hash: str = Field(description="Transaction hash")
    network: str = Field(description="Network the transaction was mined on")
    block_number: int = Field(description="Block number containing transaction")
    timestamp: datetime = Field(description="Block timestamp")
    from_address: str = Field(description="Sender address")
    to_address: str = Field(description="Contract the transaction was sent to")
    gas_used: int = Field(default=0, description="Gas consumed")
    status: str = Field(default="success", description="success, failed or pending")
    transaction_type: str = Field(
        default="contract_call", description="Type of transaction (contract_execute, ...)"
    )


class ProvenanceRecord(BaseModel):
    """Location of a published strategy document."""

    id: str = Field(description="Content identifier returned by the store")
    retrieval_url: str = Field(description="Public gateway URL")
    mirror_url: str = Field(description="Secondary gateway URL")


class ErrorRecord(BaseModel):
    """A step failure captured into the outcome instead of being raised."""

    step: ExecutionStep
    error_type: str
    message: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_exception(cls, step: ExecutionStep, error: BaseException) -> "ErrorRecord":
        return cls(step=step, error_type=type(error).__name__, message=str(error))


class ExecutionOutcome(BaseModel):
    """
    Composite result of one orchestrator invocation.

    Each phase writes its own fields, so a failure in one step is
    representable alongside whatever the other steps achieved.
    """

    request_id: str | None = None
    network: str | None = None
    strategy_id: int | None = None

    allocation_status: StepStatus = StepStatus.NOT_ATTEMPTED
    allocation_amount: int | None = None
    allocation_receipt: TransactionReceipt | None = None
    skip_reason: str | None = None

    publication_status: StepStatus = StepStatus.NOT_ATTEMPTED
    provenance: ProvenanceRecord | None = None

    anchor_status: StepStatus = StepStatus.NOT_ATTEMPTED
    anchor_receipt: TransactionReceipt | None = None

    errors: list[ErrorRecord] = Field(default_factory=list)
    phases: list[ExecutionPhase] = Field(default_factory=lambda: [ExecutionPhase.IDLE])

    duplicate: bool = Field(
        default=False, description="Request id was already handled; nothing was done"
    )
    repeated_payload: bool = Field(
        default=False,
        description="An identical result was already emitted by this process",
    )

    def enter(self, phase: ExecutionPhase) -> None:
        """Record a phase transition."""
        self.phases.append(phase)

    @property
    def phase(self) -> ExecutionPhase:
        return self.phases[-1]

    def record_error(self, step: ExecutionStep, error: BaseException) -> ErrorRecord:
        """Capture a step failure and mark the step as failed."""
        record = ErrorRecord.from_exception(step, error)
        self.errors.append(record)
        setattr(self, f"{step.value}_status", StepStatus.FAILED)
        return record

    def errors_for(self, step: ExecutionStep) -> list[ErrorRecord]:
        return [e for e in self.errors if e.step == step]

    def payload(self) -> dict[str, Any]:
        """The caller-visible result, excluding per-invocation bookkeeping."""
        return self.model_dump(
            mode="json",
            exclude={"request_id", "phases", "duplicate", "repeated_payload"},
            exclude_none=True,
        ) | {"errors": [(e.step.value, e.error_type, e.message) for e in self.errors]}

    def content_hash(self) -> str:
        """SHA-256 of the canonical JSON payload."""
        canonical = json.dumps(self.payload(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()

    @classmethod
    def duplicate_of(cls, request_id: str | None) -> "ExecutionOutcome":
        """Outcome returned when the request id was already handled."""
        return cls(request_id=request_id, duplicate=True, phases=[ExecutionPhase.DONE])


class ExecutionRecord(BaseModel):
    """Stored record of a strategy execution."""

    strategy_id: int
    outcome: ExecutionOutcome
    summary: list[str] = Field(default_factory=list)
    executed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
