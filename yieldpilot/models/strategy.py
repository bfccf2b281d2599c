"""
Strategy Model

Canonical shape of a structured yield strategy. Strategies are produced
upstream (natural-language parsing happens outside this package), stored,
and later re-loaded for execution. They are never mutated once parsed.

Documents use camelCase keys wrapped in a "strategy" envelope:

    {
        "strategy": {
            "assetAllocation": {"lendingProtocol": 70, "stablecoin": 30},
            "lendingProtocol": {"investmentCondition": "APY > 6%"},
            "rebalancing": {"frequency": "24 hours", "deviationTolerance": "8%"},
            "transactionLimits": {
                "maxTransactionPercentage": "12%",
                "maxSwapSlippage": "1.8%"
            }
        }
    }
"""

import json
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

# Asset label whose percentage is moved into the lending pool
LENDING_ALLOCATION_KEY = "lendingProtocol"


class StrategyValidationError(ValueError):
    """Raised when a strategy document does not match the schema."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class _StrategyPart(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class LendingProtocolRules(_StrategyPart):
    """Free-text comparison expressions such as 'APY > 6%'."""

    investment_condition: str
    fallback_condition: str | None = None
    stop_loss_condition: str | None = None


class RebalancingPolicy(_StrategyPart):
    frequency: str
    deviation_tolerance: str


class TransactionLimits(_StrategyPart):
    max_transaction_percentage: str
    max_swap_slippage: str


class Strategy(_StrategyPart):
    """
    A validated yield strategy.

    Asset allocation percentages are independent weights: they are not
    required to sum to 100.
    """

    model_config = ConfigDict(allow_inf_nan=False)

    asset_allocation: Mapping[str, int | float] = Field(
        description="Asset label -> percentage weight"
    )
    lending_protocol: LendingProtocolRules
    rebalancing: RebalancingPolicy
    transaction_limits: TransactionLimits

    @field_validator("asset_allocation", mode="after")
    @classmethod
    def freeze_allocation(cls, v: Mapping[str, int | float]) -> Mapping[str, int | float]:
        """Expose the weights read-only."""
        return MappingProxyType(dict(v))

    @field_serializer("asset_allocation")
    def serialize_allocation(self, v: Mapping[str, int | float]) -> dict[str, int | float]:
        return dict(v)

    @property
    def lending_allocation_percentage(self) -> int | float | None:
        """Percentage of the vault balance destined for the lending pool."""
        return self.asset_allocation.get(LENDING_ALLOCATION_KEY)

    @property
    def investment_condition(self) -> str:
        return self.lending_protocol.investment_condition

    @classmethod
    def from_document(cls, document: str | dict[str, Any]) -> "Strategy":
        """
        Validate a strategy document.

        Accepts the {"strategy": {...}} envelope, the bare inner object,
        or either of those serialized as a JSON string.

        Raises:
            StrategyValidationError: If the document is malformed
        """
        if isinstance(document, str):
            try:
                document = json.loads(document)
            except json.JSONDecodeError as e:
                raise StrategyValidationError(f"Strategy is not valid JSON: {e}") from e

        if not isinstance(document, dict):
            raise StrategyValidationError("Strategy document must be a JSON object")

        body = document.get("strategy", document)
        if not isinstance(body, dict):
            raise StrategyValidationError("'strategy' must be a JSON object")

        try:
            return cls.model_validate(body)
        except ValidationError as e:
            errors = [
                {"path": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            summary = "; ".join(f"{err['path']}: {err['message']}" for err in errors)
            raise StrategyValidationError(f"Invalid strategy: {summary}", errors) from e

    def to_document(self) -> dict[str, Any]:
        """Serialize back to the camelCase envelope."""
        return {"strategy": self.model_dump(mode="json", by_alias=True, exclude_none=True)}
