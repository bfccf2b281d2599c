"""
Investment Condition Evaluation

Parses threshold expressions such as "APY > 6%" and evaluates them against
the currently observed rate. Gating fails closed: anything that does not
parse, or uses an operator outside the supported set, evaluates to False.

parse_condition() returns a tagged result so callers can tell
"condition false" apart from "condition unparsable".
"""

import operator
import re
from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

# "APY", an operator-looking run, a decimal number, an optional percent sign
_CONDITION_PATTERN = re.compile(
    r"^\s*APY\s*(?P<op>[<>=!]+)\s*(?P<threshold>\d+(?:\.\d+)?|\.\d+)\s*%?\s*$",
    re.IGNORECASE,
)

COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "=": operator.eq,
}


class ConditionParseError(ValueError):
    """An expression that cannot be turned into a comparison."""
    pass


@dataclass(frozen=True)
class ParsedCondition:
    """A well-formed 'APY {op} threshold' comparison."""

    operator: str
    threshold: float

    def evaluate(self, current_rate: float) -> bool:
        return COMPARATORS[self.operator](current_rate, self.threshold)


@dataclass(frozen=True)
class UnparsedCondition:
    """An expression that was rejected, with the reason."""

    expression: str
    error: ConditionParseError

    @property
    def reason(self) -> str:
        return str(self.error)

    def evaluate(self, current_rate: float) -> bool:
        return False


def parse_condition(expression: str | None) -> ParsedCondition | UnparsedCondition:
    """Parse a condition expression into a tagged result. Never raises."""
    if not isinstance(expression, str):
        return UnparsedCondition(
            str(expression), ConditionParseError("Condition is not a string")
        )

    match = _CONDITION_PATTERN.match(expression)
    if not match:
        return UnparsedCondition(
            expression, ConditionParseError(f"Could not parse condition: {expression!r}")
        )

    op = match.group("op")
    if op not in COMPARATORS:
        return UnparsedCondition(
            expression, ConditionParseError(f"Unsupported operator in condition: {op!r}")
        )

    return ParsedCondition(operator=op, threshold=float(match.group("threshold")))


def evaluate_condition(expression: str | None, current_rate: float) -> bool:
    """
    Decide whether the condition holds for the current rate.

    Args:
        expression: e.g. "APY >= 5.5%"
        current_rate: Observed APY in percent, e.g. 7.2

    Returns:
        The comparison result, or False for any malformed expression
    """
    condition = parse_condition(expression)

    if isinstance(condition, UnparsedCondition):
        logger.warning(
            "condition_unparsed",
            expression=condition.expression,
            reason=condition.reason,
        )
        return False

    try:
        result = condition.evaluate(current_rate)
    except TypeError:
        logger.warning("condition_rate_invalid", current_rate=repr(current_rate))
        return False

    logger.info(
        "condition_evaluated",
        current_rate=current_rate,
        operator=condition.operator,
        threshold=condition.threshold,
        result=result,
    )
    return result
