"""
Tests for investment condition parsing and evaluation.
"""

import pytest

from yieldpilot.execution.conditions import (
    COMPARATORS,
    ParsedCondition,
    UnparsedCondition,
    evaluate_condition,
    parse_condition,
)


# ==================== Parsing Tests ====================


class TestParseCondition:
    """Tests for parse_condition."""

    def test_parse_simple(self):
        """Test parsing a well-formed condition."""
        condition = parse_condition("APY > 6%")

        assert isinstance(condition, ParsedCondition)
        assert condition.operator == ">"
        assert condition.threshold == 6.0

    @pytest.mark.parametrize(
        "expression,operator,threshold",
        [
            ("APY >= 5.5%", ">=", 5.5),
            ("apy<3", "<", 3.0),
            ("  APY <= .5 %  ", "<=", 0.5),
            ("APY == 4%", "==", 4.0),
            ("APY = 4%", "=", 4.0),
        ],
    )
    def test_parse_variants(self, expression, operator, threshold):
        """Test whitespace, case and optional percent sign are tolerated."""
        condition = parse_condition(expression)

        assert isinstance(condition, ParsedCondition)
        assert condition.operator == operator
        assert condition.threshold == threshold

    @pytest.mark.parametrize(
        "expression",
        ["", "APY", "APY > ", "TVL > 6%", "APY > six", "APY > 6% and rising", "> 6%"],
    )
    def test_unparsable(self, expression):
        """Test malformed expressions produce a tagged failure, not an exception."""
        condition = parse_condition(expression)

        assert isinstance(condition, UnparsedCondition)
        assert "Could not parse condition" in condition.reason

    @pytest.mark.parametrize("expression", ["APY => 6%", "APY != 6%", "APY >> 6%", "APY =< 6%"])
    def test_unsupported_operator(self, expression):
        """Test operator-looking runs outside the supported set are rejected."""
        condition = parse_condition(expression)

        assert isinstance(condition, UnparsedCondition)
        assert "Unsupported operator" in condition.reason

    def test_non_string(self):
        """Test non-string input is rejected."""
        condition = parse_condition(None)

        assert isinstance(condition, UnparsedCondition)

    def test_supported_operators(self):
        """Test the comparator table."""
        assert set(COMPARATORS) == {">", ">=", "<", "<=", "==", "="}


# ==================== Evaluation Tests ====================


class TestEvaluateCondition:
    """Tests for evaluate_condition."""

    @pytest.mark.parametrize(
        "expression,rate,expected",
        [
            ("APY > 6%", 7.2, True),
            ("APY > 6%", 5.0, False),
            ("APY > 6%", 6.0, False),
            ("APY >= 6%", 6.0, True),
            ("APY < 6%", 5.0, True),
            ("APY <= 6%", 6.5, False),
            ("APY == 6%", 6.0, True),
            ("APY = 6%", 6.1, False),
        ],
    )
    def test_comparisons(self, expression, rate, expected):
        """Test each operator against the current rate."""
        assert evaluate_condition(expression, rate) is expected

    @pytest.mark.parametrize("expression", ["APY => 6%", "invest when cheap", "", None])
    def test_fails_closed(self, expression):
        """Test malformed conditions evaluate to False."""
        assert evaluate_condition(expression, 100.0) is False

    def test_non_numeric_rate(self):
        """Test an unusable rate evaluates to False."""
        assert evaluate_condition("APY > 6%", "high") is False
