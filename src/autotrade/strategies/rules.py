"""Declarative rule engine for the rule-based strategy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

from autotrade.errors import ConfigurationError

IndicatorValues = Mapping[str, float | None]

COMPARISON_OPS = (">", "<", ">=", "<=", "==")
CROSS_OPS = ("cross_above", "cross_below")
SUPPORTED_OPS = COMPARISON_OPS + CROSS_OPS


@dataclass
class Condition:
    """A single indicator comparison.

    Examples:
        {"left": "rsi", "op": "<", "right": 30}
        {"left": "close", "op": ">", "right": "bb_upper"}
        {"left": "volume", "op": ">", "right": "vol_ma * 1.5"}
        {"left": "ema_short", "op": "cross_above", "right": "ema_long"}
    """

    left: str
    op: str
    right: str | float | int

    def __post_init__(self) -> None:
        if self.op not in SUPPORTED_OPS:
            raise ConfigurationError(
                f"Unsupported operator {self.op!r}; expected one of {', '.join(SUPPORTED_OPS)}"
            )
        if not self.left:
            raise ConfigurationError("Condition.left must name an indicator")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        return cls(left=data["left"], op=data["op"], right=data["right"])

    def to_dict(self) -> dict[str, Any]:
        return {"left": self.left, "op": self.op, "right": self.right}

    def describe(self) -> str:
        return f"{self.left} {self.op} {self.right}"


@dataclass
class TradingRule:
    """Conditions combined with AND that fire a BUY or SELL.

    A rule without conditions never fires.
    """

    action: Literal["buy", "sell"]
    conditions: list[Condition] = field(default_factory=list)
    name: str = ""

    def __post_init__(self) -> None:
        if self.action not in ("buy", "sell"):
            raise ConfigurationError(f"Rule action must be 'buy' or 'sell', got {self.action!r}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TradingRule:
        return cls(
            action=data["action"],
            conditions=[Condition.from_dict(c) for c in data.get("conditions", [])],
            name=data.get("name", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "conditions": [c.to_dict() for c in self.conditions],
            "name": self.name,
        }

    def describe(self) -> str:
        body = " and ".join(c.describe() for c in self.conditions)
        return f"{self.name}: {body}" if self.name else body

    def referenced_names(self) -> set[str]:
        """Indicator names on left sides and bare-identifier right sides."""
        names = set()
        for condition in self.conditions:
            names.add(condition.left)
            if isinstance(condition.right, str) and condition.right.strip().isidentifier():
                names.add(condition.right.strip())
        return names


def _parse_number(s: str) -> float | None:
    try:
        return float(s)
    except (TypeError, ValueError):
        return None


def _get_value_from_str(s: str, indicators: IndicatorValues) -> float | None:
    """Resolve an indicator name or literal number."""
    s = s.strip()
    if s in indicators:
        return indicators[s]
    return _parse_number(s)


def evaluate_expression(expr: str, indicators: IndicatorValues) -> float | None:
    """Evaluate a single binary arithmetic expression such as ``"vol_ma * 1.5"``.

    Only one operator is supported (no precedence). A bare name or number is
    returned as is. Unknown names and division by zero yield None.
    """
    expr = expr.strip()

    for op in ("*", "/", "+"):
        if op in expr:
            left_str, right_str = expr.split(op, 1)
            left = _get_value_from_str(left_str, indicators)
            right = _get_value_from_str(right_str, indicators)
            if left is None or right is None:
                return None
            if op == "*":
                return left * right
            if op == "/":
                return left / right if right != 0 else None
            return left + right

    # Subtraction: skip a leading sign and signs that follow another operator
    for pos in range(len(expr) - 1, 0, -1):
        if expr[pos] == "-" and expr[pos - 1] not in "+-*/e":
            left = _get_value_from_str(expr[:pos], indicators)
            right = _get_value_from_str(expr[pos + 1:], indicators)
            if left is not None and right is not None:
                return left - right

    return _get_value_from_str(expr, indicators)


def _resolve_right(condition: Condition, indicators: IndicatorValues) -> float | None:
    if isinstance(condition.right, str):
        return evaluate_expression(condition.right, indicators)
    return float(condition.right)


def evaluate_condition(
    condition: Condition,
    indicators: IndicatorValues,
    prev_indicators: IndicatorValues | None = None,
) -> bool:
    """Evaluate a single condition.

    Args:
        condition: The condition to evaluate
        indicators: Current indicator values
        prev_indicators: Indicator values one bar earlier (needed for cross ops)

    Returns:
        True if the condition holds; missing values evaluate to False
    """
    left_val = indicators.get(condition.left)
    right_val = _resolve_right(condition, indicators)
    if left_val is None or right_val is None:
        return False

    if condition.op == ">":
        return left_val > right_val
    if condition.op == "<":
        return left_val < right_val
    if condition.op == ">=":
        return left_val >= right_val
    if condition.op == "<=":
        return left_val <= right_val
    if condition.op == "==":
        return left_val == right_val

    if prev_indicators is None:
        return False
    prev_left = prev_indicators.get(condition.left)
    prev_right = _resolve_right(condition, prev_indicators)
    if prev_left is None or prev_right is None:
        return False

    if condition.op == "cross_above":
        return prev_left <= prev_right and left_val > right_val
    return prev_left >= prev_right and left_val < right_val


def evaluate_rule(
    rule: TradingRule,
    indicators: IndicatorValues,
    prev_indicators: IndicatorValues | None = None,
) -> bool:
    """Return True when every condition of ``rule`` holds."""
    if not rule.conditions:
        return False
    return all(evaluate_condition(c, indicators, prev_indicators) for c in rule.conditions)


def first_matching_rule(
    rules: list[TradingRule],
    action: Literal["buy", "sell"],
    indicators: IndicatorValues,
    prev_indicators: IndicatorValues | None = None,
) -> TradingRule | None:
    """Return the first rule for ``action`` whose conditions all hold."""
    for rule in rules:
        if rule.action == action and evaluate_rule(rule, indicators, prev_indicators):
            return rule
    return None


__all__ = [
    "Condition",
    "TradingRule",
    "SUPPORTED_OPS",
    "evaluate_expression",
    "evaluate_condition",
    "evaluate_rule",
    "first_matching_rule",
]
