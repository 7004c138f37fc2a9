"""Error types raised by the trading engine.

Insufficient price history is deliberately absent from this module: indicators
fall back to neutral values and strategies return ``None`` instead of raising.
"""

from __future__ import annotations


class AutoTradeError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(AutoTradeError, ValueError):
    """Invalid configuration, unknown strategy or invalid risk-limit values."""


class StrategyNotFound(ConfigurationError):
    """Requested strategy id is not registered."""

    def __init__(self, strategy_id: str) -> None:
        super().__init__(f"Strategy {strategy_id!r} not found")
        self.strategy_id = strategy_id


class AlreadyTrading(AutoTradeError, RuntimeError):
    """A trading session is already active on this orchestrator."""


class ValidationRejection(AutoTradeError):
    """An order breached one or more risk limits.

    Attributes:
        reasons: Human-readable description of every violated rule
    """

    def __init__(self, reasons: list[str]) -> None:
        super().__init__("; ".join(reasons) or "order rejected")
        self.reasons = list(reasons)


class TransientExecutionFailure(AutoTradeError):
    """Market-data or execution provider failed for this tick."""


class LedgerError(AutoTradeError, ValueError):
    """A fill would leave the ledger in an inconsistent state."""


__all__ = [
    "AutoTradeError",
    "ConfigurationError",
    "StrategyNotFound",
    "AlreadyTrading",
    "ValidationRejection",
    "TransientExecutionFailure",
    "LedgerError",
]
