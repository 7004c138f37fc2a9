"""Autotrade - strategy decisions, risk checks and execution bookkeeping.

This package provides:
- Technical indicators and pluggable trading strategies
- A risk engine for order validation, position sizing and protective triggers
- A trading orchestrator driving strategies against market data and execution providers
- A deterministic backtest simulator with performance reporting
"""

__version__ = "0.1.0"

from autotrade.errors import (  # noqa: E402
    AlreadyTrading,
    AutoTradeError,
    ConfigurationError,
    LedgerError,
    StrategyNotFound,
    TransientExecutionFailure,
    ValidationRejection,
)

__all__ = [
    "AutoTradeError",
    "ConfigurationError",
    "StrategyNotFound",
    "AlreadyTrading",
    "ValidationRejection",
    "TransientExecutionFailure",
    "LedgerError",
]
