"""Collaborator interfaces the engine depends on.

The engine only talks to these protocols. Simulated and live
implementations are interchangeable; decision and risk logic never branch
on which one is in use.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from autotrade.strategies.base import Bar, Order, Position, Trade


@dataclass(slots=True)
class Fill:
    """Execution report returned by an execution provider.

    Attributes:
        order: The order that was executed
        executed_price: Average fill price
        executed_at: Fill timestamp
        fees: Fees paid in quote currency
        venue_order_id: Venue-assigned identifier, if any
    """

    order: Order
    executed_price: float
    executed_at: datetime
    fees: float = 0.0
    venue_order_id: str = ""


@runtime_checkable
class MarketDataProvider(Protocol):
    """Source of bars and prices.

    Missing data is reported as an empty list / None, never as an error.
    I/O failures raise :class:`~autotrade.errors.TransientExecutionFailure`.
    """

    def fetch_bars(
        self,
        instrument: str,
        interval: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Bar]:
        """Return bars in ``[start, end]`` (oldest first), at most ``limit`` most recent."""
        ...

    def latest_price(self, instrument: str) -> float | None:
        """Return the latest traded price, or None if unknown."""
        ...


@runtime_checkable
class ExecutionProvider(Protocol):
    """Submits orders to a venue and reports fills.

    The engine never constructs or signs venue transactions; it records the
    returned fill or handles the raised failure.
    """

    def submit_order(self, order: Order, reference_price: float | None = None) -> Fill:
        """Execute ``order``.

        Args:
            order: Order to execute
            reference_price: Price the decision was based on

        Raises:
            TransientExecutionFailure: If the venue call fails
        """
        ...


@runtime_checkable
class InstrumentResolver(Protocol):
    """Maps human symbols to opaque venue instrument identifiers."""

    def resolve(self, symbol: str) -> str:
        ...

    def symbol_for(self, instrument: str) -> str | None:
        ...


@runtime_checkable
class PersistenceProvider(Protocol):
    """Append-only trade store, optionally able to restore open positions."""

    def save_trade(self, trade: Trade) -> None:
        ...

    def load_trades(self) -> list[Trade]:
        ...

    def load_positions(self) -> list[Position]:
        ...


__all__ = [
    "Fill",
    "MarketDataProvider",
    "ExecutionProvider",
    "InstrumentResolver",
    "PersistenceProvider",
]
