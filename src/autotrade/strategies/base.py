"""Base trading primitives shared by strategies, the ledger and the simulator."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Sequence

OrderSide = Literal["buy", "sell"]
OrderKind = Literal["market", "limit", "stop"]
Archetype = Literal["momentum", "mean_reversion", "rule_based", "random"]


@dataclass(slots=True, frozen=True)
class Bar:
    """Single OHLCV bar used by strategies and the backtester."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(slots=True)
class Order:
    """Trade decision produced by a strategy.

    Fields:
        instrument: Opaque instrument identifier
        side: "buy" or "sell"
        quantity: Quantity in instrument units (must be > 0)
        order_kind: "market", "limit" or "stop"
        limit_price: Limit/stop price for non-market orders
        timestamp: Decision time (bar time, never wall clock inside strategies)
        reason: Human-readable rationale
    """

    instrument: str
    side: OrderSide
    quantity: float
    order_kind: OrderKind = "market"
    limit_price: float | None = None
    timestamp: datetime | None = None
    reason: str = ""

    def __post_init__(self) -> None:
        if not self.instrument or not isinstance(self.instrument, str):
            raise ValueError(f"Order.instrument must be non-empty string, got {self.instrument}")

        if self.side not in ("buy", "sell"):
            raise ValueError(f"Order.side must be 'buy' or 'sell', got {self.side}")

        if not math.isfinite(self.quantity) or self.quantity <= 0:
            raise ValueError(f"Order.quantity must be positive and finite, got {self.quantity}")

        if self.order_kind != "market" and self.limit_price is None:
            raise ValueError(f"{self.order_kind} orders require limit_price")


@dataclass(slots=True, frozen=True)
class Trade:
    """Immutable fill record appended to the trade log."""

    order: Order
    executed_price: float
    executed_at: datetime
    fees: float = 0.0
    realized_pnl: float | None = None
    trade_id: str = ""

    @property
    def instrument(self) -> str:
        return self.order.instrument

    @property
    def side(self) -> OrderSide:
        return self.order.side

    @property
    def quantity(self) -> float:
        return self.order.quantity

    def to_dict(self) -> dict[str, Any]:
        """Convert trade to a JSON-serializable dictionary."""
        return {
            "trade_id": self.trade_id,
            "instrument": self.order.instrument,
            "side": self.order.side,
            "quantity": self.order.quantity,
            "order_kind": self.order.order_kind,
            "limit_price": self.order.limit_price,
            "timestamp": self.order.timestamp.isoformat() if self.order.timestamp else None,
            "reason": self.order.reason,
            "executed_price": self.executed_price,
            "executed_at": self.executed_at.isoformat(),
            "fees": self.fees,
            "realized_pnl": self.realized_pnl,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Trade:
        """Rebuild a trade from :meth:`to_dict` output."""
        order = Order(
            instrument=data["instrument"],
            side=data["side"],
            quantity=float(data["quantity"]),
            order_kind=data.get("order_kind", "market"),
            limit_price=data.get("limit_price"),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else None,
            reason=data.get("reason", ""),
        )
        return cls(
            order=order,
            executed_price=float(data["executed_price"]),
            executed_at=datetime.fromisoformat(data["executed_at"]),
            fees=float(data.get("fees", 0.0)),
            realized_pnl=data.get("realized_pnl"),
            trade_id=data.get("trade_id", ""),
        )


@dataclass(slots=True)
class Position:
    """Open long position in one instrument.

    Fields:
        instrument: Instrument identifier (positions are keyed by it)
        quantity: Units held, always > 0 while the position exists
        entry_price: Quantity-weighted average entry price
        current_price: Last mark price, if known
        stop_loss: Absolute stop-loss trigger price
        take_profit: Absolute take-profit trigger price
        realized_pnl: P&L realized by partial sells of this position
    """

    instrument: str
    quantity: float
    entry_price: float
    current_price: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    realized_pnl: float = 0.0
    position_id: str = ""
    opened_at: datetime | None = None

    @property
    def mark_price(self) -> float:
        return self.current_price if self.current_price is not None else self.entry_price

    @property
    def market_value(self) -> float:
        return self.quantity * self.mark_price

    @property
    def unrealized_pnl(self) -> float:
        return self.quantity * (self.mark_price - self.entry_price)


@dataclass(slots=True)
class MarketContext:
    """Market view handed to a strategy for one decision.

    ``bars`` holds the full history up to and including the current bar,
    ``recent_prices`` a short window of closes.
    """

    instrument: str
    current_price: float
    recent_prices: list[float]
    bars: Sequence[Bar] = field(default_factory=list)

    @property
    def closes(self) -> list[float]:
        return [b.close for b in self.bars]

    @property
    def highs(self) -> list[float]:
        return [b.high for b in self.bars]

    @property
    def lows(self) -> list[float]:
        return [b.low for b in self.bars]

    @property
    def volumes(self) -> list[float]:
        return [b.volume for b in self.bars]

    @property
    def timestamp(self) -> datetime | None:
        return self.bars[-1].timestamp if self.bars else None


@dataclass(slots=True)
class AgentState:
    """Account-level metrics visible to strategies.

    Fields:
        portfolio_value: Current total portfolio value
        volatility: Per-bar return volatility of the instrument (stddev)
        confidence_level: Free-form confidence in [0, 1]
        recent_trades: Trades executed during the last 24 hours
    """

    portfolio_value: float
    volatility: float
    confidence_level: float = 0.5
    recent_trades: int = 0


@dataclass(slots=True)
class PortfolioSnapshot:
    """Read-only portfolio view: cash plus quantity held per instrument."""

    timestamp: datetime | None
    cash: float
    holdings: dict[str, float]
    total_value: float

    def holding(self, instrument: str) -> float:
        return self.holdings.get(instrument, 0.0)


class Strategy(ABC):
    """Abstract base class for trading strategies.

    ``decide`` must be a pure function of its inputs plus the strategy's own
    configuration and explicitly declared position-tracking state.
    """

    strategy_id: str = ""
    name: str = ""
    description: str = ""
    archetype: Archetype | None = None

    @abstractmethod
    def decide(
        self,
        context: MarketContext,
        agent_state: AgentState,
        portfolio: PortfolioSnapshot,
    ) -> Order | None:
        """Return an order or None when there is nothing to do."""

    def is_ready(self) -> bool:
        return True

    def configure(self, params: dict[str, Any]) -> None:  # pragma: no cover - optional hook
        """Apply configuration overrides."""

    def exit_levels(self) -> tuple[float | None, float | None]:
        """Strategy-specific (stop_loss_pct, take_profit_pct) in percent units."""
        return None, None

    def reset(self) -> None:  # pragma: no cover - optional hook
        """Reset internal state before a new backtest run."""


__all__ = [
    "Bar",
    "Order",
    "Trade",
    "Position",
    "MarketContext",
    "AgentState",
    "PortfolioSnapshot",
    "Strategy",
    "OrderSide",
    "OrderKind",
    "Archetype",
]
