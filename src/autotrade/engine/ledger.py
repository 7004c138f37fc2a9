"""Position and portfolio ledger shared by live and simulated execution."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Callable, Iterable

from autotrade.errors import LedgerError
from autotrade.strategies.base import Order, PortfolioSnapshot, Position, Trade

logger = logging.getLogger(__name__)

QUANTITY_EPSILON = 1e-9

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _utc_day(moment: datetime) -> date:
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(timezone.utc).date()


class Ledger:
    """Authoritative record of cash, open positions and realized P&L.

    Positions are keyed by instrument. A position exists only while its
    quantity is > 0: the first BUY creates it, later BUYs average the entry
    price by quantity, and a SELL that brings the quantity to zero removes it.
    Realized P&L of a SELL is ``quantity * (executed_price - entry_price)``;
    fees are charged against cash only.

    Daily P&L rolls over at the UTC day boundary of the fill time.

    Thread-safe: Protected by internal lock.

    Args:
        initial_cash: Starting cash balance
        clock: Returns the current time; used when a fill carries no time
            and to roll daily P&L on read
    """

    def __init__(self, initial_cash: float = 0.0, clock: Clock | None = None) -> None:
        if initial_cash < 0:
            raise LedgerError(f"initial_cash must be >= 0, got {initial_cash}")
        self._lock = threading.RLock()
        self._clock = clock or utc_now
        self._cash = float(initial_cash)
        self._initial_cash = float(initial_cash)
        self._positions: dict[str, Position] = {}
        self._trades: list[Trade] = []
        self._realized_pnl = 0.0
        self._daily_pnl = 0.0
        self._pnl_day: date | None = None
        self._wins = 0
        self._losses = 0
        self._trade_seq = 0
        self._position_seq = 0

    # ========================================================================
    # Read access
    # ========================================================================

    @property
    def cash(self) -> float:
        return self._cash

    @property
    def initial_cash(self) -> float:
        return self._initial_cash

    @property
    def positions(self) -> dict[str, Position]:
        """Copies of open positions keyed by instrument."""
        with self._lock:
            return {name: replace(p) for name, p in self._positions.items()}

    def position(self, instrument: str) -> Position | None:
        with self._lock:
            position = self._positions.get(instrument)
            return replace(position) if position is not None else None

    def holding(self, instrument: str) -> float:
        with self._lock:
            position = self._positions.get(instrument)
            return position.quantity if position is not None else 0.0

    @property
    def holdings(self) -> dict[str, float]:
        with self._lock:
            return {name: p.quantity for name, p in self._positions.items()}

    @property
    def trades(self) -> list[Trade]:
        with self._lock:
            return list(self._trades)

    @property
    def realized_pnl(self) -> float:
        return self._realized_pnl

    def daily_pnl(self, now: datetime | None = None) -> float:
        """Realized P&L of the current UTC day (0.0 once the day has rolled)."""
        with self._lock:
            self._roll_day(now or self._clock())
            return self._daily_pnl

    def exposure(self) -> float:
        with self._lock:
            return sum(p.market_value for p in self._positions.values())

    def total_value(self) -> float:
        with self._lock:
            return self._cash + self.exposure()

    def win_rate(self) -> float:
        closed = self._wins + self._losses
        return self._wins / closed if closed else 0.0

    def snapshot(self, timestamp: datetime | None = None) -> PortfolioSnapshot:
        with self._lock:
            return PortfolioSnapshot(
                timestamp=timestamp,
                cash=self._cash,
                holdings=self.holdings,
                total_value=self.total_value(),
            )

    def performance(self) -> dict[str, float | int]:
        """Summary of account performance."""
        with self._lock:
            value = self.total_value()
            return {
                "cash": self._cash,
                "total_value": value,
                "realized_pnl": self._realized_pnl,
                "unrealized_pnl": sum(p.unrealized_pnl for p in self._positions.values()),
                "daily_pnl": self.daily_pnl(),
                "open_positions": len(self._positions),
                "trades": len(self._trades),
                "wins": self._wins,
                "losses": self._losses,
                "win_rate": self.win_rate(),
            }

    # ========================================================================
    # Mutation
    # ========================================================================

    def can_fill(self, order: Order, price: float, fees: float = 0.0) -> str | None:
        """Return a reason string if ``order`` cannot be filled, else None."""
        with self._lock:
            if order.side == "buy":
                cost = order.quantity * price + fees
                if cost > self._cash + QUANTITY_EPSILON:
                    return f"Insufficient cash: need {cost:.2f}, have {self._cash:.2f}"
                return None
            held = self.holding(order.instrument)
            if order.quantity > held + QUANTITY_EPSILON:
                return f"Insufficient holdings of {order.instrument}: need {order.quantity}, have {held}"
            return None

    def apply_fill(
        self,
        order: Order,
        executed_price: float,
        executed_at: datetime | None = None,
        fees: float = 0.0,
        trade_id: str | None = None,
    ) -> Trade:
        """Apply an executed order and append its trade record.

        Raises:
            LedgerError: If the price is not positive or a SELL exceeds the holding
        """
        if executed_price <= 0:
            raise LedgerError(f"executed_price must be positive, got {executed_price}")
        if fees < 0:
            raise LedgerError(f"fees must be >= 0, got {fees}")

        with self._lock:
            executed_at = executed_at or self._clock()
            self._roll_day(executed_at)

            if order.side == "buy":
                realized = None
                self._apply_buy(order, executed_price, executed_at, fees)
            else:
                realized = self._apply_sell(order, executed_price, fees)

            self._trade_seq += 1
            trade = Trade(
                order=order,
                executed_price=executed_price,
                executed_at=executed_at,
                fees=fees,
                realized_pnl=realized,
                trade_id=trade_id or f"T{self._trade_seq:06d}",
            )
            self._trades.append(trade)
            logger.debug(
                f"Fill {order.side} {order.quantity} {order.instrument} @ {executed_price} "
                f"(fees={fees}, realized={realized})"
            )
            return trade

    def _apply_buy(self, order: Order, price: float, executed_at: datetime, fees: float) -> None:
        cost = order.quantity * price + fees
        if cost > self._cash + QUANTITY_EPSILON:
            logger.warning(
                f"Buy of {order.instrument} costs {cost:.2f} with only {self._cash:.2f} cash on the ledger"
            )
        self._cash -= cost

        position = self._positions.get(order.instrument)
        if position is None:
            self._position_seq += 1
            self._positions[order.instrument] = Position(
                instrument=order.instrument,
                quantity=order.quantity,
                entry_price=price,
                current_price=price,
                position_id=f"P{self._position_seq:06d}",
                opened_at=executed_at,
            )
            return

        total = position.quantity + order.quantity
        position.entry_price = (position.entry_price * position.quantity + price * order.quantity) / total
        position.quantity = total
        position.current_price = price

    def _apply_sell(self, order: Order, price: float, fees: float) -> float:
        position = self._positions.get(order.instrument)
        held = position.quantity if position is not None else 0.0
        if position is None or order.quantity > held + QUANTITY_EPSILON:
            raise LedgerError(
                f"Cannot sell {order.quantity} {order.instrument}: only {held} held"
            )

        quantity = min(order.quantity, position.quantity)
        realized = quantity * (price - position.entry_price)
        self._cash += quantity * price - fees

        position.quantity -= quantity
        position.current_price = price
        position.realized_pnl += realized
        if position.quantity <= QUANTITY_EPSILON:
            del self._positions[order.instrument]

        self._realized_pnl += realized
        self._daily_pnl += realized
        if realized > 0:
            self._wins += 1
        elif realized < 0:
            self._losses += 1
        return realized

    def mark_price(self, instrument: str, price: float) -> None:
        """Update the mark price of an open position (no-op if none)."""
        with self._lock:
            position = self._positions.get(instrument)
            if position is not None and price > 0:
                position.current_price = price

    def set_protective_levels(
        self, instrument: str, stop_loss: float | None, take_profit: float | None
    ) -> None:
        with self._lock:
            position = self._positions.get(instrument)
            if position is not None:
                position.stop_loss = stop_loss
                position.take_profit = take_profit

    def load_positions(self, positions: Iterable[Position]) -> None:
        """Replace open positions, e.g. with positions restored at startup."""
        with self._lock:
            self._positions = {}
            for position in positions:
                if position.quantity <= QUANTITY_EPSILON:
                    continue
                self._positions[position.instrument] = replace(position)
            logger.info(f"Loaded {len(self._positions)} open position(s)")

    def set_cash(self, amount: float) -> None:
        if amount < 0:
            raise LedgerError(f"cash must be >= 0, got {amount}")
        with self._lock:
            self._cash = float(amount)
            self._initial_cash = float(amount)

    def _roll_day(self, moment: datetime) -> None:
        day = _utc_day(moment)
        if self._pnl_day is None:
            self._pnl_day = day
        elif day > self._pnl_day:
            logger.info(f"New trading day {day}; daily P&L {self._daily_pnl:.2f} reset")
            self._pnl_day = day
            self._daily_pnl = 0.0


__all__ = ["Ledger", "Clock", "utc_now"]
