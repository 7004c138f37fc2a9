"""In-memory market data and simulated execution."""

from __future__ import annotations

import itertools
import logging
from bisect import insort
from datetime import datetime, timezone
from typing import Callable, Iterable

from autotrade.errors import TransientExecutionFailure
from autotrade.providers.base import Fill, MarketDataProvider
from autotrade.strategies.base import Bar, Order, OrderSide

logger = logging.getLogger(__name__)


def apply_slippage(price: float, side: OrderSide, slippage: float) -> float:
    """Move ``price`` against the trader by ``slippage`` (fraction of price)."""
    adjustment = price * slippage
    return price + adjustment if side == "buy" else price - adjustment


def trading_fee(quantity: float, price: float, fee_rate: float) -> float:
    return quantity * price * fee_rate


class InMemoryMarketData:
    """Market data provider backed by bars held in memory.

    ``interval`` is accepted for interface compatibility; bars are returned
    as stored.
    """

    def __init__(self, bars: dict[str, Iterable[Bar]] | None = None) -> None:
        self._bars: dict[str, list[Bar]] = {}
        self._prices: dict[str, float] = {}
        for instrument, series in (bars or {}).items():
            self.add_bars(instrument, series)

    def add_bars(self, instrument: str, bars: Iterable[Bar]) -> None:
        series = self._bars.setdefault(instrument, [])
        for bar in bars:
            insort(series, bar, key=lambda b: b.timestamp)

    def set_price(self, instrument: str, price: float | None) -> None:
        if price is None:
            self._prices.pop(instrument, None)
        else:
            self._prices[instrument] = price

    def fetch_bars(
        self,
        instrument: str,
        interval: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Bar]:
        bars = [
            bar
            for bar in self._bars.get(instrument, [])
            if (start is None or bar.timestamp >= start) and (end is None or bar.timestamp <= end)
        ]
        if limit is not None:
            bars = bars[-limit:] if limit > 0 else []
        return bars

    def latest_price(self, instrument: str) -> float | None:
        if instrument in self._prices:
            return self._prices[instrument]
        series = self._bars.get(instrument)
        return series[-1].close if series else None


class SimulatedExecutionProvider:
    """Fills every order immediately with slippage and proportional fees.

    Args:
        market_data: Price source used when no reference price is given
        fee_rate: Fee as a fraction of traded value
        slippage: Adverse price adjustment as a fraction of price
        clock: Returns the fill time
    """

    def __init__(
        self,
        market_data: MarketDataProvider | None = None,
        fee_rate: float = 0.001,
        slippage: float = 0.0005,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if fee_rate < 0 or slippage < 0:
            raise ValueError("fee_rate and slippage must be >= 0")
        self.market_data = market_data
        self.fee_rate = fee_rate
        self.slippage = slippage
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._ids = itertools.count(1)
        self.submitted: list[Order] = []

    def submit_order(self, order: Order, reference_price: float | None = None) -> Fill:
        price = reference_price if reference_price is not None else order.limit_price
        if price is None and self.market_data is not None:
            price = self.market_data.latest_price(order.instrument)
        if price is None or price <= 0:
            raise TransientExecutionFailure(f"No price available to execute {order.instrument}")

        executed_price = apply_slippage(price, order.side, self.slippage)
        fees = trading_fee(order.quantity, executed_price, self.fee_rate)
        self.submitted.append(order)
        fill = Fill(
            order=order,
            executed_price=executed_price,
            executed_at=self._clock(),
            fees=fees,
            venue_order_id=f"SIM-{next(self._ids)}",
        )
        logger.debug(
            f"Simulated fill {order.side} {order.quantity} {order.instrument} @ {executed_price:.8g}"
        )
        return fill


__all__ = [
    "InMemoryMarketData",
    "SimulatedExecutionProvider",
    "apply_slippage",
    "trading_fee",
]
