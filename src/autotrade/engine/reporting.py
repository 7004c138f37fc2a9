"""Performance metrics derived from a trade list and an equity curve."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Sequence

import pandas as pd

from autotrade.strategies.base import Bar, Trade

PRECISION = 4
TRADING_DAYS_PER_YEAR = 252

EquityCurve = Sequence[tuple[datetime, float]]


def _round(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return round(value, PRECISION)


@dataclass(slots=True)
class PerformanceMetrics:
    """Aggregate performance of a trading run.

    All values are rounded to 4 decimal places. Ratios that are undefined
    for the given data (no losses, fewer than two returns, zero variance)
    are None.
    """

    initial_value: float
    final_value: float
    total_pnl: float
    total_pnl_pct: float
    total_trades: int
    closed_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    win_loss_ratio: float | None
    avg_win: float
    avg_loss: float
    total_fees: float
    max_drawdown: float
    max_drawdown_pct: float
    sharpe_ratio: float | None
    benchmark_return_pct: float | None
    benchmark_final_value: float | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def max_drawdown(curve: EquityCurve) -> tuple[float, float]:
    """Largest peak-to-trough decline as (absolute, percent of peak)."""
    peak = float("-inf")
    worst_abs = 0.0
    worst_pct = 0.0
    for _, equity in curve:
        if equity > peak:
            peak = equity
        drop = peak - equity
        if drop > worst_abs:
            worst_abs = drop
        if peak > 0:
            worst_pct = max(worst_pct, drop / peak * 100)
    return worst_abs, worst_pct


def sharpe_ratio(curve: EquityCurve, periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float | None:
    """Annualized Sharpe ratio of per-bar returns, or None if undefined.

    Requires at least two returns with non-zero sample standard deviation.
    """
    values = pd.Series([equity for _, equity in curve], dtype="float64")
    returns = values.pct_change(fill_method=None).dropna()
    returns = returns[returns.map(math.isfinite)]
    if len(returns) < 2:
        return None
    std = float(returns.std(ddof=1))
    if std == 0 or not math.isfinite(std):
        return None
    return float(returns.mean()) / std * math.sqrt(periods_per_year)


class PerformanceReporter:
    """Computes :class:`PerformanceMetrics` for backtests and live sessions."""

    def __init__(self, periods_per_year: int = TRADING_DAYS_PER_YEAR) -> None:
        self.periods_per_year = periods_per_year

    def compute(
        self,
        trades: Sequence[Trade],
        equity_curve: EquityCurve,
        initial_value: float,
        bars: Sequence[Bar] | None = None,
    ) -> PerformanceMetrics:
        """Derive metrics.

        Args:
            trades: Executed trades in execution order
            equity_curve: (timestamp, total value) samples, one per bar
            initial_value: Portfolio value before the first bar
                and the baseline for drawdown and Sharpe ratio
            bars: Price series used for the buy-and-hold benchmark

        Returns:
            PerformanceMetrics rounded to 4 decimal places
        """
        final_value = equity_curve[-1][1] if equity_curve else initial_value
        total_pnl = final_value - initial_value
        total_pnl_pct = total_pnl / initial_value * 100 if initial_value > 0 else 0.0

        closed = [t.realized_pnl for t in trades if t.realized_pnl is not None]
        wins = [pnl for pnl in closed if pnl > 0]
        losses = [pnl for pnl in closed if pnl < 0]
        decided = len(wins) + len(losses)
        win_rate = len(wins) / decided * 100 if decided else 0.0
        avg_win = sum(wins) / len(wins) if wins else 0.0
        avg_loss = abs(sum(losses) / len(losses)) if losses else 0.0
        win_loss_ratio = len(wins) / len(losses) if losses else None

        anchored = [(equity_curve[0][0], initial_value), *equity_curve] if equity_curve else []
        dd_abs, dd_pct = max_drawdown(anchored)

        benchmark_return = None
        benchmark_value = None
        if bars and bars[0].close > 0:
            growth = bars[-1].close / bars[0].close
            benchmark_return = (growth - 1) * 100
            benchmark_value = initial_value * growth

        return PerformanceMetrics(
            initial_value=round(initial_value, PRECISION),
            final_value=round(final_value, PRECISION),
            total_pnl=round(total_pnl, PRECISION),
            total_pnl_pct=round(total_pnl_pct, PRECISION),
            total_trades=len(trades),
            closed_trades=len(closed),
            winning_trades=len(wins),
            losing_trades=len(losses),
            win_rate=round(win_rate, PRECISION),
            win_loss_ratio=_round(win_loss_ratio),
            avg_win=round(avg_win, PRECISION),
            avg_loss=round(avg_loss, PRECISION),
            total_fees=round(sum(t.fees for t in trades), PRECISION),
            max_drawdown=round(dd_abs, PRECISION),
            max_drawdown_pct=round(dd_pct, PRECISION),
            sharpe_ratio=_round(sharpe_ratio(anchored, self.periods_per_year)),
            benchmark_return_pct=_round(benchmark_return),
            benchmark_final_value=_round(benchmark_value),
        )


__all__ = [
    "PerformanceMetrics",
    "PerformanceReporter",
    "max_drawdown",
    "sharpe_ratio",
]
