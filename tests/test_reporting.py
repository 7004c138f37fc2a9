"""Tests for performance metrics."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from autotrade.engine.reporting import PerformanceReporter, max_drawdown, sharpe_ratio
from autotrade.strategies.base import Order, Trade

from conftest import make_bars

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _curve(values: list[float]) -> list[tuple[datetime, float]]:
    return [(T0 + timedelta(days=i), v) for i, v in enumerate(values)]


def _trade(realized: float | None, fees: float = 0.0) -> Trade:
    side = "buy" if realized is None else "sell"
    return Trade(
        order=Order(instrument="SOL", side=side, quantity=1),
        executed_price=100.0,
        executed_at=T0,
        fees=fees,
        realized_pnl=realized,
    )


def test_max_drawdown() -> None:
    dd_abs, dd_pct = max_drawdown(_curve([100, 120, 90, 110, 80, 130]))
    assert dd_abs == pytest.approx(40.0)
    assert dd_pct == pytest.approx(40 / 120 * 100)
    assert max_drawdown(_curve([100, 101, 102])) == (0.0, 0.0)
    assert max_drawdown([]) == (0.0, 0.0)


def test_sharpe_undefined_cases() -> None:
    assert sharpe_ratio(_curve([])) is None
    assert sharpe_ratio(_curve([100, 101])) is None
    assert sharpe_ratio(_curve([100, 100, 100, 100])) is None


def test_sharpe_is_annualized_sample_ratio() -> None:
    values = [100, 102, 101, 104, 103]
    returns = [values[i] / values[i - 1] - 1 for i in range(1, len(values))]
    mean = sum(returns) / len(returns)
    std = math.sqrt(sum((r - mean) ** 2 for r in returns) / (len(returns) - 1))
    assert sharpe_ratio(_curve(values)) == pytest.approx(mean / std * math.sqrt(252))


def test_compute_trade_statistics() -> None:
    trades = [_trade(None, 1.0), _trade(30.0, 1.0), _trade(-10.0, 0.5), _trade(20.0), _trade(0.0)]
    metrics = PerformanceReporter().compute(trades, _curve([1_000, 1_020, 1_040]), 1_000.0)

    assert metrics.total_trades == 5
    assert metrics.closed_trades == 4
    assert metrics.winning_trades == 2
    assert metrics.losing_trades == 1
    assert metrics.win_rate == pytest.approx(66.6667)
    assert metrics.win_loss_ratio == 2.0
    assert metrics.avg_win == 25.0
    assert metrics.avg_loss == 10.0
    assert metrics.total_fees == 2.5
    assert metrics.total_pnl == 40.0
    assert metrics.total_pnl_pct == 4.0
    assert metrics.benchmark_return_pct is None


def test_compute_without_losses_or_trades() -> None:
    metrics = PerformanceReporter().compute([], [], 500.0)
    assert metrics.final_value == 500.0
    assert metrics.win_rate == 0.0
    assert metrics.win_loss_ratio is None
    assert metrics.sharpe_ratio is None


def test_values_rounded_to_four_places() -> None:
    bars = make_bars([3.0, 4.0])
    metrics = PerformanceReporter().compute([], _curve([3.0, 3.123456789]), 3.0, bars)

    assert metrics.final_value == 3.1235
    assert metrics.total_pnl_pct == pytest.approx(4.1152)
    assert metrics.benchmark_return_pct == 33.3333
    assert metrics.benchmark_final_value == 4.0
    assert metrics.to_dict()["final_value"] == 3.1235


def test_first_bar_loss_counts_against_initial_value() -> None:
    metrics = PerformanceReporter().compute([], _curve([900.0, 950.0, 960.0]), 1_000.0)

    assert metrics.max_drawdown == 100.0
    assert metrics.max_drawdown_pct == 10.0
    # returns -10%, +5.56%, +1.05%
    assert metrics.sharpe_ratio is not None
    assert metrics.sharpe_ratio < 0
