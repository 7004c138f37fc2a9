"""Tests for the deterministic backtest simulator."""

from __future__ import annotations

from pathlib import Path

import pytest

from autotrade.config.models import BacktestSettings
from autotrade.engine.backtester import BacktestSimulator, run_backtest
from autotrade.errors import StrategyNotFound
from autotrade.strategies.base import Strategy
from autotrade.strategies.configs import RandomStrategyConfig
from autotrade.strategies.mean_reversion import MeanReversionStrategy
from autotrade.strategies.random_strategy import RandomStrategy

from conftest import make_bars

NO_RISK = BacktestSettings(apply_risk_checks=False)
COSTLESS = BacktestSettings(fee_rate=0.0, slippage=0.0, apply_risk_checks=False)


def _always_buy(quantity: float) -> RandomStrategy:
    return RandomStrategy(
        RandomStrategyConfig(trade_attempt_probability=1.0, buy_probability=1.0, fixed_trade_quantity=quantity)
    )


class FlakyStrategy(Strategy):
    strategy_id = "flaky"

    def decide(self, context, agent_state, portfolio):
        if len(context.bars) % 2 == 0:
            raise ValueError("bad bar")
        return None


def test_runs_are_deterministic(zigzag_bars) -> None:
    params = {"trade_attempt_probability": 0.3, "seed": 42, "max_trade_size_pct": 0.05}
    first = run_backtest("random-v1", zigzag_bars, "SOL", params, settings=NO_RISK)
    second = run_backtest("random-v1", zigzag_bars, "SOL", params, settings=NO_RISK)

    assert first.trades
    assert first.to_dict() == second.to_dict()


def test_same_simulator_resets_between_runs(zigzag_bars) -> None:
    strategy = RandomStrategy(RandomStrategyConfig(trade_attempt_probability=0.3, seed=3))
    simulator = BacktestSimulator(strategy, settings=NO_RISK)
    assert simulator.run(zigzag_bars, "SOL").to_dict() == simulator.run(zigzag_bars, "SOL").to_dict()


def test_mean_reversion_on_flat_series_never_trades(flat_bars) -> None:
    report = BacktestSimulator(MeanReversionStrategy()).run(flat_bars, "SOL")

    assert report.trades == []
    assert report.final_value == pytest.approx(10_000.0)
    assert report.metrics.total_pnl == 0.0
    assert report.metrics.sharpe_ratio is None
    assert report.metrics.max_drawdown == 0.0


def test_fees_and_slippage_are_applied() -> None:
    bars = make_bars([100.0] * 3)
    report = BacktestSimulator(_always_buy(10), settings=NO_RISK).run(bars, "SOL")

    assert len(report.trades) == 3
    trade = report.trades[0]
    assert trade.executed_price == pytest.approx(100.05)
    assert trade.fees == pytest.approx(1.0005)
    assert report.metrics.total_fees == pytest.approx(3.0015)
    assert report.final_value == pytest.approx(9_995.4985)


def test_uncovered_orders_are_dropped_not_fatal() -> None:
    bars = make_bars([100.0] * 5)
    report = BacktestSimulator(_always_buy(1_000), settings=COSTLESS).run(bars, "SOL")

    assert report.trades == []
    assert len(report.dropped_orders) == 5
    assert report.dropped_orders[0].reason.startswith("Insufficient cash")
    assert report.final_value == 10_000.0


def test_risk_checks_drop_oversized_orders() -> None:
    bars = make_bars([100.0] * 3)
    report = BacktestSimulator(_always_buy(20), settings=BacktestSettings(fee_rate=0.0, slippage=0.0)).run(
        bars, "SOL"
    )

    assert report.trades == []
    assert "max position size" in report.dropped_orders[0].reason


def test_strategy_errors_are_recorded() -> None:
    report = BacktestSimulator(FlakyStrategy(), settings=NO_RISK).run(make_bars([100.0] * 6), "SOL")
    assert report.bars == 6
    assert len(report.errors) == 3
    assert "bad bar" in report.errors[0]
    assert len(report.equity_curve) == 6


def test_unordered_bars_rejected() -> None:
    bars = make_bars([100.0, 101.0, 102.0])
    with pytest.raises(ValueError):
        BacktestSimulator(_always_buy(1)).run([bars[1], bars[0], bars[2]], "SOL")


def test_benchmark_and_equity_curve(uptrend_bars) -> None:
    report = run_backtest("random-v1", uptrend_bars, "SOL", {"trade_attempt_probability": 0.0})

    assert report.metrics.benchmark_return_pct == pytest.approx(119.0)
    assert report.metrics.benchmark_final_value == pytest.approx(21_900.0)
    assert len(report.equity_curve) == len(uptrend_bars)
    assert report.start == uptrend_bars[0].timestamp
    assert report.end == uptrend_bars[-1].timestamp


def test_dataframe_exports() -> None:
    bars = make_bars([100.0, 101.0, 102.0])
    report = BacktestSimulator(_always_buy(1), settings=NO_RISK).run(bars, "SOL")

    trades = report.trades_frame()
    assert list(trades["side"]) == ["buy", "buy", "buy"]
    assert list(trades["trade_id"]) == ["T000001", "T000002", "T000003"]

    equity = report.equity_frame()
    assert list(equity.columns) == ["equity"]
    assert len(equity) == 3
    assert equity.index[0] == bars[0].timestamp


def test_run_from_csv(tmp_path: Path) -> None:
    path = tmp_path / "bars.csv"
    rows = ["timestamp,open,high,low,close,volume"]
    for i in range(10):
        rows.append(f"2024-01-01T00:{i:02d}:00Z,100,101,99,{100 + i},500")
    path.write_text("\n".join(rows) + "\n", encoding="utf-8")

    report = run_backtest("random-v1", path, "SOL", {"trade_attempt_probability": 0.0})
    assert report.bars == 10
    assert report.metrics.benchmark_return_pct == pytest.approx(9.0)


def test_missing_csv_and_unknown_strategy(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        run_backtest("random-v1", tmp_path / "missing.csv", "SOL")
    with pytest.raises(StrategyNotFound):
        run_backtest("does-not-exist", make_bars([1.0, 2.0]), "SOL")
