"""Deterministic bar-by-bar backtest simulator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Sequence

import pandas as pd

from autotrade.config.models import BacktestSettings
from autotrade.engine.ledger import Ledger
from autotrade.engine.reporting import PerformanceMetrics, PerformanceReporter
from autotrade.providers.historical import load_bars_csv
from autotrade.providers.simulated import apply_slippage, trading_fee
from autotrade.risk.engine import RiskEngine
from autotrade.strategies.base import (
    AgentState,
    Bar,
    MarketContext,
    Order,
    PortfolioSnapshot,
    Strategy,
    Trade,
)
from autotrade.strategies.indicators import returns_volatility
from autotrade.strategies.registry import StrategyRegistry, default_registry

logger = logging.getLogger(__name__)

RECENT_PRICE_WINDOW = 20
VOLATILITY_WINDOW = 51


@dataclass(slots=True)
class DroppedOrder:
    """Order the simulator did not fill, with the reason."""

    timestamp: datetime
    order: Order
    reason: str


@dataclass(slots=True)
class SimulationReport:
    """Result of one backtest run."""

    strategy_id: str
    instrument: str
    start: datetime | None
    end: datetime | None
    bars: int
    initial_capital: float
    final_value: float
    trades: list[Trade]
    dropped_orders: list[DroppedOrder]
    equity_curve: list[tuple[datetime, float]]
    snapshots: list[PortfolioSnapshot]
    metrics: PerformanceMetrics
    errors: list[str] = field(default_factory=list)

    def trades_frame(self) -> pd.DataFrame:
        """Trades as a DataFrame, one row per fill."""
        columns = [
            "trade_id",
            "executed_at",
            "instrument",
            "side",
            "quantity",
            "executed_price",
            "fees",
            "realized_pnl",
            "reason",
        ]
        rows = [
            {
                "trade_id": t.trade_id,
                "executed_at": t.executed_at,
                "instrument": t.instrument,
                "side": t.side,
                "quantity": t.quantity,
                "executed_price": t.executed_price,
                "fees": t.fees,
                "realized_pnl": t.realized_pnl,
                "reason": t.order.reason,
            }
            for t in self.trades
        ]
        return pd.DataFrame(rows, columns=columns)

    def equity_frame(self) -> pd.DataFrame:
        """Equity curve as a DataFrame indexed by bar timestamp."""
        frame = pd.DataFrame(self.equity_curve, columns=["timestamp", "equity"])
        return frame.set_index("timestamp")

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy_id": self.strategy_id,
            "instrument": self.instrument,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "bars": self.bars,
            "initial_capital": self.initial_capital,
            "final_value": self.final_value,
            "trades": [t.to_dict() for t in self.trades],
            "dropped_orders": [
                {"timestamp": d.timestamp.isoformat(), "side": d.order.side, "reason": d.reason}
                for d in self.dropped_orders
            ],
            "equity_curve": [
                {"timestamp": ts.isoformat(), "equity": equity} for ts, equity in self.equity_curve
            ],
            "metrics": self.metrics.to_dict(),
        }


class BacktestSimulator:
    """Replays bars through one strategy against an isolated portfolio.

    Each run owns a fresh :class:`Ledger`; nothing is shared with live
    sessions or other runs. Simulated time is the current bar's timestamp,
    so results depend only on the strategy config and the bar series.

    Per bar: the strategy sees all bars up to and including the current one.
    An order is filled at the bar close moved against the trader by
    ``slippage``, with a proportional fee. Orders the portfolio cannot cover
    (cash or holdings) or that the risk engine rejects are dropped and
    listed on the report; they are not errors.

    Args:
        strategy: Strategy instance to drive; it is reset at the start of each run
        settings: Capital and execution-cost settings
        risk_engine: Risk engine for order validation (defaults if omitted and
            ``settings.apply_risk_checks`` is set)
        reporter: Performance reporter
    """

    def __init__(
        self,
        strategy: Strategy,
        settings: BacktestSettings | None = None,
        risk_engine: RiskEngine | None = None,
        reporter: PerformanceReporter | None = None,
    ) -> None:
        self.strategy = strategy
        self.settings = settings or BacktestSettings()
        self.risk_engine = risk_engine
        if self.risk_engine is None and self.settings.apply_risk_checks:
            self.risk_engine = RiskEngine()
        self.reporter = reporter or PerformanceReporter()

    def run(self, bars: Sequence[Bar], instrument: str) -> SimulationReport:
        """Run the backtest over ``bars`` (ordered by timestamp)."""
        bars = list(bars)
        for previous, current in zip(bars, bars[1:]):
            if current.timestamp <= previous.timestamp:
                raise ValueError(
                    f"Bars must be strictly time-ordered: {current.timestamp} follows {previous.timestamp}"
                )

        settings = self.settings
        now = bars[0].timestamp if bars else datetime.min

        def clock() -> datetime:
            return now

        ledger = Ledger(initial_cash=settings.initial_capital, clock=clock)
        self.strategy.reset()

        trades: list[Trade] = []
        dropped: list[DroppedOrder] = []
        errors: list[str] = []
        equity_curve: list[tuple[datetime, float]] = []
        snapshots: list[PortfolioSnapshot] = []
        closes: list[float] = []

        logger.info(
            f"Backtest started: strategy={self.strategy.strategy_id}, instrument={instrument}, bars={len(bars)}"
        )

        for index, bar in enumerate(bars):
            now = bar.timestamp
            closes.append(bar.close)
            ledger.mark_price(instrument, bar.close)

            context = MarketContext(
                instrument=instrument,
                current_price=bar.close,
                recent_prices=closes[-RECENT_PRICE_WINDOW:],
                bars=bars[: index + 1],
            )
            agent_state = AgentState(
                portfolio_value=ledger.total_value(),
                volatility=returns_volatility(closes[-VOLATILITY_WINDOW:]),
                recent_trades=sum(1 for t in trades if t.executed_at > now - timedelta(hours=24)),
            )

            try:
                order = self.strategy.decide(context, agent_state, ledger.snapshot(now))
            except Exception as exc:
                message = f"{now.isoformat()}: {type(exc).__name__}: {exc}"
                logger.error(f"Strategy error during backtest, bar skipped: {message}", exc_info=True)
                errors.append(message)
                order = None

            if order is not None:
                outcome = self._fill(order, bar, instrument, ledger)
                if isinstance(outcome, Trade):
                    trades.append(outcome)
                else:
                    dropped.append(DroppedOrder(timestamp=now, order=order, reason=outcome))

            equity_curve.append((now, ledger.total_value()))
            snapshots.append(ledger.snapshot(now))

        final_value = equity_curve[-1][1] if equity_curve else settings.initial_capital
        metrics = self.reporter.compute(trades, equity_curve, settings.initial_capital, bars)
        logger.info(
            f"Backtest finished: trades={len(trades)}, dropped={len(dropped)}, "
            f"final_value={final_value:.2f}, pnl={metrics.total_pnl_pct:.2f}%"
        )
        return SimulationReport(
            strategy_id=self.strategy.strategy_id,
            instrument=instrument,
            start=bars[0].timestamp if bars else None,
            end=bars[-1].timestamp if bars else None,
            bars=len(bars),
            initial_capital=settings.initial_capital,
            final_value=final_value,
            trades=trades,
            dropped_orders=dropped,
            equity_curve=equity_curve,
            snapshots=snapshots,
            metrics=metrics,
            errors=errors,
        )

    def _fill(self, order: Order, bar: Bar, instrument: str, ledger: Ledger) -> Trade | str:
        """Fill ``order`` at ``bar`` or return the reason it was dropped."""
        if order.instrument != instrument:
            return f"Order for {order.instrument} in a backtest of {instrument}"

        price = apply_slippage(bar.close, order.side, self.settings.slippage)
        fees = trading_fee(order.quantity, price, self.settings.fee_rate)

        reason = ledger.can_fill(order, price, fees)
        if reason is not None:
            logger.debug(f"Dropped {order.side} {order.quantity:.8g} at {bar.timestamp}: {reason}")
            return reason

        if self.risk_engine is not None and self.settings.apply_risk_checks:
            result = self.risk_engine.validate_order(
                order,
                ledger.positions,
                ledger.total_value(),
                ledger.daily_pnl(bar.timestamp),
                price=price,
            )
            if not result.accepted:
                reason = "; ".join(result.violations)
                logger.debug(f"Risk rejected {order.side} at {bar.timestamp}: {reason}")
                return reason

        return ledger.apply_fill(order, price, bar.timestamp, fees)


def run_backtest(
    strategy_id: str,
    bars: Sequence[Bar] | Path | str,
    instrument: str,
    params: dict[str, Any] | None = None,
    settings: BacktestSettings | None = None,
    risk_engine: RiskEngine | None = None,
    registry: StrategyRegistry | None = None,
) -> SimulationReport:
    """Build a strategy from the registry and backtest it.

    Args:
        strategy_id: Registered strategy id
        bars: Bars, or a path to an OHLCV CSV file
        instrument: Instrument identifier the bars belong to
        params: Strategy parameters
        settings: Backtest settings
        risk_engine: Risk engine for order validation
        registry: Strategy registry (built-ins if omitted)

    Raises:
        StrategyNotFound: If ``strategy_id`` is not registered
        FileNotFoundError: If a CSV path does not exist
    """
    if isinstance(bars, (str, Path)):
        path = Path(bars)
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")
        bars = load_bars_csv(path)

    strategy = (registry or default_registry()).create(strategy_id, params or {})
    return BacktestSimulator(strategy, settings=settings, risk_engine=risk_engine).run(bars, instrument)


__all__ = [
    "BacktestSimulator",
    "SimulationReport",
    "DroppedOrder",
    "run_backtest",
]
