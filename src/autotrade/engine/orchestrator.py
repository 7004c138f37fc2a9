"""Trading orchestrator: session lifecycle and the periodic decision loop."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Literal, Sequence

from pydantic import ValidationError

from autotrade.config.models import TradingConfig
from autotrade.engine.ledger import Clock, Ledger, utc_now
from autotrade.errors import (
    AlreadyTrading,
    AutoTradeError,
    ConfigurationError,
    LedgerError,
    TransientExecutionFailure,
)
from autotrade.providers.base import (
    ExecutionProvider,
    InstrumentResolver,
    MarketDataProvider,
    PersistenceProvider,
)
from autotrade.risk.engine import RiskEngine
from autotrade.strategies.base import AgentState, Bar, MarketContext, Order, Strategy
from autotrade.strategies.indicators import returns_volatility
from autotrade.strategies.registry import StrategyRegistry, default_registry

logger = logging.getLogger(__name__)

SessionState = Literal["idle", "trading"]
TransactionStatus = Literal["filled", "rejected", "failed"]

RECENT_PRICE_WINDOW = 20
VOLATILITY_WINDOW = 51


@dataclass
class TransactionRecord:
    """Outcome of routing one order, kept whether or not it was filled."""

    timestamp: datetime
    order: Order
    status: TransactionStatus
    reason: str
    reference_price: float | None = None
    executed_price: float | None = None
    fees: float = 0.0
    realized_pnl: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "instrument": self.order.instrument,
            "side": self.order.side,
            "quantity": self.order.quantity,
            "status": self.status,
            "reason": self.reason,
            "reference_price": self.reference_price,
            "executed_price": self.executed_price,
            "fees": self.fees,
            "realized_pnl": self.realized_pnl,
        }


@dataclass
class Session:
    """Trading session owned by an orchestrator.

    Attributes:
        state: "idle" or "trading"
        strategy_id: Active strategy id (None while idle)
        config: Session configuration (None before the first start)
        daily_pnl: Realized P&L of the current UTC day, refreshed every tick
        ticks: Completed ticks since start
        errors: Non-fatal tick errors (provider failures, strategy exceptions)
        rejections: Risk rejections with their reasons
    """

    state: SessionState = "idle"
    strategy_id: str | None = None
    config: TradingConfig | None = None
    daily_pnl: float = 0.0
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    last_tick_at: datetime | None = None
    ticks: int = 0
    errors: list[str] = field(default_factory=list)
    rejections: list[str] = field(default_factory=list)

    @property
    def is_trading(self) -> bool:
        return self.state == "trading"


def estimate_liquidity(bars: Sequence[Bar], window: timedelta = timedelta(hours=24)) -> float | None:
    """Traded value (close * volume) over ``window`` ending at the last bar."""
    if not bars:
        return None
    cutoff = bars[-1].timestamp - window
    return sum(b.close * b.volume for b in bars if b.timestamp > cutoff)


class TradingOrchestrator:
    """Runs one strategy against live collaborators.

    Lifecycle is Idle -> start -> Trading -> stop -> Idle. While Trading a
    background thread runs :meth:`tick` every ``interval_seconds``. Ticks are
    serialized by a non-blocking lock: a tick that finds another one in
    flight is skipped, so ticks never overlap.

    Each tick, per instrument:
    1. fetch bars and the latest price (no data means no decision)
    2. force-close the position if its stop-loss or take-profit was crossed
    3. otherwise ask the strategy for a decision
    4. validate the order with the risk engine, execute it and record the fill

    Errors inside an instrument's tick are logged and recorded on the
    session; the session keeps trading.

    Args:
        market_data: Market data provider
        execution: Execution provider
        risk_engine: Risk engine (defaults if omitted)
        ledger: Ledger to trade against (empty if omitted)
        registry: Strategy registry (built-ins if omitted)
        persistence: Optional trade store; open positions are restored from it on start
        resolver: Optional symbol resolver applied to configured instruments
        clock: Returns the current time
        run_in_background: Start the tick thread on :meth:`start`; when False,
            ticks are driven by calling :meth:`tick` directly
        history_size: Transaction records kept in memory
    """

    def __init__(
        self,
        market_data: MarketDataProvider,
        execution: ExecutionProvider,
        risk_engine: RiskEngine | None = None,
        ledger: Ledger | None = None,
        registry: StrategyRegistry | None = None,
        persistence: PersistenceProvider | None = None,
        resolver: InstrumentResolver | None = None,
        clock: Clock | None = None,
        run_in_background: bool = True,
        history_size: int = 500,
    ) -> None:
        self.market_data = market_data
        self.execution = execution
        self.risk_engine = risk_engine or RiskEngine()
        self._clock = clock or utc_now
        self.ledger = ledger or Ledger(clock=self._clock)
        self.registry = registry or default_registry()
        self.persistence = persistence
        self.resolver = resolver
        self.run_in_background = run_in_background

        self.session = Session()
        self._strategy: Strategy | None = None
        self._instruments: list[str] = []
        self._base_limits = self.risk_engine.limits
        self._transactions: deque[TransactionRecord] = deque(maxlen=history_size)

        self._state_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_trading(self) -> bool:
        return self.session.is_trading

    @property
    def strategy(self) -> Strategy | None:
        return self._strategy

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(self, config: TradingConfig | dict[str, Any]) -> Session:
        """Start trading.

        Raises:
            AlreadyTrading: If a session is already active (it is left untouched)
            StrategyNotFound: If the strategy id is not registered
            ConfigurationError: If the config or risk overrides are invalid
        """
        with self._state_lock:
            if self.session.is_trading:
                raise AlreadyTrading(
                    f"Already trading with strategy '{self.session.strategy_id}'; stop it first"
                )

            if not isinstance(config, TradingConfig):
                try:
                    config = TradingConfig.model_validate(config)
                except ValidationError as exc:
                    raise ConfigurationError(f"Invalid trading config: {exc}") from exc

            strategy = self.registry.create(config.strategy_id, config.strategy_params)
            instruments = [self._resolve(symbol) for symbol in config.instruments]

            self._base_limits = self.risk_engine.limits
            if config.risk_overrides:
                self.risk_engine.update_limits(config.risk_overrides)

            if config.initial_cash is not None:
                self.ledger.set_cash(config.initial_cash)
            self._restore_positions(strategy)

            self._strategy = strategy
            self._instruments = instruments
            self.session = Session(
                state="trading",
                strategy_id=config.strategy_id,
                config=config,
                daily_pnl=self.ledger.daily_pnl(),
                started_at=self._clock(),
            )

            if self.run_in_background:
                self._stop_event = threading.Event()
                self._thread = threading.Thread(
                    target=self._run_loop,
                    args=(self._stop_event, config.interval_seconds),
                    daemon=True,
                    name=f"TradingLoop-{config.strategy_id}",
                )
                self._thread.start()

            logger.info(
                f"Trading started: strategy={config.strategy_id}, instruments={instruments}, "
                f"interval={config.interval_seconds}s"
            )
            return self.session

    def stop(self) -> None:
        """Stop trading. Idempotent.

        An in-flight tick is allowed to finish under the session's risk
        overrides; the base limits are restored once it has.
        """
        with self._state_lock:
            if not self.session.is_trading:
                return
            self._stop_event.set()
            self.session.state = "idle"
            self.session.stopped_at = self._clock()
            self.session.strategy_id = None
            self._strategy = None
            self._instruments = []
            with self._tick_lock:
                self.risk_engine.update_limits(self._base_limits.model_dump())
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=30.0)
            if thread.is_alive():
                logger.error("Trading loop did not stop within 30 seconds")

        logger.info(f"Trading stopped after {self.session.ticks} tick(s)")

    def _run_loop(self, stop_event: threading.Event, interval: float) -> None:
        while not stop_event.is_set():
            self.tick()
            if stop_event.wait(interval):
                break

    def _resolve(self, symbol: str) -> str:
        return self.resolver.resolve(symbol) if self.resolver is not None else symbol

    def _restore_positions(self, strategy: Strategy) -> None:
        if self.persistence is None or self.ledger.positions:
            return
        positions = self.persistence.load_positions()
        if not positions:
            return
        self.ledger.load_positions(positions)
        stop_pct, take_pct = strategy.exit_levels()
        for position in positions:
            levels = self.risk_engine.set_triggers(
                position.instrument, position.entry_price, stop_pct, take_pct
            )
            self.ledger.set_protective_levels(position.instrument, levels.stop_loss, levels.take_profit)

    # ========================================================================
    # Ticks
    # ========================================================================

    def tick(self) -> list[TransactionRecord]:
        """Run one decision pass over every configured instrument.

        Returns:
            Transactions routed during this tick (empty if idle or if another
            tick was already running)
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Tick skipped: previous tick still running")
            return []
        try:
            strategy = self._strategy
            if not self.session.is_trading or strategy is None:
                return []

            records: list[TransactionRecord] = []
            for instrument in list(self._instruments):
                try:
                    records.extend(self._tick_instrument(instrument, strategy))
                except TransientExecutionFailure as exc:
                    message = f"{instrument}: {exc}"
                    logger.warning(f"Provider failure, skipping instrument this tick: {message}")
                    self.session.errors.append(message)
                except Exception as exc:
                    message = f"{instrument}: {type(exc).__name__}: {exc}"
                    logger.error(f"Error during tick: {message}", exc_info=True)
                    self.session.errors.append(message)

            self.session.ticks += 1
            self.session.last_tick_at = self._clock()
            self.session.daily_pnl = self.ledger.daily_pnl()
            return records
        finally:
            self._tick_lock.release()

    def _tick_instrument(self, instrument: str, strategy: Strategy) -> list[TransactionRecord]:
        config = self.session.config
        if config is None:
            raise AutoTradeError("No active trading session")

        bars = self.market_data.fetch_bars(instrument, config.bar_interval, limit=config.history_bars)
        price = self.market_data.latest_price(instrument)
        if price is None and bars:
            price = bars[-1].close
        if not bars or price is None or price <= 0:
            logger.debug(f"No market data for {instrument}; no decision this tick")
            return []

        self.ledger.mark_price(instrument, price)

        position = self.ledger.position(instrument)
        if position is not None:
            hits = self.risk_engine.check_triggers([position])
            if hits:
                hit = hits[0]
                order = Order(
                    instrument=instrument,
                    side="sell",
                    quantity=position.quantity,
                    timestamp=self._clock(),
                    reason=hit.reason,
                )
                logger.info(f"Force-closing {instrument}: {hit.reason}")
                return [self._route(order, price, liquidity=None, protective=True)]

        closes = [b.close for b in bars]
        context = MarketContext(
            instrument=instrument,
            current_price=price,
            recent_prices=closes[-RECENT_PRICE_WINDOW:],
            bars=bars,
        )
        agent_state = AgentState(
            portfolio_value=self.ledger.total_value(),
            volatility=returns_volatility(closes[-VOLATILITY_WINDOW:]),
            recent_trades=self._recent_trade_count(),
        )
        order = strategy.decide(context, agent_state, self.ledger.snapshot(self._clock()))
        if order is None:
            return []

        logger.info(f"Strategy decision: {order.side} {order.quantity:.8g} {instrument} ({order.reason})")
        return [self._route(order, price, liquidity=estimate_liquidity(bars), strategy=strategy)]

    def _recent_trade_count(self) -> int:
        cutoff = self._clock() - timedelta(hours=24)
        return sum(1 for t in self.ledger.trades if t.executed_at >= cutoff)

    # ========================================================================
    # Order routing
    # ========================================================================

    def execute_order(self, order: Order) -> TransactionRecord:
        """Route a manually created order through risk checks and execution.

        Raises:
            AutoTradeError: If no session is active
            TransientExecutionFailure: If no price is available
        """
        if not self.session.is_trading:
            raise AutoTradeError("No active trading session")
        with self._tick_lock:
            price = order.limit_price or self.market_data.latest_price(order.instrument)
            if price is None:
                raise TransientExecutionFailure(f"No price available for {order.instrument}")
            return self._route(order, price, liquidity=None, strategy=self._strategy)

    def _route(
        self,
        order: Order,
        price: float,
        liquidity: float | None,
        strategy: Strategy | None = None,
        protective: bool = False,
    ) -> TransactionRecord:
        config = self.session.config
        portfolio_value = self.ledger.total_value()
        daily_pnl = self.ledger.daily_pnl()

        if order.side == "buy" and config is not None and config.cap_to_recommended_size:
            recommendation = self.risk_engine.recommend_size(
                order.instrument,
                portfolio_value,
                self.ledger.positions,
                daily_pnl=daily_pnl,
                volatility=0.0,
                archetype=strategy.archetype if strategy else None,
                price=price,
            )
            if recommendation.quantity is not None and recommendation.quantity < order.quantity:
                if recommendation.quantity <= 0:
                    return self._record(order, "rejected", "Recommended size is zero", price)
                logger.info(
                    f"Capping {order.instrument} buy from {order.quantity:.8g} "
                    f"to recommended {recommendation.quantity:.8g}"
                )
                order = replace(order, quantity=recommendation.quantity)

        result = self.risk_engine.validate_order(
            order,
            self.ledger.positions,
            portfolio_value,
            daily_pnl,
            price=price,
            liquidity=liquidity,
            protective=protective,
        )
        for warning in result.warnings:
            logger.debug(f"Risk warning: {warning}")
        if not result.accepted:
            reason = "; ".join(result.violations)
            logger.warning(f"Order rejected by risk engine: {order.side} {order.instrument}: {reason}")
            self.session.rejections.append(f"{order.instrument}: {reason}")
            return self._record(order, "rejected", reason, price)

        if order.side == "buy":
            buffer = config.cost_buffer if config is not None else 0.0
            shortfall = self.ledger.can_fill(order, price, order.quantity * price * buffer)
            if shortfall is not None:
                logger.warning(f"Order rejected by ledger: buy {order.instrument}: {shortfall}")
                self.session.rejections.append(f"{order.instrument}: {shortfall}")
                return self._record(order, "rejected", shortfall, price)

        try:
            fill = self.execution.submit_order(order, reference_price=price)
        except TransientExecutionFailure as exc:
            logger.warning(f"Execution failed for {order.side} {order.instrument}: {exc}")
            self.session.errors.append(f"{order.instrument}: {exc}")
            return self._record(order, "failed", str(exc), price)

        try:
            trade = self.ledger.apply_fill(
                fill.order, fill.executed_price, fill.executed_at, fill.fees, fill.venue_order_id or None
            )
        except LedgerError as exc:
            logger.error(f"Ledger refused fill for {order.instrument}: {exc}")
            self.session.errors.append(f"{order.instrument}: {exc}")
            return self._record(order, "failed", str(exc), price)

        self._after_fill(order.instrument, strategy)
        if self.persistence is not None:
            try:
                self.persistence.save_trade(trade)
            except OSError as exc:
                logger.error(f"Failed to persist trade {trade.trade_id}: {exc}")
                self.session.errors.append(f"persistence: {exc}")

        logger.info(
            f"Filled {order.side} {order.quantity:.8g} {order.instrument} @ {fill.executed_price:.8g} "
            f"(fees={fill.fees:.4f}, realized={trade.realized_pnl})"
        )
        return self._record(
            order,
            "filled",
            order.reason,
            price,
            executed_price=fill.executed_price,
            fees=fill.fees,
            realized_pnl=trade.realized_pnl,
        )

    def _after_fill(self, instrument: str, strategy: Strategy | None) -> None:
        position = self.ledger.position(instrument)
        if position is None:
            self.risk_engine.clear_triggers(instrument)
            return
        stop_pct, take_pct = strategy.exit_levels() if strategy is not None else (None, None)
        levels = self.risk_engine.set_triggers(instrument, position.entry_price, stop_pct, take_pct)
        self.ledger.set_protective_levels(instrument, levels.stop_loss, levels.take_profit)

    def _record(
        self,
        order: Order,
        status: TransactionStatus,
        reason: str,
        price: float | None,
        **extra: Any,
    ) -> TransactionRecord:
        record = TransactionRecord(
            timestamp=self._clock(),
            order=order,
            status=status,
            reason=reason,
            reference_price=price,
            **extra,
        )
        self._transactions.append(record)
        return record

    # ========================================================================
    # Reporting
    # ========================================================================

    def recent_transactions(self, limit: int = 20) -> list[TransactionRecord]:
        """Most recent transaction records, newest last."""
        if limit <= 0:
            return []
        return list(self._transactions)[-limit:]

    def status(self) -> dict[str, Any]:
        """Snapshot of session state, positions and performance."""
        positions = self.ledger.positions
        portfolio_value = self.ledger.total_value()
        daily_pnl = self.ledger.daily_pnl()
        metrics = self.risk_engine.risk_metrics(positions, portfolio_value, daily_pnl)
        return {
            "is_trading": self.session.is_trading,
            "strategy_id": self.session.strategy_id,
            "instruments": list(self._instruments),
            "started_at": self.session.started_at.isoformat() if self.session.started_at else None,
            "ticks": self.session.ticks,
            "positions": [
                {
                    "instrument": p.instrument,
                    "quantity": p.quantity,
                    "entry_price": p.entry_price,
                    "current_price": p.current_price,
                    "stop_loss": p.stop_loss,
                    "take_profit": p.take_profit,
                    "unrealized_pnl": p.unrealized_pnl,
                }
                for p in positions.values()
            ],
            "performance": self.ledger.performance(),
            "risk": {
                "exposure_pct": metrics.exposure_pct,
                "risk_score": metrics.risk_score,
                "violations": metrics.violations,
            },
            "errors": self.session.errors[-10:],
            "rejections": self.session.rejections[-10:],
        }


__all__ = [
    "TradingOrchestrator",
    "Session",
    "TransactionRecord",
    "estimate_liquidity",
]
