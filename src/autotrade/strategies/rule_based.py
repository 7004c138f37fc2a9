"""Rule-based strategy driven by declarative indicator conditions."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from autotrade.strategies.base import (
    AgentState,
    Bar,
    MarketContext,
    Order,
    PortfolioSnapshot,
    Strategy,
)
from autotrade.strategies.configs import RuleBasedConfig
from autotrade.strategies.indicators import (
    adx,
    atr,
    bollinger,
    ema,
    macd,
    rsi,
    sma,
    stochastic,
    vwap,
)
from autotrade.strategies.rules import first_matching_rule

logger = logging.getLogger(__name__)


def compute_indicators(bars: Sequence[Bar], config: RuleBasedConfig) -> dict[str, float | None]:
    """Compute the indicator set available to rule conditions.

    Args:
        bars: Bar history (oldest first), ending with the current bar
        config: Indicator periods

    Returns:
        Dictionary of indicator name -> value
    """
    if not bars:
        return {}

    closes = [b.close for b in bars]
    highs = [b.high for b in bars]
    lows = [b.low for b in bars]
    volumes = [b.volume for b in bars]
    last = bars[-1]

    indicators: dict[str, float | None] = {
        "open": last.open,
        "high": last.high,
        "low": last.low,
        "close": last.close,
        "volume": last.volume,
    }

    indicators["rsi"] = rsi(closes, config.rsi_period)
    indicators["sma_short"] = sma(closes, config.short_ma_period)
    indicators["sma_long"] = sma(closes, config.long_ma_period)
    indicators["ema_short"] = ema(closes, config.short_ma_period)
    indicators["ema_long"] = ema(closes, config.long_ma_period)

    macd_line, signal_line, histogram = macd(
        closes, config.macd_fast, config.macd_slow, config.macd_signal
    )
    indicators["macd"] = macd_line
    indicators["macd_signal"] = signal_line
    indicators["macd_hist"] = histogram

    bb_middle, bb_upper, bb_lower = bollinger(closes, config.bb_period, config.bb_std_dev)
    indicators["bb_middle"] = bb_middle
    indicators["bb_upper"] = bb_upper
    indicators["bb_lower"] = bb_lower

    indicators["atr"] = atr(highs, lows, closes, config.atr_period)
    indicators["adx"] = adx(highs, lows, closes, config.adx_period)
    stoch_k, stoch_d = stochastic(highs, lows, closes, config.stoch_k, config.stoch_d)
    indicators["stoch_k"] = stoch_k
    indicators["stoch_d"] = stoch_d
    indicators["vwap"] = vwap(highs, lows, closes, volumes)

    indicators["high_n"] = max(highs[-config.breakout_period:])
    indicators["low_n"] = min(lows[-config.breakout_period:])
    indicators["vol_ma"] = sma(volumes, config.volume_ma_period)

    return indicators


class RuleBasedStrategy(Strategy):
    """Fires BUY/SELL orders when user-defined rules match.

    Buy rules take priority over sell rules. A buy needs more than
    ``min_cash`` available; a sell closes the whole holding. Positions
    opened by this strategy are also closed when price crosses the
    configured stop-loss or take-profit relative to the tracked entry.

    The tracked entry follows fills, not orders: a BUY is held as pending
    and folded into the entry on the next decision only if the holding grew.
    """

    strategy_id = "rule-based-v1"
    name = "Rule Based"
    description = "Evaluates configurable indicator conditions"
    archetype = "rule_based"

    def __init__(self, config: RuleBasedConfig | None = None) -> None:
        self.config = config or RuleBasedConfig()
        self._entries: dict[str, float] = {}
        self._pending: dict[str, tuple[float, float]] = {}

    def configure(self, params: dict[str, Any]) -> None:
        self.config = self.config.merged(params)

    def reset(self) -> None:
        self._entries.clear()
        self._pending.clear()

    def exit_levels(self) -> tuple[float | None, float | None]:
        return self.config.stop_loss * 100, self.config.take_profit * 100

    @property
    def history_window(self) -> int:
        """Bars used for indicator computation."""
        return max(200, self.config.longest_period() * 4)

    def decide(
        self,
        context: MarketContext,
        agent_state: AgentState,
        portfolio: PortfolioSnapshot,
    ) -> Order | None:
        cfg = self.config
        bars = context.bars
        if len(bars) < cfg.min_indicator_data_points or context.current_price <= 0:
            return None

        instrument = context.instrument
        price = context.current_price
        holding = portfolio.holding(instrument)

        entry = self._reconcile(instrument, holding, price)
        if entry is not None:
            if price <= entry * (1 - cfg.stop_loss):
                return self._close(context, holding, f"Stop loss at {price:.6g} (entry {entry:.6g})")
            if price >= entry * (1 + cfg.take_profit):
                return self._close(context, holding, f"Take profit at {price:.6g} (entry {entry:.6g})")

        window = bars[-self.history_window:]
        indicators = compute_indicators(window, cfg)
        indicators["close"] = price
        prev_indicators = compute_indicators(window[:-1], cfg) if len(window) > 1 else None

        buy_rule = first_matching_rule(cfg.rules, "buy", indicators, prev_indicators)
        if buy_rule is not None:
            order = self._buy(context, agent_state, portfolio, holding, buy_rule.describe())
            if order is not None:
                return order

        if holding > 0:
            sell_rule = first_matching_rule(cfg.rules, "sell", indicators, prev_indicators)
            if sell_rule is not None:
                return self._close(context, holding, f"Rule matched: {sell_rule.describe()}")

        return None

    def _reconcile(self, instrument: str, holding: float, price: float) -> float | None:
        """Fold a filled pending BUY into the tracked entry and return it.

        Returns:
            Entry price of the current holding, or None when nothing is held
        """
        pending = self._pending.pop(instrument, None)
        if holding <= 0:
            self._entries.pop(instrument, None)
            return None

        previous = self._entries.get(instrument)
        if pending is not None:
            held_before, order_price = pending
            added = holding - held_before
            if added > 0:
                if previous is None or held_before <= 0:
                    self._entries[instrument] = order_price
                else:
                    self._entries[instrument] = (previous * held_before + order_price * added) / holding
                return self._entries[instrument]
            logger.debug(f"Pending buy of {instrument} was not filled; entry unchanged")

        # holding acquired outside this strategy
        return self._entries.setdefault(instrument, price)

    def _buy(
        self,
        context: MarketContext,
        agent_state: AgentState,
        portfolio: PortfolioSnapshot,
        holding: float,
        rule_text: str,
    ) -> Order | None:
        cfg = self.config
        price = context.current_price
        if portfolio.cash <= cfg.min_cash:
            return None

        if cfg.fixed_trade_quantity is not None:
            quantity = cfg.fixed_trade_quantity
        else:
            quantity = portfolio.cash * cfg.trade_size_pct / price

        room = agent_state.portfolio_value * cfg.max_position_fraction - holding * price
        quantity = min(quantity, room / price, portfolio.cash / price)
        if quantity <= 0:
            logger.debug(f"Rule buy on {context.instrument} skipped: position limit reached")
            return None

        self._pending[context.instrument] = (holding, price)
        return Order(
            instrument=context.instrument,
            side="buy",
            quantity=quantity,
            timestamp=context.timestamp,
            reason=f"Rule matched: {rule_text}",
        )

    def _close(self, context: MarketContext, quantity: float, reason: str) -> Order:
        self._entries.pop(context.instrument, None)
        self._pending.pop(context.instrument, None)
        return Order(
            instrument=context.instrument,
            side="sell",
            quantity=quantity,
            timestamp=context.timestamp,
            reason=reason,
        )


__all__ = ["RuleBasedStrategy", "compute_indicators"]
