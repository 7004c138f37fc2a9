"""Momentum breakout strategy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from autotrade.strategies.base import AgentState, MarketContext, Order, PortfolioSnapshot, Strategy
from autotrade.strategies.configs import MomentumBreakoutConfig
from autotrade.strategies.indicators import adx, atr, ema

logger = logging.getLogger(__name__)

TrendDirection = Literal["bullish", "bearish", "neutral"]
VolumeTrend = Literal["increasing", "decreasing", "stable"]


@dataclass(slots=True)
class MomentumSignals:
    """Indicator snapshot used for one momentum decision."""

    price_change_5: float
    price_change_15: float
    price_change_60: float
    volume_ratio: float
    volume_trend: VolumeTrend
    atr: float
    adx: float
    trend_direction: TrendDirection
    resistance: float
    support: float
    near_resistance: bool


@dataclass(slots=True)
class _TrackedPosition:
    entry_price: float
    high_price: float


def _change(current: float, reference: float) -> float:
    return (current - reference) / reference if reference else 0.0


def compute_signals(context: MarketContext) -> MomentumSignals:
    """Compute momentum indicators from the full bar history of ``context``."""
    closes = context.closes
    highs = context.highs
    lows = context.lows
    volumes = context.volumes
    price = context.current_price
    n = len(closes)

    change_5 = _change(price, closes[max(0, n - 5)])
    change_15 = _change(price, closes[max(0, n - 15)])
    change_60 = _change(price, closes[max(0, n - 60)])

    avg_volume_20 = sum(volumes[-20:]) / len(volumes[-20:])
    current_volume = volumes[-1]
    ratio = current_volume / avg_volume_20 if avg_volume_20 > 0 else 0.0

    avg_volume_5 = sum(volumes[-5:]) / len(volumes[-5:])
    avg_volume_10 = sum(volumes[-10:]) / len(volumes[-10:])
    volume_trend: VolumeTrend = "stable"
    if avg_volume_5 > avg_volume_10 * 1.2:
        volume_trend = "increasing"
    elif avg_volume_5 < avg_volume_10 * 0.8:
        volume_trend = "decreasing"

    ema_9 = ema(closes[-20:], 9) or price
    ema_21 = ema(closes[-30:], 21) or price
    trend: TrendDirection = "neutral"
    if ema_9 > ema_21 * 1.01 and change_15 > 0:
        trend = "bullish"
    elif ema_9 < ema_21 * 0.99 and change_15 < 0:
        trend = "bearish"

    resistance = max(highs[-20:])
    support = min(lows[-20:])

    return MomentumSignals(
        price_change_5=change_5,
        price_change_15=change_15,
        price_change_60=change_60,
        volume_ratio=ratio,
        volume_trend=volume_trend,
        atr=atr(highs[-15:], lows[-15:], closes[-15:], 14),
        adx=adx(highs, lows, closes, 14),
        trend_direction=trend,
        resistance=resistance,
        support=support,
        near_resistance=price > 0 and (resistance - price) / price < 0.01,
    )


class MomentumBreakoutStrategy(Strategy):
    """Enters on short-term breakouts confirmed by volume and trend.

    Entry needs at least ``min_conditions`` of: momentum present, volume
    confirmation, trend alignment and room below resistance. Size is the
    risk amount divided by the stop-loss fraction, capped at
    ``max_position_fraction`` of portfolio value.

    The strategy tracks entry and peak price per instrument for its exits:
    profit target, stop loss, trailing stop and momentum reversal on volume.
    Tracking is dropped as soon as the portfolio shows no holding.
    """

    strategy_id = "momentum-breakout-v1"
    name = "Momentum Breakout"
    description = "Trades short-term breakouts with volume and trend confirmation"
    archetype = "momentum"

    def __init__(self, config: MomentumBreakoutConfig | None = None) -> None:
        self.config = config or MomentumBreakoutConfig()
        self._positions: dict[str, _TrackedPosition] = {}

    def configure(self, params: dict[str, Any]) -> None:
        self.config = self.config.merged(params)

    def reset(self) -> None:
        self._positions.clear()

    def exit_levels(self) -> tuple[float | None, float | None]:
        return self.config.stop_loss * 100, self.config.profit_target * 100

    def decide(
        self,
        context: MarketContext,
        agent_state: AgentState,
        portfolio: PortfolioSnapshot,
    ) -> Order | None:
        if len(context.bars) < self.config.min_history or context.current_price <= 0:
            return None

        instrument = context.instrument
        holding = portfolio.holding(instrument)
        signals = compute_signals(context)

        tracked = self._sync_tracking(instrument, holding, context.current_price)
        if tracked is not None:
            return self._check_exit(context, signals, tracked, holding)

        return self._check_entry(context, signals, agent_state)

    def _sync_tracking(self, instrument: str, holding: float, price: float) -> _TrackedPosition | None:
        tracked = self._positions.get(instrument)
        if holding <= 0:
            if tracked is not None:
                del self._positions[instrument]
            return None
        if tracked is None:
            tracked = _TrackedPosition(entry_price=price, high_price=price)
            self._positions[instrument] = tracked
        tracked.high_price = max(tracked.high_price, price)
        return tracked

    def _check_entry(
        self, context: MarketContext, signals: MomentumSignals, agent_state: AgentState
    ) -> Order | None:
        cfg = self.config
        has_momentum = signals.price_change_5 > cfg.min_price_change and signals.price_change_15 > -0.01
        has_volume = signals.volume_ratio > cfg.min_volume_ratio or (
            signals.volume_ratio > 1.0 and signals.volume_trend == "increasing"
        )
        trend_aligned = (
            signals.trend_direction == "bullish" and signals.adx > cfg.adx_threshold
        ) or signals.price_change_5 > cfg.min_price_change * 1.5
        good_entry = not signals.near_resistance or signals.price_change_5 > 0.005

        met = sum((has_momentum, has_volume, trend_aligned, good_entry))
        if met < cfg.min_conditions:
            return None

        portfolio_value = agent_state.portfolio_value
        risk_amount = portfolio_value * cfg.max_risk_per_trade
        position_value = min(risk_amount / cfg.stop_loss, portfolio_value * cfg.max_position_fraction)
        quantity = position_value / context.current_price
        if quantity <= cfg.min_quantity:
            return None

        self._positions[context.instrument] = _TrackedPosition(
            entry_price=context.current_price, high_price=context.current_price
        )
        logger.debug(
            f"Momentum entry on {context.instrument}: {met}/4 conditions, "
            f"change5={signals.price_change_5:.4f}, volume_ratio={signals.volume_ratio:.2f}"
        )
        return Order(
            instrument=context.instrument,
            side="buy",
            quantity=quantity,
            timestamp=context.timestamp,
            reason=(
                f"Momentum breakout: {met}/4 conditions met "
                f"(5-bar change {signals.price_change_5 * 100:.2f}%, "
                f"volume ratio {signals.volume_ratio:.2f}, trend {signals.trend_direction})"
            ),
        )

    def _check_exit(
        self,
        context: MarketContext,
        signals: MomentumSignals,
        tracked: _TrackedPosition,
        holding: float,
    ) -> Order | None:
        cfg = self.config
        price = context.current_price
        profit = (price - tracked.entry_price) / tracked.entry_price
        drawdown_from_high = (tracked.high_price - price) / tracked.high_price

        reason: str | None = None
        if profit >= cfg.profit_target:
            reason = f"Profit target reached ({profit * 100:.2f}%)"
        elif profit <= -cfg.stop_loss:
            reason = f"Stop loss hit ({profit * 100:.2f}%)"
        elif profit > cfg.trailing_activation and drawdown_from_high > cfg.trailing_giveback:
            reason = f"Trailing stop: gave back {drawdown_from_high * 100:.2f}% from peak"
        elif (
            signals.price_change_5 < -cfg.reversal_drop
            and signals.volume_ratio > cfg.reversal_volume_ratio
        ):
            reason = "Momentum reversal on high volume"

        if reason is None:
            return None

        del self._positions[context.instrument]
        return Order(
            instrument=context.instrument,
            side="sell",
            quantity=holding,
            timestamp=context.timestamp,
            reason=reason,
        )


__all__ = ["MomentumBreakoutStrategy", "MomentumSignals", "compute_signals"]
