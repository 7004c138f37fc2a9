"""Bollinger Band / RSI mean reversion strategy."""

from __future__ import annotations

import logging
from typing import Any

from autotrade.strategies.base import AgentState, MarketContext, Order, PortfolioSnapshot, Strategy
from autotrade.strategies.configs import MeanReversionConfig
from autotrade.strategies.indicators import bollinger, rsi, volume_ratio

logger = logging.getLogger(__name__)


class MeanReversionStrategy(Strategy):
    """Buys stretched moves below the lower band and sells the snap back.

    Entries require:
    - price at or below the lower band, within ``bb_entry_threshold`` tolerance
    - RSI below ``rsi_oversold`` (unless ``rsi_confirmation`` is off)
    - per-bar volatility inside [min_volatility, max_volatility]
    - 5/20 volume ratio of at least ``min_volume_ratio``

    An open position is closed in full when price returns to within
    ``mean_exit_band`` of the middle band, or reaches the upper band with
    overbought RSI. Exits are not gated by volatility or volume.
    """

    strategy_id = "mean-reversion-v1"
    name = "Mean Reversion"
    description = "Trades reversions to the mean using Bollinger Bands and RSI"
    archetype = "mean_reversion"

    def __init__(self, config: MeanReversionConfig | None = None) -> None:
        self.config = config or MeanReversionConfig()

    def configure(self, params: dict[str, Any]) -> None:
        self.config = self.config.merged(params)

    def exit_levels(self) -> tuple[float | None, float | None]:
        return self.config.stop_loss * 100, self.config.take_profit * 100

    def decide(
        self,
        context: MarketContext,
        agent_state: AgentState,
        portfolio: PortfolioSnapshot,
    ) -> Order | None:
        cfg = self.config
        closes = context.closes
        if len(closes) < cfg.min_history:
            return None

        price = context.current_price
        middle, upper, lower = bollinger(closes, cfg.bb_period, cfg.bb_std_dev)
        if middle is None or upper is None or lower is None or middle <= 0:
            return None
        current_rsi = rsi(closes, cfg.rsi_period)
        tolerance = 1 - cfg.bb_entry_threshold
        holding = portfolio.holding(context.instrument)

        if holding > 0:
            if abs(price - middle) / middle < cfg.mean_exit_band:
                return self._sell(context, holding, f"Price reverted to mean ({middle:.6g})")
            overbought = current_rsi > cfg.rsi_overbought or not cfg.rsi_confirmation
            if price >= upper * (1 - tolerance) and overbought:
                return self._sell(
                    context, holding, f"Upper band reached with RSI {current_rsi:.1f}"
                )
            return None

        if not cfg.min_volatility <= agent_state.volatility <= cfg.max_volatility:
            return None
        ratio = volume_ratio(context.volumes, 5, 20)
        if ratio < cfg.min_volume_ratio:
            return None

        oversold = current_rsi < cfg.rsi_oversold or not cfg.rsi_confirmation
        if price <= lower * (1 + tolerance) and oversold and price > 0:
            quantity = agent_state.portfolio_value * cfg.position_size_pct / price
            if quantity <= 0:
                return None
            logger.debug(
                f"Mean reversion entry on {context.instrument}: price={price}, "
                f"lower={lower:.6g}, rsi={current_rsi:.1f}"
            )
            return Order(
                instrument=context.instrument,
                side="buy",
                quantity=quantity,
                timestamp=context.timestamp,
                reason=f"Price at lower band with RSI {current_rsi:.1f}",
            )
        return None

    def _sell(self, context: MarketContext, quantity: float, reason: str) -> Order:
        return Order(
            instrument=context.instrument,
            side="sell",
            quantity=quantity,
            timestamp=context.timestamp,
            reason=reason,
        )


__all__ = ["MeanReversionStrategy"]
