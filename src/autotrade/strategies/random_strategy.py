"""Random baseline strategy."""

from __future__ import annotations

import logging
import random
from typing import Any

from autotrade.strategies.base import AgentState, MarketContext, Order, PortfolioSnapshot, Strategy
from autotrade.strategies.configs import RandomStrategyConfig

logger = logging.getLogger(__name__)


class RandomStrategy(Strategy):
    """Trades at random, as a baseline for comparing other strategies.

    Two independent draws are made per decision: one to decide whether to
    trade at all, one to pick the direction. The generator is owned by the
    strategy and seeded from the config, so a seeded run is reproducible.
    """

    strategy_id = "random-v1"
    name = "Random Trading"
    description = "Randomly buys or sells small amounts; baseline for comparison"
    archetype = "random"

    def __init__(self, config: RandomStrategyConfig | None = None) -> None:
        self.config = config or RandomStrategyConfig()
        self._rng = random.Random(self.config.seed)

    def configure(self, params: dict[str, Any]) -> None:
        self.config = self.config.merged(params)
        self._rng = random.Random(self.config.seed)

    def reset(self) -> None:
        self._rng = random.Random(self.config.seed)

    def decide(
        self,
        context: MarketContext,
        agent_state: AgentState,
        portfolio: PortfolioSnapshot,
    ) -> Order | None:
        if self._rng.random() >= self.config.trade_attempt_probability:
            return None

        side = "buy" if self._rng.random() < self.config.buy_probability else "sell"

        if self.config.fixed_trade_quantity is not None:
            quantity = self.config.fixed_trade_quantity
        else:
            if context.current_price <= 0:
                return None
            trade_value = agent_state.portfolio_value * self.config.max_trade_size_pct
            quantity = trade_value / context.current_price

        quantity = round(quantity, 8)
        if quantity < self.config.min_quantity:
            logger.debug(f"Random trade size {quantity} below minimum, skipping")
            return None

        if side == "sell" and quantity > portfolio.holding(context.instrument):
            return None

        return Order(
            instrument=context.instrument,
            side=side,
            quantity=quantity,
            timestamp=context.timestamp,
            reason=f"Random {side} decision",
        )


__all__ = ["RandomStrategy"]
