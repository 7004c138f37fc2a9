"""Strategy registry and factory."""

from __future__ import annotations

import logging
from typing import Any, Callable

from autotrade.errors import ConfigurationError, StrategyNotFound
from autotrade.strategies.base import Strategy
from autotrade.strategies.configs import (
    MeanReversionConfig,
    MomentumBreakoutConfig,
    RandomStrategyConfig,
    RuleBasedConfig,
)
from autotrade.strategies.mean_reversion import MeanReversionStrategy
from autotrade.strategies.momentum import MomentumBreakoutStrategy
from autotrade.strategies.random_strategy import RandomStrategy
from autotrade.strategies.rule_based import RuleBasedStrategy

logger = logging.getLogger(__name__)

StrategyFactory = Callable[[dict[str, Any]], Strategy]


def _random(params: dict[str, Any]) -> Strategy:
    return RandomStrategy(RandomStrategyConfig.from_dict(params))


def _momentum(params: dict[str, Any]) -> Strategy:
    return MomentumBreakoutStrategy(MomentumBreakoutConfig.from_dict(params))


def _mean_reversion(params: dict[str, Any]) -> Strategy:
    return MeanReversionStrategy(MeanReversionConfig.from_dict(params))


def _rule_based(params: dict[str, Any]) -> Strategy:
    return RuleBasedStrategy(RuleBasedConfig.from_dict(params))


class StrategyRegistry:
    """Maps strategy ids to factories building fresh strategy instances.

    Each call to :meth:`create` returns a new instance, so a live session and
    any number of backtests never share strategy state.
    """

    def __init__(self) -> None:
        self._factories: dict[str, StrategyFactory] = {}
        self._descriptions: dict[str, str] = {}

    def register(self, strategy_id: str, factory: StrategyFactory, description: str = "") -> None:
        if not strategy_id:
            raise ConfigurationError("strategy_id must be non-empty")
        if strategy_id in self._factories:
            logger.warning(f"Replacing registered strategy '{strategy_id}'")
        self._factories[strategy_id] = factory
        self._descriptions[strategy_id] = description

    def unregister(self, strategy_id: str) -> None:
        self._factories.pop(strategy_id, None)
        self._descriptions.pop(strategy_id, None)

    def __contains__(self, strategy_id: object) -> bool:
        return strategy_id in self._factories

    def list_strategies(self) -> list[dict[str, str]]:
        """Return id and description of each registered strategy."""
        return [
            {"id": strategy_id, "description": self._descriptions[strategy_id]}
            for strategy_id in sorted(self._factories)
        ]

    def create(self, strategy_id: str, params: dict[str, Any] | None = None) -> Strategy:
        """Build a strategy instance.

        Raises:
            StrategyNotFound: If ``strategy_id`` is not registered
            ConfigurationError: If ``params`` fail validation
        """
        factory = self._factories.get(strategy_id)
        if factory is None:
            raise StrategyNotFound(strategy_id)
        return factory(dict(params or {}))


def default_registry() -> StrategyRegistry:
    """Registry with the four built-in strategies."""
    registry = StrategyRegistry()
    for strategy_cls, factory in (
        (RandomStrategy, _random),
        (MomentumBreakoutStrategy, _momentum),
        (MeanReversionStrategy, _mean_reversion),
        (RuleBasedStrategy, _rule_based),
    ):
        registry.register(strategy_cls.strategy_id, factory, strategy_cls.description)
    return registry


def create_strategy(strategy_id: str, params: dict[str, Any] | None = None) -> Strategy:
    """Create a built-in strategy by id."""
    return default_registry().create(strategy_id, params)


__all__ = ["StrategyRegistry", "StrategyFactory", "default_registry", "create_strategy"]
