"""Strategy exports for convenience."""

from autotrade.strategies.base import (
    AgentState,
    Bar,
    MarketContext,
    Order,
    PortfolioSnapshot,
    Position,
    Strategy,
    Trade,
)
from autotrade.strategies.configs import (
    MeanReversionConfig,
    MomentumBreakoutConfig,
    RandomStrategyConfig,
    RuleBasedConfig,
)
from autotrade.strategies.indicators import (
    ADXState,
    ATRState,
    BollingerState,
    EMAState,
    MACDState,
    RSIState,
    SMAState,
    StochasticState,
    VWAPState,
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
from autotrade.strategies.mean_reversion import MeanReversionStrategy
from autotrade.strategies.momentum import MomentumBreakoutStrategy
from autotrade.strategies.random_strategy import RandomStrategy
from autotrade.strategies.registry import StrategyRegistry, create_strategy, default_registry
from autotrade.strategies.rule_based import RuleBasedStrategy
from autotrade.strategies.rules import Condition, TradingRule, evaluate_rule

__all__ = [
    "Strategy",
    "Bar",
    "Order",
    "Trade",
    "Position",
    "MarketContext",
    "AgentState",
    "PortfolioSnapshot",
    "RandomStrategy",
    "MomentumBreakoutStrategy",
    "MeanReversionStrategy",
    "RuleBasedStrategy",
    "RandomStrategyConfig",
    "MomentumBreakoutConfig",
    "MeanReversionConfig",
    "RuleBasedConfig",
    "StrategyRegistry",
    "default_registry",
    "create_strategy",
    "Condition",
    "TradingRule",
    "evaluate_rule",
    # Batch indicator functions
    "sma",
    "ema",
    "rsi",
    "macd",
    "atr",
    "bollinger",
    "adx",
    "stochastic",
    "vwap",
    # Stateful indicator classes
    "SMAState",
    "EMAState",
    "RSIState",
    "MACDState",
    "ATRState",
    "BollingerState",
    "ADXState",
    "StochasticState",
    "VWAPState",
]
