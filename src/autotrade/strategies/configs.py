"""Configuration objects for the built-in strategies.

Fractions are expressed as decimals (0.02 = 2%) unless a field name says otherwise.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, TypeVar

from autotrade.errors import ConfigurationError
from autotrade.strategies.rules import Condition, TradingRule

ConfigT = TypeVar("ConfigT", bound="StrategyConfig")

# Indicator names available to rule conditions
RULE_INDICATORS = frozenset(
    {
        "close",
        "open",
        "high",
        "low",
        "volume",
        "vol_ma",
        "rsi",
        "sma_short",
        "sma_long",
        "ema_short",
        "ema_long",
        "macd",
        "macd_signal",
        "macd_hist",
        "bb_upper",
        "bb_middle",
        "bb_lower",
        "atr",
        "adx",
        "stoch_k",
        "stoch_d",
        "vwap",
        "high_n",
        "low_n",
    }
)


def _check_fraction(name: str, value: float, *, allow_zero: bool = False) -> None:
    low_ok = value >= 0 if allow_zero else value > 0
    if not low_ok or value > 1:
        bound = "[0, 1]" if allow_zero else "(0, 1]"
        raise ConfigurationError(f"{name} must be in {bound}, got {value}")


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {value}")


class StrategyConfig:
    """Dictionary round-tripping shared by strategy config dataclasses."""

    @classmethod
    def from_dict(cls: type[ConfigT], data: dict[str, Any]) -> ConfigT:
        """Create config from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        return cls(**{k: v for k, v in data.items() if k in valid_fields})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    def merged(self: ConfigT, overrides: dict[str, Any]) -> ConfigT:
        """Return a new validated config with ``overrides`` applied."""
        unknown = set(overrides) - {f.name for f in fields(self)}  # type: ignore[arg-type]
        if unknown:
            raise ConfigurationError(f"Unknown parameters for {type(self).__name__}: {sorted(unknown)}")
        data = self.to_dict()
        data.update(overrides)
        return type(self).from_dict(data)


@dataclass
class RandomStrategyConfig(StrategyConfig):
    """Configuration for the random strategy.

    When ``fixed_trade_quantity`` is set it takes precedence over
    ``max_trade_size_pct`` of portfolio value.
    """

    trade_attempt_probability: float = 0.1
    buy_probability: float = 0.5
    max_trade_size_pct: float = 0.01
    fixed_trade_quantity: float | None = None
    seed: int | None = None
    min_quantity: float = 1e-8

    def __post_init__(self) -> None:
        _check_fraction("trade_attempt_probability", self.trade_attempt_probability, allow_zero=True)
        _check_fraction("buy_probability", self.buy_probability, allow_zero=True)
        _check_fraction("max_trade_size_pct", self.max_trade_size_pct, allow_zero=True)
        if self.fixed_trade_quantity is not None:
            _check_positive("fixed_trade_quantity", self.fixed_trade_quantity)


@dataclass
class MomentumBreakoutConfig(StrategyConfig):
    """Configuration for the momentum breakout strategy."""

    min_volume_ratio: float = 1.1
    min_price_change: float = 0.002
    max_risk_per_trade: float = 0.02
    profit_target: float = 0.01
    stop_loss: float = 0.005
    trailing_activation: float = 0.015
    trailing_giveback: float = 0.01
    reversal_drop: float = 0.01
    reversal_volume_ratio: float = 2.0
    max_position_fraction: float = 0.25
    adx_threshold: float = 15.0
    min_conditions: int = 2
    min_history: int = 100
    min_quantity: float = 0.001

    def __post_init__(self) -> None:
        _check_positive("min_volume_ratio", self.min_volume_ratio)
        _check_positive("min_price_change", self.min_price_change)
        _check_fraction("max_risk_per_trade", self.max_risk_per_trade)
        _check_positive("profit_target", self.profit_target)
        _check_fraction("stop_loss", self.stop_loss)
        _check_fraction("max_position_fraction", self.max_position_fraction)
        if not 1 <= self.min_conditions <= 4:
            raise ConfigurationError(f"min_conditions must be in [1, 4], got {self.min_conditions}")
        if self.min_history < 60:
            raise ConfigurationError(f"min_history must be >= 60, got {self.min_history}")


@dataclass
class MeanReversionConfig(StrategyConfig):
    """Configuration for the Bollinger/RSI mean reversion strategy."""

    bb_period: int = 20
    bb_std_dev: float = 2.0
    rsi_period: int = 14
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    position_size_pct: float = 0.02
    stop_loss: float = 0.03
    take_profit: float = 0.02
    min_volatility: float = 0.01
    max_volatility: float = 0.05
    min_volume_ratio: float = 1.2
    bb_entry_threshold: float = 0.95
    rsi_confirmation: bool = True
    mean_exit_band: float = 0.01

    def __post_init__(self) -> None:
        if self.bb_period < 2:
            raise ConfigurationError(f"bb_period must be >= 2, got {self.bb_period}")
        if self.rsi_period < 1:
            raise ConfigurationError(f"rsi_period must be >= 1, got {self.rsi_period}")
        _check_positive("bb_std_dev", self.bb_std_dev)
        if not 0 < self.rsi_oversold < self.rsi_overbought < 100:
            raise ConfigurationError(
                f"RSI thresholds must satisfy 0 < oversold < overbought < 100, "
                f"got oversold={self.rsi_oversold}, overbought={self.rsi_overbought}"
            )
        _check_fraction("position_size_pct", self.position_size_pct)
        _check_fraction("stop_loss", self.stop_loss)
        _check_positive("take_profit", self.take_profit)
        if self.min_volatility > self.max_volatility:
            raise ConfigurationError(
                f"min_volatility must be <= max_volatility, "
                f"got {self.min_volatility} > {self.max_volatility}"
            )
        _check_fraction("bb_entry_threshold", self.bb_entry_threshold)

    @property
    def min_history(self) -> int:
        return max(self.bb_period, self.rsi_period) + 10


def _default_rules() -> list[TradingRule]:
    return [
        TradingRule(action="buy", conditions=[Condition("rsi", "<", 30)], name="RSI oversold"),
        TradingRule(action="sell", conditions=[Condition("rsi", ">", 70)], name="RSI overbought"),
    ]


@dataclass
class RuleBasedConfig(StrategyConfig):
    """Configuration for the rule-based strategy.

    ``rules`` accepts :class:`TradingRule` objects or their dictionary form.
    ``min_indicator_data_points`` is raised automatically to the longest
    configured indicator period + 1.
    """

    rules: list[Any] = field(default_factory=_default_rules)
    trade_size_pct: float = 0.01
    fixed_trade_quantity: float | None = None
    max_position_fraction: float = 0.05
    min_indicator_data_points: int = 20
    min_cash: float = 10.0
    stop_loss: float = 0.02
    take_profit: float = 0.05

    rsi_period: int = 14
    short_ma_period: int = 10
    long_ma_period: int = 30
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bb_period: int = 20
    bb_std_dev: float = 2.0
    atr_period: int = 14
    adx_period: int = 14
    stoch_k: int = 14
    stoch_d: int = 3
    breakout_period: int = 20
    volume_ma_period: int = 20

    def __post_init__(self) -> None:
        self.rules = [r if isinstance(r, TradingRule) else TradingRule.from_dict(r) for r in self.rules]
        if not self.rules:
            raise ConfigurationError("At least one rule must be configured")

        for rule in self.rules:
            unknown = rule.referenced_names() - RULE_INDICATORS
            if unknown:
                raise ConfigurationError(f"Rule {rule.describe()!r} uses unknown indicators: {sorted(unknown)}")

        for name in (
            "rsi_period",
            "short_ma_period",
            "long_ma_period",
            "macd_fast",
            "macd_slow",
            "macd_signal",
            "bb_period",
            "atr_period",
            "adx_period",
            "stoch_k",
            "stoch_d",
            "breakout_period",
            "volume_ma_period",
        ):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")

        if self.short_ma_period >= self.long_ma_period:
            raise ConfigurationError("short_ma_period must be less than long_ma_period")
        if self.macd_fast >= self.macd_slow:
            raise ConfigurationError("macd_fast must be less than macd_slow")

        _check_fraction("trade_size_pct", self.trade_size_pct)
        _check_fraction("max_position_fraction", self.max_position_fraction)
        if self.fixed_trade_quantity is not None:
            _check_positive("fixed_trade_quantity", self.fixed_trade_quantity)
        _check_fraction("stop_loss", self.stop_loss)
        _check_positive("take_profit", self.take_profit)
        if self.min_indicator_data_points < 1:
            raise ConfigurationError(
                f"min_indicator_data_points must be at least 1, got {self.min_indicator_data_points}"
            )
        self.min_indicator_data_points = max(self.min_indicator_data_points, self.longest_period() + 1)

    def longest_period(self) -> int:
        return max(
            self.rsi_period,
            self.long_ma_period,
            self.macd_slow + self.macd_signal,
            self.bb_period,
            self.atr_period,
            self.adx_period * 2,
            self.stoch_k,
            self.breakout_period,
            self.volume_ma_period,
        )


__all__ = [
    "StrategyConfig",
    "RandomStrategyConfig",
    "MomentumBreakoutConfig",
    "MeanReversionConfig",
    "RuleBasedConfig",
    "RULE_INDICATORS",
]
