"""Tests for the built-in strategies and the strategy registry."""

from __future__ import annotations

import pytest

from autotrade.errors import ConfigurationError, StrategyNotFound
from autotrade.strategies.base import AgentState, Bar, MarketContext, PortfolioSnapshot
from autotrade.strategies.configs import (
    MeanReversionConfig,
    MomentumBreakoutConfig,
    RandomStrategyConfig,
    RuleBasedConfig,
)
from autotrade.strategies.indicators import returns_volatility
from autotrade.strategies.mean_reversion import MeanReversionStrategy
from autotrade.strategies.momentum import MomentumBreakoutStrategy, compute_signals
from autotrade.strategies.random_strategy import RandomStrategy
from autotrade.strategies.registry import StrategyRegistry, create_strategy, default_registry
from autotrade.strategies.rule_based import RuleBasedStrategy, compute_indicators

from conftest import make_bars

INSTRUMENT = "SOL"


def _context(bars: list[Bar], price: float | None = None) -> MarketContext:
    closes = [b.close for b in bars]
    return MarketContext(
        instrument=INSTRUMENT,
        current_price=price if price is not None else closes[-1],
        recent_prices=closes[-20:],
        bars=bars,
    )


def _portfolio(cash: float = 1_000.0, holding: float = 0.0, price: float = 0.0) -> PortfolioSnapshot:
    holdings = {INSTRUMENT: holding} if holding else {}
    return PortfolioSnapshot(timestamp=None, cash=cash, holdings=holdings, total_value=cash + holding * price)


# ============================================================================
# Random
# ============================================================================


def test_random_always_buy_fixed_quantity() -> None:
    strategy = RandomStrategy(
        RandomStrategyConfig(trade_attempt_probability=1.0, buy_probability=1.0, fixed_trade_quantity=10)
    )
    order = strategy.decide(
        _context(make_bars([5.0] * 3)),
        AgentState(portfolio_value=1_000.0, volatility=0.0),
        _portfolio(cash=1_000.0),
    )
    assert order is not None
    assert order.side == "buy"
    assert order.quantity == 10
    assert order.instrument == INSTRUMENT


def test_random_never_sells_more_than_held() -> None:
    strategy = RandomStrategy(
        RandomStrategyConfig(trade_attempt_probability=1.0, buy_probability=0.0, fixed_trade_quantity=10)
    )
    context = _context(make_bars([5.0] * 3))
    agent = AgentState(portfolio_value=1_000.0, volatility=0.0)
    assert strategy.decide(context, agent, _portfolio(holding=3.0, price=5.0)) is None

    order = strategy.decide(context, agent, _portfolio(holding=20.0, price=5.0))
    assert order is not None and order.side == "sell" and order.quantity == 10


def test_random_percentage_sizing() -> None:
    strategy = RandomStrategy(
        RandomStrategyConfig(trade_attempt_probability=1.0, buy_probability=1.0, max_trade_size_pct=0.01)
    )
    order = strategy.decide(
        _context(make_bars([50.0] * 3)),
        AgentState(portfolio_value=1_000.0, volatility=0.0),
        _portfolio(),
    )
    assert order is not None
    assert order.quantity == pytest.approx(0.2)


def test_random_never_trades_with_zero_probability() -> None:
    strategy = RandomStrategy(RandomStrategyConfig(trade_attempt_probability=0.0))
    context = _context(make_bars([5.0] * 3))
    agent = AgentState(portfolio_value=1_000.0, volatility=0.0)
    assert all(strategy.decide(context, agent, _portfolio()) is None for _ in range(50))


def test_random_seeded_runs_repeat_after_reset() -> None:
    strategy = RandomStrategy(RandomStrategyConfig(trade_attempt_probability=0.5, seed=42))
    context = _context(make_bars([5.0] * 3))
    agent = AgentState(portfolio_value=1_000.0, volatility=0.0)
    portfolio = _portfolio(holding=1_000.0, price=5.0)

    def run() -> list[tuple[str, float] | None]:
        decisions = []
        for _ in range(30):
            order = strategy.decide(context, agent, portfolio)
            decisions.append((order.side, order.quantity) if order else None)
        return decisions

    first = run()
    strategy.reset()
    assert run() == first


def test_random_config_validation() -> None:
    with pytest.raises(ConfigurationError):
        RandomStrategyConfig(trade_attempt_probability=1.5)
    with pytest.raises(ConfigurationError):
        RandomStrategyConfig(fixed_trade_quantity=0)


# ============================================================================
# Mean reversion
# ============================================================================


def _oversold_bars() -> list[Bar]:
    closes = [100.0, 102.0] * 20 + [97.0, 92.0, 87.0, 82.0, 77.0]
    volumes = [1_000.0] * 40 + [2_000.0] * 5
    return make_bars(closes, volumes)


def test_mean_reversion_flat_series_never_trades(flat_bars: list[Bar]) -> None:
    strategy = MeanReversionStrategy()
    portfolio = _portfolio(cash=10_000.0)
    decisions = []
    for i in range(1, len(flat_bars) + 1):
        window = flat_bars[:i]
        agent = AgentState(
            portfolio_value=10_000.0,
            volatility=returns_volatility([b.close for b in window][-51:]),
        )
        decisions.append(strategy.decide(_context(window), agent, portfolio))
    assert decisions == [None] * len(flat_bars)


def test_mean_reversion_buys_oversold_lower_band() -> None:
    strategy = MeanReversionStrategy()
    order = strategy.decide(
        _context(_oversold_bars()),
        AgentState(portfolio_value=10_000.0, volatility=0.02),
        _portfolio(cash=10_000.0),
    )
    assert order is not None
    assert order.side == "buy"
    assert order.quantity == pytest.approx(10_000.0 * 0.02 / 77.0)


def test_mean_reversion_entry_gated_by_volatility() -> None:
    strategy = MeanReversionStrategy()
    order = strategy.decide(
        _context(_oversold_bars()),
        AgentState(portfolio_value=10_000.0, volatility=0.2),
        _portfolio(cash=10_000.0),
    )
    assert order is None


def test_mean_reversion_exits_at_mean_without_gates(flat_bars: list[Bar]) -> None:
    strategy = MeanReversionStrategy()
    order = strategy.decide(
        _context(flat_bars),
        AgentState(portfolio_value=10_000.0, volatility=0.0),
        _portfolio(cash=9_500.0, holding=5.0, price=100.0),
    )
    assert order is not None
    assert order.side == "sell"
    assert order.quantity == 5.0


def test_mean_reversion_waits_for_history() -> None:
    strategy = MeanReversionStrategy()
    assert strategy.config.min_history == 30
    order = strategy.decide(
        _context(_oversold_bars()[-29:]),
        AgentState(portfolio_value=10_000.0, volatility=0.02),
        _portfolio(cash=10_000.0),
    )
    assert order is None


def test_mean_reversion_exit_levels_in_percent() -> None:
    strategy = MeanReversionStrategy(MeanReversionConfig(stop_loss=0.04, take_profit=0.03))
    assert strategy.exit_levels() == pytest.approx((4.0, 3.0))


# ============================================================================
# Momentum breakout
# ============================================================================


def test_momentum_needs_history() -> None:
    strategy = MomentumBreakoutStrategy()
    bars = make_bars([100.0 + i for i in range(50)])
    assert strategy.decide(_context(bars), AgentState(10_000.0, 0.01), _portfolio(10_000.0)) is None


def test_momentum_signals_on_uptrend(uptrend_bars: list[Bar]) -> None:
    signals = compute_signals(_context(uptrend_bars))
    assert signals.price_change_5 > 0
    assert signals.trend_direction == "bullish"
    assert signals.volume_ratio == pytest.approx(1.0)
    assert signals.near_resistance is True


def test_momentum_entry_sizing_capped(uptrend_bars: list[Bar]) -> None:
    strategy = MomentumBreakoutStrategy()
    order = strategy.decide(
        _context(uptrend_bars), AgentState(10_000.0, 0.01), _portfolio(10_000.0)
    )
    assert order is not None
    assert order.side == "buy"
    # risk 2% / stop 0.5% = 40000, capped at 25% of 10000
    assert order.quantity == pytest.approx(2_500.0 / 219.0)


def test_momentum_exits_on_profit_target(uptrend_bars: list[Bar]) -> None:
    strategy = MomentumBreakoutStrategy()
    entry = strategy.decide(_context(uptrend_bars), AgentState(10_000.0, 0.01), _portfolio(10_000.0))
    assert entry is not None

    bars = make_bars([b.close for b in uptrend_bars] + [222.0])
    exit_order = strategy.decide(
        _context(bars),
        AgentState(10_000.0, 0.01),
        _portfolio(7_500.0, holding=entry.quantity, price=222.0),
    )
    assert exit_order is not None
    assert exit_order.side == "sell"
    assert exit_order.quantity == entry.quantity
    assert "Profit target" in exit_order.reason


def test_momentum_exits_on_stop_loss(uptrend_bars: list[Bar]) -> None:
    strategy = MomentumBreakoutStrategy()
    entry = strategy.decide(_context(uptrend_bars), AgentState(10_000.0, 0.01), _portfolio(10_000.0))
    assert entry is not None

    exit_order = strategy.decide(
        _context(uptrend_bars, price=217.5),
        AgentState(10_000.0, 0.01),
        _portfolio(7_500.0, holding=entry.quantity, price=217.5),
    )
    assert exit_order is not None
    assert "Stop loss" in exit_order.reason


def test_momentum_trailing_stop_after_peak(uptrend_bars: list[Bar]) -> None:
    strategy = MomentumBreakoutStrategy(
        MomentumBreakoutConfig(profit_target=0.05, trailing_activation=0.015, trailing_giveback=0.01)
    )
    entry = strategy.decide(_context(uptrend_bars), AgentState(10_000.0, 0.01), _portfolio(10_000.0))
    assert entry is not None

    # peak at 227 (+3.65%): above activation, below target
    peak = strategy.decide(
        _context(uptrend_bars, price=227.0),
        AgentState(10_000.0, 0.01),
        _portfolio(7_500.0, holding=entry.quantity, price=227.0),
    )
    assert peak is None

    # 224 is 1.32% off the peak and still 2.28% above entry
    exit_order = strategy.decide(
        _context(uptrend_bars, price=224.0),
        AgentState(10_000.0, 0.01),
        _portfolio(7_500.0, holding=entry.quantity, price=224.0),
    )
    assert exit_order is not None
    assert exit_order.side == "sell"
    assert exit_order.quantity == entry.quantity
    assert exit_order.reason.startswith("Trailing stop")


def test_momentum_exits_on_reversal_with_volume(uptrend_bars: list[Bar]) -> None:
    strategy = MomentumBreakoutStrategy()
    entry = strategy.decide(_context(uptrend_bars), AgentState(10_000.0, 0.01), _portfolio(10_000.0))
    assert entry is not None

    closes = [b.close for b in uptrend_bars] + [222.0, 224.0, 226.0, 226.0, 219.5]
    volumes = [1_000.0] * (len(closes) - 1) + [5_000.0]
    bars = make_bars(closes, volumes=volumes, spread=0.001)

    # 5-bar change -1.13% on 4x volume while still above entry
    exit_order = strategy.decide(
        _context(bars),
        AgentState(10_000.0, 0.01),
        _portfolio(7_500.0, holding=entry.quantity, price=219.5),
    )
    assert exit_order is not None
    assert exit_order.reason == "Momentum reversal on high volume"
    assert exit_order.quantity == entry.quantity


def test_momentum_config_validation() -> None:
    with pytest.raises(ConfigurationError):
        MomentumBreakoutConfig(min_conditions=5)
    with pytest.raises(ConfigurationError):
        MomentumBreakoutConfig(max_position_fraction=1.5)


# ============================================================================
# Rule based
# ============================================================================


def _downtrend_bars() -> list[Bar]:
    return make_bars([200.0 - 2 * i for i in range(60)], spread=0.001)


def test_rule_based_buys_on_oversold_rsi() -> None:
    strategy = RuleBasedStrategy()
    order = strategy.decide(
        _context(_downtrend_bars()),
        AgentState(portfolio_value=1_000.0, volatility=0.01),
        _portfolio(cash=1_000.0),
    )
    assert order is not None
    assert order.side == "buy"
    assert order.quantity == pytest.approx(1_000.0 * 0.01 / 82.0)
    assert "rsi < 30" in order.reason


def test_rule_based_skips_buy_without_cash() -> None:
    strategy = RuleBasedStrategy()
    order = strategy.decide(
        _context(_downtrend_bars()),
        AgentState(portfolio_value=5.0, volatility=0.01),
        _portfolio(cash=5.0),
    )
    assert order is None


def test_rule_based_stop_loss_on_tracked_entry() -> None:
    strategy = RuleBasedStrategy()
    bars = _downtrend_bars()
    entry = strategy.decide(_context(bars), AgentState(1_000.0, 0.01), _portfolio(cash=1_000.0))
    assert entry is not None

    order = strategy.decide(
        _context(bars, price=80.0),
        AgentState(1_000.0, 0.01),
        _portfolio(cash=990.0, holding=entry.quantity, price=80.0),
    )
    assert order is not None
    assert order.side == "sell"
    assert order.quantity == entry.quantity
    assert order.reason.startswith("Stop loss")


def _rule_decide(strategy: RuleBasedStrategy, price: float, holding: float):
    return strategy.decide(
        _context(_downtrend_bars(), price=price),
        AgentState(10_000.0, 0.01),
        _portfolio(cash=5_000.0, holding=holding, price=price),
    )


def test_rule_based_entry_ignores_unfilled_buys() -> None:
    strategy = RuleBasedStrategy(RuleBasedConfig(fixed_trade_quantity=2.0, max_position_fraction=1.0))
    assert _rule_decide(strategy, 100.0, holding=2.0).side == "buy"
    # neither buy fills; the entry stays at 100
    assert _rule_decide(strategy, 99.0, holding=2.0).side == "buy"

    order = _rule_decide(strategy, 97.5, holding=2.0)
    assert order.side == "sell"
    assert order.reason == "Stop loss at 97.5 (entry 100)"


def test_rule_based_entry_averages_filled_buys() -> None:
    strategy = RuleBasedStrategy(RuleBasedConfig(fixed_trade_quantity=2.0, max_position_fraction=1.0))
    assert _rule_decide(strategy, 100.0, holding=2.0).side == "buy"
    assert _rule_decide(strategy, 99.0, holding=4.0).side == "buy"

    # (100 * 4 + 99 * 2) / 6
    order = _rule_decide(strategy, 97.5, holding=6.0)
    assert order.side == "sell"
    assert order.quantity == 6.0
    assert order.reason == "Stop loss at 97.5 (entry 99.6667)"


def test_rule_based_sell_rule_closes_holding(uptrend_bars: list[Bar]) -> None:
    strategy = RuleBasedStrategy()
    order = strategy.decide(
        _context(uptrend_bars),
        AgentState(1_000.0, 0.01),
        _portfolio(cash=500.0, holding=2.0, price=219.0),
    )
    assert order is not None
    assert order.side == "sell"
    assert order.quantity == 2.0


def test_rule_based_waits_for_indicator_history() -> None:
    strategy = RuleBasedStrategy()
    bars = _downtrend_bars()[:20]
    assert strategy.decide(_context(bars), AgentState(1_000.0, 0.01), _portfolio()) is None


def test_rule_based_custom_rules_and_indicator_set(uptrend_bars: list[Bar]) -> None:
    config = RuleBasedConfig(
        rules=[
            {
                "action": "buy",
                "name": "trend",
                "conditions": [
                    {"left": "sma_short", "op": ">", "right": "sma_long"},
                    {"left": "close", "op": ">=", "right": "high_n * 0.99"},
                ],
            }
        ],
        fixed_trade_quantity=1.0,
        max_position_fraction=0.5,
    )
    indicators = compute_indicators(uptrend_bars, config)
    assert indicators["sma_short"] > indicators["sma_long"]
    assert indicators["high_n"] == pytest.approx(max(b.high for b in uptrend_bars[-20:]))

    order = RuleBasedStrategy(config).decide(
        _context(uptrend_bars), AgentState(1_000.0, 0.01), _portfolio(cash=1_000.0)
    )
    assert order is not None
    assert order.quantity == 1.0


# ============================================================================
# Registry
# ============================================================================


def test_default_registry_lists_builtins() -> None:
    ids = {entry["id"] for entry in default_registry().list_strategies()}
    assert ids == {"random-v1", "momentum-breakout-v1", "mean-reversion-v1", "rule-based-v1"}


def test_registry_creates_fresh_configured_instances() -> None:
    registry = default_registry()
    first = registry.create("random-v1", {"seed": 7, "trade_attempt_probability": 1.0})
    second = registry.create("random-v1", {"seed": 7})
    assert first is not second
    assert isinstance(first, RandomStrategy)
    assert first.config.trade_attempt_probability == 1.0
    assert second.config.trade_attempt_probability == 0.1


def test_registry_unknown_strategy() -> None:
    with pytest.raises(StrategyNotFound) as excinfo:
        create_strategy("does-not-exist")
    assert excinfo.value.strategy_id == "does-not-exist"
    assert isinstance(excinfo.value, ConfigurationError)


def test_registry_invalid_params_raise_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        create_strategy("mean-reversion-v1", {"rsi_oversold": 80, "rsi_overbought": 70})


def test_custom_registration() -> None:
    registry = StrategyRegistry()
    registry.register("mine", lambda params: MeanReversionStrategy(), "custom")
    assert "mine" in registry
    assert isinstance(registry.create("mine"), MeanReversionStrategy)
    registry.unregister("mine")
    assert "mine" not in registry
