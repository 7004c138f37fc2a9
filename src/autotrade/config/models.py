"""Configuration models for the trading engine using Pydantic."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RiskLimits(BaseModel):
    """Portfolio-level risk limits enforced by the risk engine.

    Percent fields are expressed in percent units (20.0 = 20%).
    """

    model_config = ConfigDict(extra="forbid")

    max_position_size: float = Field(
        default=1000.0,
        gt=0.0,
        description="Maximum value of a single order in quote currency"
    )
    max_portfolio_risk_pct: float = Field(
        default=20.0,
        gt=0.0,
        le=100.0,
        description="Maximum post-trade exposure as percent of portfolio value"
    )
    max_daily_loss: float = Field(
        default=500.0,
        gt=0.0,
        description="Realized loss per UTC day after which buying stops"
    )
    max_correlated_exposure_pct: float = Field(
        default=50.0,
        gt=0.0,
        le=100.0,
        description="Maximum correlation-weighted exposure as percent of portfolio value"
    )
    default_stop_loss_pct: float = Field(
        default=5.0,
        gt=0.0,
        lt=100.0,
        description="Stop loss distance from entry in percent"
    )
    default_take_profit_pct: float = Field(
        default=10.0,
        gt=0.0,
        description="Take profit distance from entry in percent"
    )
    min_liquidity: float = Field(
        default=100_000.0,
        ge=0.0,
        description="Minimum traded value over 24h required to buy an instrument"
    )


class SizingAssumptions(BaseModel):
    """Win statistics feeding the Kelly position-size recommendation."""

    model_config = ConfigDict(extra="forbid")

    win_rate: float = Field(
        default=0.55,
        gt=0.0,
        lt=1.0,
        description="Probability that a trade is a winner"
    )
    avg_win: float = Field(
        default=0.10,
        gt=0.0,
        description="Average winning return as a fraction"
    )
    avg_loss: float = Field(
        default=0.05,
        gt=0.0,
        description="Average losing return as a fraction"
    )
    max_kelly_fraction: float = Field(
        default=0.25,
        gt=0.0,
        le=1.0,
        description="Upper clip of the Kelly fraction"
    )


class TradingConfig(BaseModel):
    """Parameters of one live trading session."""

    model_config = ConfigDict(extra="forbid")

    strategy_id: str = Field(
        min_length=1,
        description="Registered strategy id, e.g. 'momentum-breakout-v1'"
    )
    instruments: list[str] = Field(
        min_length=1,
        description="Opaque instrument identifiers traded by the session"
    )
    interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds between ticks"
    )
    bar_interval: str = Field(
        default="1m",
        description="Bar interval requested from the market data provider"
    )
    history_bars: int = Field(
        default=200,
        ge=1,
        description="Number of bars fetched for each decision"
    )
    strategy_params: dict[str, Any] = Field(
        default_factory=dict,
        description="Overrides applied to the strategy's default configuration"
    )
    risk_overrides: dict[str, float] = Field(
        default_factory=dict,
        description="RiskLimits fields overridden for this session"
    )
    initial_cash: float | None = Field(
        default=None,
        ge=0.0,
        description="Reset ledger cash to this amount on start (None keeps the ledger)"
    )
    cap_to_recommended_size: bool = Field(
        default=False,
        description="Shrink BUY orders to the risk engine's recommended size"
    )
    cost_buffer: float = Field(
        default=0.002,
        ge=0.0,
        lt=1.0,
        description="Fraction of a BUY's value reserved for fees and slippage in the cash check"
    )

    @model_validator(mode="after")
    def _check_instruments(self) -> TradingConfig:
        if any(not instrument for instrument in self.instruments):
            raise ValueError("instruments must be non-empty strings")
        if len(set(self.instruments)) != len(self.instruments):
            raise ValueError("instruments must be unique")
        return self


class BacktestSettings(BaseModel):
    """Simulated execution costs and starting capital for backtests."""

    model_config = ConfigDict(extra="forbid")

    initial_capital: float = Field(
        default=10_000.0,
        gt=0.0,
        description="Starting cash of the simulated portfolio"
    )
    fee_rate: float = Field(
        default=0.001,
        ge=0.0,
        lt=1.0,
        description="Proportional fee charged on traded value (0.001 = 0.1%)"
    )
    slippage: float = Field(
        default=0.0005,
        ge=0.0,
        lt=1.0,
        description="Adverse price adjustment as a fraction of close"
    )
    apply_risk_checks: bool = Field(
        default=True,
        description="Route simulated orders through the risk engine"
    )


class VenueConfig(BaseModel):
    """HTTP venue used by the live market data and execution providers."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(
        default="http://localhost:8080",
        description="Venue gateway base URL"
    )
    api_key: str | None = None
    timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Request timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts per request before giving up"
    )


class CorrelationConfig(BaseModel):
    """Explicit instrument to correlation-group mapping."""

    model_config = ConfigDict(extra="forbid")

    groups: dict[str, str] = Field(
        default_factory=dict,
        description="Instrument id -> correlation group name"
    )
    intra_group: dict[str, float] = Field(
        default_factory=dict,
        description="Correlation between two instruments of the same group"
    )
    cross_group: dict[str, float] = Field(
        default_factory=dict,
        description="Correlation between groups, keyed 'group_a|group_b'"
    )
    default_intra_group: float = Field(
        default=0.8,
        ge=-1.0,
        le=1.0,
        description="Correlation used for groups absent from intra_group"
    )

    @model_validator(mode="after")
    def _check_ranges(self) -> CorrelationConfig:
        for key, value in {**self.intra_group, **self.cross_group}.items():
            if not -1.0 <= value <= 1.0:
                raise ValueError(f"correlation for {key!r} must be in [-1, 1], got {value}")
        for key in self.cross_group:
            if key.count("|") != 1:
                raise ValueError(f"cross_group key {key!r} must look like 'group_a|group_b'")
        return self


class AppConfig(BaseModel):
    """Root application configuration containing all sub-configs."""

    model_config = ConfigDict(extra="forbid")

    log_level: str = Field(
        default="INFO",
        description="Root logging level"
    )
    risk: RiskLimits = Field(default_factory=RiskLimits)
    sizing: SizingAssumptions = Field(default_factory=SizingAssumptions)
    backtest: BacktestSettings = Field(default_factory=BacktestSettings)
    venue: VenueConfig = Field(default_factory=VenueConfig)
    correlation: CorrelationConfig = Field(default_factory=CorrelationConfig)
