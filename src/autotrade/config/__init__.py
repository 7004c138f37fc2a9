"""Configuration management for the trading engine.

Usage:
    from autotrade.config import load_config, save_config

    cfg = load_config()
    print(cfg.risk.max_daily_loss)

    cfg.risk.max_daily_loss = 250.0
    save_config(cfg)
"""

from autotrade.config.models import (
    AppConfig,
    BacktestSettings,
    CorrelationConfig,
    RiskLimits,
    SizingAssumptions,
    TradingConfig,
    VenueConfig,
)
from autotrade.config.service import (
    configure_logging,
    get_config_path,
    load_config,
    reload_config,
    save_config,
)

__all__ = [
    # Models
    "RiskLimits",
    "SizingAssumptions",
    "TradingConfig",
    "BacktestSettings",
    "VenueConfig",
    "CorrelationConfig",
    "AppConfig",
    # Service functions
    "get_config_path",
    "load_config",
    "save_config",
    "reload_config",
    "configure_logging",
]
