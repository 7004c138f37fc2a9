"""Configuration service for loading and saving AppConfig."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from pydantic import ValidationError

from autotrade.config.models import (
    AppConfig,
    BacktestSettings,
    RiskLimits,
    SizingAssumptions,
    VenueConfig,
)
from autotrade.errors import ConfigurationError

# Global cache for config (loaded once per process)
_APP_CONFIG: AppConfig | None = None

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AUTOTRADE_CONFIG"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_config_path() -> Path:
    """Get path to the configuration file.

    Returns:
        Path from $AUTOTRADE_CONFIG, or ~/.autotrade/config.json

    Creates the parent directory if it doesn't exist.
    """
    override = os.getenv(CONFIG_ENV_VAR)
    path = Path(override).expanduser() if override else Path.home() / ".autotrade" / "config.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _load_from_env() -> AppConfig:
    """Load configuration from environment variables.

    This is used when config.json doesn't exist yet.
    Environment variables override the default values.
    """
    defaults = AppConfig()

    risk = RiskLimits(
        max_position_size=_env_float("AUTOTRADE_MAX_POSITION_SIZE", defaults.risk.max_position_size),
        max_portfolio_risk_pct=_env_float(
            "AUTOTRADE_MAX_PORTFOLIO_RISK_PCT", defaults.risk.max_portfolio_risk_pct
        ),
        max_daily_loss=_env_float("AUTOTRADE_MAX_DAILY_LOSS", defaults.risk.max_daily_loss),
        max_correlated_exposure_pct=_env_float(
            "AUTOTRADE_MAX_CORRELATED_EXPOSURE_PCT", defaults.risk.max_correlated_exposure_pct
        ),
        default_stop_loss_pct=_env_float("AUTOTRADE_STOP_LOSS_PCT", defaults.risk.default_stop_loss_pct),
        default_take_profit_pct=_env_float(
            "AUTOTRADE_TAKE_PROFIT_PCT", defaults.risk.default_take_profit_pct
        ),
        min_liquidity=_env_float("AUTOTRADE_MIN_LIQUIDITY", defaults.risk.min_liquidity),
    )

    sizing = SizingAssumptions(
        win_rate=_env_float("AUTOTRADE_WIN_RATE", defaults.sizing.win_rate),
        avg_win=_env_float("AUTOTRADE_AVG_WIN", defaults.sizing.avg_win),
        avg_loss=_env_float("AUTOTRADE_AVG_LOSS", defaults.sizing.avg_loss),
    )

    backtest = BacktestSettings(
        initial_capital=_env_float("AUTOTRADE_INITIAL_CAPITAL", defaults.backtest.initial_capital),
        fee_rate=_env_float("AUTOTRADE_FEE_RATE", defaults.backtest.fee_rate),
        slippage=_env_float("AUTOTRADE_SLIPPAGE", defaults.backtest.slippage),
    )

    venue = VenueConfig(
        base_url=os.getenv("AUTOTRADE_VENUE_URL", defaults.venue.base_url),
        api_key=os.getenv("AUTOTRADE_VENUE_API_KEY"),
        timeout_seconds=_env_float("AUTOTRADE_VENUE_TIMEOUT", defaults.venue.timeout_seconds),
    )

    return AppConfig(
        log_level=os.getenv("AUTOTRADE_LOG_LEVEL", defaults.log_level),
        risk=risk,
        sizing=sizing,
        backtest=backtest,
        venue=venue,
    )


def load_config() -> AppConfig:
    """Load application configuration.

    Loading priority:
    1. If already cached in memory, return cached instance
    2. If the config file exists, load from file
    3. Otherwise, create from environment variables and save to file

    Returns:
        AppConfig instance

    Raises:
        ConfigurationError: If the config file is invalid JSON or doesn't match the schema
    """
    global _APP_CONFIG

    if _APP_CONFIG is not None:
        return _APP_CONFIG

    config_path = get_config_path()

    if config_path.exists():
        try:
            logger.info("Loading configuration from %s", config_path)
            with open(config_path, encoding="utf-8") as f:
                data: Dict[str, Any] = json.load(f)
            _APP_CONFIG = AppConfig(**data)
            logger.info("Configuration loaded successfully")
            return _APP_CONFIG
        except (json.JSONDecodeError, ValidationError, TypeError) as exc:
            logger.error("Failed to parse config file %s: %s", config_path, exc)
            raise ConfigurationError(f"Invalid configuration file: {exc}") from exc

    logger.info("No config file found, creating from environment variables")
    try:
        _APP_CONFIG = _load_from_env()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in environment: {exc}") from exc

    save_config(_APP_CONFIG)
    return _APP_CONFIG


def save_config(app_config: AppConfig) -> None:
    """Save configuration to file and update the cache.

    Raises:
        OSError: If file cannot be written
    """
    global _APP_CONFIG

    config_path = get_config_path()
    data = app_config.model_dump(mode="json")

    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    _APP_CONFIG = app_config
    logger.info("Configuration saved to %s", config_path)


def reload_config() -> AppConfig:
    """Reload configuration from file, clearing the cache.

    Raises:
        ConfigurationError: If config file doesn't exist or is invalid
    """
    global _APP_CONFIG

    config_path = get_config_path()
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    _APP_CONFIG = None
    return load_config()


def configure_logging(level: str | int = "INFO") -> None:
    """Configure root logging for the engine and quiet noisy HTTP loggers."""
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ConfigurationError(f"Unknown log level: {level!r}")
        level = resolved

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
