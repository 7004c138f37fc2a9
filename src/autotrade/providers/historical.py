"""Historical bar loading from CSV files."""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Mapping, Sequence

import pandas as pd

from autotrade.providers.simulated import InMemoryMarketData
from autotrade.strategies.base import Bar

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


def parse_timestamp(value: str | float | int, tz: tzinfo | None = None) -> datetime:
    """Parse ISO8601 timestamps, unix seconds, or milliseconds.

    Supports:
    - Unix timestamps in seconds: "1234567890"
    - Unix timestamps in milliseconds: "1234567890123"
    - Float timestamps: "1234567890.123"
    - ISO8601 strings: "2023-01-01T00:00:00Z"

    Args:
        value: Timestamp value
        tz: Target timezone (default: UTC)

    Returns:
        Parsed datetime with timezone
    """
    text = str(value).strip()

    try:
        timestamp = float(text)
        # If timestamp > 1e10, assume milliseconds
        if timestamp > 1e10:
            timestamp /= 1000.0
        ts = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except ValueError:
        cleaned = text
        if cleaned.endswith(("Z", "z")):
            cleaned = cleaned[:-1] + "+00:00"
        ts = datetime.fromisoformat(cleaned)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=tz or timezone.utc)

    if tz:
        ts = ts.astimezone(tz)
    return ts


def frame_to_bars(frame: pd.DataFrame, tz: tzinfo | None = None) -> list[Bar]:
    """Convert an OHLCV DataFrame into bars sorted by time.

    Rows with unparseable values are dropped with a warning; duplicate
    timestamps keep the last row so the series is strictly time-ordered.

    Raises:
        ValueError: If a required column is missing
    """
    missing = [col for col in REQUIRED_COLUMNS if col not in frame.columns]
    if missing:
        raise ValueError(f"CSV is missing required columns: {missing}")

    data = frame[REQUIRED_COLUMNS].copy()
    for col in REQUIRED_COLUMNS[1:]:
        data[col] = pd.to_numeric(data[col], errors="coerce")

    parsed: list[datetime | None] = []
    for raw in data["timestamp"]:
        try:
            parsed.append(parse_timestamp(raw, tz))
        except (TypeError, ValueError):
            parsed.append(None)
    data["timestamp"] = parsed

    invalid = data.isna().any(axis=1)
    if invalid.any():
        logger.warning(f"Skipping {int(invalid.sum())} row(s) with invalid values")
        data = data[~invalid]

    data = data.drop_duplicates(subset="timestamp", keep="last").sort_values("timestamp")
    return [
        Bar(
            timestamp=pd.Timestamp(row.timestamp).to_pydatetime(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in data.itertuples(index=False)
    ]


def load_bars_csv(path: Path | str, tz: tzinfo | None = None) -> list[Bar]:
    """Read OHLCV bars from a CSV file with a header row."""
    path = Path(path)
    frame = pd.read_csv(path, dtype={"timestamp": str})
    bars = frame_to_bars(frame, tz)
    logger.info(f"Loaded {len(bars)} bars from {path}")
    return bars


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """DataFrame indexed by timestamp with open/high/low/close/volume columns."""
    frame = pd.DataFrame(
        [
            {
                "timestamp": b.timestamp,
                "open": b.open,
                "high": b.high,
                "low": b.low,
                "close": b.close,
                "volume": b.volume,
            }
            for b in bars
        ],
        columns=REQUIRED_COLUMNS,
    )
    return frame.set_index("timestamp")


class CSVMarketData(InMemoryMarketData):
    """Market data provider serving bars loaded from one CSV file per instrument."""

    def __init__(self, paths: Mapping[str, Path | str], tz: tzinfo | None = None) -> None:
        super().__init__()
        for instrument, path in paths.items():
            self.add_bars(instrument, load_bars_csv(path, tz))


__all__ = [
    "CSVMarketData",
    "parse_timestamp",
    "frame_to_bars",
    "load_bars_csv",
    "bars_to_frame",
]
