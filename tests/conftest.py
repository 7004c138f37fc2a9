"""Pytest configuration shared across the suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Sequence

import pytest

from autotrade.strategies.base import Bar

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_bars(
    closes: Sequence[float],
    volumes: Sequence[float] | float = 1_000.0,
    start: datetime = START,
    step: timedelta = timedelta(minutes=1),
    spread: float = 0.0,
) -> list[Bar]:
    """Build bars from closes; high/low sit ``spread`` (fraction) around the close."""
    if isinstance(volumes, (int, float)):
        volumes = [float(volumes)] * len(closes)
    bars = []
    previous = closes[0] if closes else 0.0
    for i, (close, volume) in enumerate(zip(closes, volumes)):
        bars.append(
            Bar(
                timestamp=start + step * i,
                open=previous,
                high=max(previous, close) * (1 + spread),
                low=min(previous, close) * (1 - spread),
                close=close,
                volume=volume,
            )
        )
        previous = close
    return bars


@pytest.fixture
def flat_bars() -> list[Bar]:
    return make_bars([100.0] * 100)


@pytest.fixture
def uptrend_bars() -> list[Bar]:
    return make_bars([100.0 + i for i in range(120)], spread=0.001)


@pytest.fixture
def zigzag_bars() -> list[Bar]:
    """300 bars oscillating between 90 and 110."""
    closes = []
    for i in range(300):
        phase = i % 40
        closes.append(90.0 + phase if phase < 20 else 130.0 - phase)
    return make_bars(closes, spread=0.002)
