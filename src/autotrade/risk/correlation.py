"""Instrument correlation model used for correlated-exposure limits."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Sequence

import pandas as pd

from autotrade.config.models import CorrelationConfig
from autotrade.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Correlations above this value count as "correlated"
CORRELATION_THRESHOLD = 0.5


def _key(a: str, b: str) -> tuple[str, str]:
    return (a, b) if a <= b else (b, a)


class CorrelationMatrix:
    """Symmetric instrument correlation matrix.

    Self-correlation is always 1.0. Pairs never set read as 0.0. An
    instrument is "mapped" once it has been registered explicitly or
    appears in any stored pair; unmapped instruments are treated as
    uncorrelated with everything else.
    """

    def __init__(self) -> None:
        self._values: dict[tuple[str, str], float] = {}
        self._instruments: set[str] = set()

    def __len__(self) -> int:
        return len(self._instruments)

    @property
    def instruments(self) -> list[str]:
        return sorted(self._instruments)

    def add_instrument(self, instrument: str) -> None:
        self._instruments.add(instrument)

    def is_mapped(self, instrument: str) -> bool:
        return instrument in self._instruments

    def unmapped(self, instruments: Iterable[str]) -> list[str]:
        return [i for i in instruments if i not in self._instruments]

    def set(self, a: str, b: str, value: float) -> None:
        """Set the correlation between ``a`` and ``b`` (both directions)."""
        if not -1.0 <= value <= 1.0:
            raise ConfigurationError(f"Correlation must be in [-1, 1], got {value}")
        if a == b:
            if value != 1.0:
                raise ConfigurationError(f"Self-correlation of {a!r} must be 1.0")
            self._instruments.add(a)
            return
        self._values[_key(a, b)] = float(value)
        self._instruments.update((a, b))

    def get(self, a: str, b: str) -> float:
        if a == b:
            return 1.0
        return self._values.get(_key(a, b), 0.0)

    def correlated_with(
        self,
        instrument: str,
        others: Iterable[str],
        threshold: float = CORRELATION_THRESHOLD,
    ) -> list[tuple[str, float]]:
        """Return ``(other, correlation)`` for others correlated above ``threshold``."""
        result = []
        for other in others:
            value = self.get(instrument, other)
            if value > threshold:
                result.append((other, value))
        return result

    def to_frame(self) -> pd.DataFrame:
        """Full matrix as a DataFrame indexed by instrument on both axes."""
        names = self.instruments
        return pd.DataFrame(
            [[self.get(a, b) for b in names] for a in names],
            index=names,
            columns=names,
        )

    def update_from_prices(self, prices: Mapping[str, Sequence[float]], min_periods: int = 20) -> None:
        """Estimate pairwise correlations of per-bar returns and store them.

        Series are aligned on their most recent values. Pairs with fewer
        than ``min_periods`` overlapping returns are left untouched.
        """
        if len(prices) < 2:
            for instrument in prices:
                self.add_instrument(instrument)
            return

        longest = max(len(series) for series in prices.values())
        frame = pd.DataFrame(
            {
                name: pd.Series(list(series), index=range(longest - len(series), longest), dtype=float)
                for name, series in prices.items()
            }
        )
        estimated = frame.pct_change(fill_method=None).corr(min_periods=min_periods)

        names = list(prices)
        for i, a in enumerate(names):
            self.add_instrument(a)
            for b in names[i + 1:]:
                value = estimated.at[a, b]
                if pd.isna(value):
                    logger.debug(f"Not enough overlapping data to correlate {a} and {b}")
                    continue
                self.set(a, b, max(-1.0, min(1.0, float(value))))

    @classmethod
    def from_prices(cls, prices: Mapping[str, Sequence[float]], min_periods: int = 20) -> CorrelationMatrix:
        matrix = cls()
        matrix.update_from_prices(prices, min_periods)
        return matrix

    @classmethod
    def from_groups(
        cls,
        groups: Mapping[str, str],
        intra_group: Mapping[str, float] | None = None,
        cross_group: Mapping[tuple[str, str], float] | None = None,
        default_intra_group: float = 0.8,
    ) -> CorrelationMatrix:
        """Build a matrix from an explicit instrument -> group mapping.

        Args:
            groups: Instrument id -> group name
            intra_group: Group name -> correlation between its members
            cross_group: (group_a, group_b) -> correlation between members of the two groups
            default_intra_group: Used for groups missing from ``intra_group``
        """
        intra_group = intra_group or {}
        cross = {_key(a, b): value for (a, b), value in (cross_group or {}).items()}

        matrix = cls()
        members = sorted(groups.items())
        for instrument, _ in members:
            matrix.add_instrument(instrument)
        for i, (a, group_a) in enumerate(members):
            for b, group_b in members[i + 1:]:
                if group_a == group_b:
                    value = intra_group.get(group_a, default_intra_group)
                else:
                    value = cross.get(_key(group_a, group_b), 0.0)
                if value:
                    matrix.set(a, b, value)
        return matrix

    @classmethod
    def from_config(cls, config: CorrelationConfig) -> CorrelationMatrix:
        cross = {}
        for key, value in config.cross_group.items():
            a, b = key.split("|")
            cross[(a.strip(), b.strip())] = value
        return cls.from_groups(config.groups, config.intra_group, cross, config.default_intra_group)


MEME_COIN_GROUPS = {
    "BONK": "dog",
    "WIF": "dog",
    "DOGE": "dog",
    "SHIB": "dog",
    "FLOKI": "dog",
    "PEPE": "meme",
    "POPCAT": "meme",
    "MEW": "meme",
    "PNUT": "meme",
}


def meme_coin_correlations() -> CorrelationMatrix:
    """Default grouping for common meme tokens keyed by symbol.

    Dog-themed tokens correlate at 0.8 with each other; the remaining meme
    tokens at 0.5 with each other and with the dog group.
    """
    return CorrelationMatrix.from_groups(
        MEME_COIN_GROUPS,
        intra_group={"dog": 0.8, "meme": 0.5},
        cross_group={("dog", "meme"): 0.5},
    )


__all__ = [
    "CorrelationMatrix",
    "CORRELATION_THRESHOLD",
    "MEME_COIN_GROUPS",
    "meme_coin_correlations",
]
