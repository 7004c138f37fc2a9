"""Tests for the instrument correlation matrix."""

from __future__ import annotations

import pytest

from autotrade.config.models import CorrelationConfig
from autotrade.errors import ConfigurationError
from autotrade.risk.correlation import CorrelationMatrix, meme_coin_correlations


def test_symmetric_with_unit_diagonal() -> None:
    matrix = CorrelationMatrix()
    matrix.set("A", "B", 0.7)
    assert matrix.get("A", "B") == 0.7
    assert matrix.get("B", "A") == 0.7
    assert matrix.get("A", "A") == 1.0
    assert matrix.get("A", "C") == 0.0


def test_set_validates_values() -> None:
    matrix = CorrelationMatrix()
    with pytest.raises(ConfigurationError):
        matrix.set("A", "B", 1.5)
    with pytest.raises(ConfigurationError):
        matrix.set("A", "A", 0.9)


def test_mapped_and_unmapped_instruments() -> None:
    matrix = CorrelationMatrix()
    matrix.set("A", "B", 0.3)
    matrix.add_instrument("C")
    assert matrix.is_mapped("C")
    assert matrix.unmapped(["A", "C", "Z"]) == ["Z"]
    assert len(matrix) == 3


def test_correlated_with_threshold() -> None:
    matrix = CorrelationMatrix()
    matrix.set("A", "B", 0.9)
    matrix.set("A", "C", 0.5)
    assert matrix.correlated_with("A", ["B", "C", "D"]) == [("B", 0.9)]


def test_from_groups_and_config() -> None:
    config = CorrelationConfig(
        groups={"BONK": "dog", "WIF": "dog", "PEPE": "frog"},
        intra_group={"dog": 0.9},
        cross_group={"dog|frog": 0.4},
    )
    matrix = CorrelationMatrix.from_config(config)
    assert matrix.get("BONK", "WIF") == 0.9
    assert matrix.get("WIF", "PEPE") == 0.4
    assert matrix.instruments == ["BONK", "PEPE", "WIF"]


def test_meme_coin_defaults() -> None:
    matrix = meme_coin_correlations()
    assert matrix.get("BONK", "DOGE") == 0.8
    assert matrix.get("PEPE", "MEW") == 0.5
    assert matrix.get("BONK", "PEPE") == 0.5
    assert not matrix.is_mapped("SOL")


def test_estimate_from_prices() -> None:
    base = [100.0 * (1.01 if i % 2 else 0.99) ** (i % 7) for i in range(60)]
    mirrored = [200.0 - p for p in base]
    matrix = CorrelationMatrix.from_prices({"A": base, "B": [p * 3 for p in base], "C": mirrored})
    assert matrix.get("A", "B") == pytest.approx(1.0)
    assert matrix.get("A", "C") < 0


def test_estimate_skips_short_overlap() -> None:
    matrix = CorrelationMatrix.from_prices({"A": [1.0, 2.0, 3.0], "B": [3.0, 2.0, 1.0]}, min_periods=20)
    assert matrix.get("A", "B") == 0.0
    assert matrix.is_mapped("A") and matrix.is_mapped("B")


def test_to_frame() -> None:
    matrix = CorrelationMatrix()
    matrix.set("A", "B", 0.6)
    frame = matrix.to_frame()
    assert list(frame.index) == ["A", "B"]
    assert frame.loc["A", "B"] == 0.6
    assert frame.loc["B", "B"] == 1.0
