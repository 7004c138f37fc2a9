"""Tests for the position and portfolio ledger."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from autotrade.engine.ledger import Ledger
from autotrade.errors import LedgerError
from autotrade.strategies.base import Order, Position

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _order(side: str, quantity: float, instrument: str = "SOL") -> Order:
    return Order(instrument=instrument, side=side, quantity=quantity)


@pytest.fixture
def ledger() -> Ledger:
    return Ledger(initial_cash=10_000.0, clock=lambda: T0)


def test_sell_realizes_pnl_and_removes_position(ledger: Ledger) -> None:
    ledger.apply_fill(_order("buy", 100), 50.0, T0)
    before = ledger.daily_pnl(T0)

    trade = ledger.apply_fill(_order("sell", 100), 55.0, T0 + timedelta(minutes=5))

    assert trade.realized_pnl == pytest.approx(500.0)
    assert ledger.position("SOL") is None
    assert ledger.daily_pnl(T0 + timedelta(minutes=5)) - before == pytest.approx(500.0)
    assert ledger.realized_pnl == pytest.approx(500.0)
    assert ledger.cash == pytest.approx(10_500.0)


def test_buys_average_entry_price(ledger: Ledger) -> None:
    ledger.apply_fill(_order("buy", 10), 100.0, T0)
    ledger.apply_fill(_order("buy", 30), 120.0, T0)
    position = ledger.position("SOL")
    assert position is not None
    assert position.quantity == 40
    assert position.entry_price == pytest.approx(115.0)
    assert position.position_id == "P000001"


def test_partial_sell_keeps_entry_price(ledger: Ledger) -> None:
    ledger.apply_fill(_order("buy", 10), 100.0, T0)
    trade = ledger.apply_fill(_order("sell", 4), 90.0, T0)
    position = ledger.position("SOL")
    assert position is not None
    assert position.quantity == pytest.approx(6)
    assert position.entry_price == 100.0
    assert trade.realized_pnl == pytest.approx(-40.0)
    assert ledger.win_rate() == 0.0


def test_quantity_never_negative(ledger: Ledger) -> None:
    ledger.apply_fill(_order("buy", 1), 100.0, T0)
    with pytest.raises(LedgerError):
        ledger.apply_fill(_order("sell", 2), 100.0, T0)
    with pytest.raises(LedgerError):
        ledger.apply_fill(_order("sell", 1, "ETH"), 100.0, T0)

    position = ledger.position("SOL")
    assert position is not None and position.quantity == 1
    assert len(ledger.trades) == 1


def test_fees_charged_to_cash_only(ledger: Ledger) -> None:
    ledger.apply_fill(_order("buy", 10), 100.0, T0, fees=2.0)
    trade = ledger.apply_fill(_order("sell", 10), 110.0, T0, fees=2.2)
    assert trade.realized_pnl == pytest.approx(100.0)
    assert ledger.cash == pytest.approx(10_000.0 + 100.0 - 4.2)


def test_total_value_is_cash_plus_marked_positions(ledger: Ledger) -> None:
    ledger.apply_fill(_order("buy", 10), 100.0, T0)
    ledger.mark_price("SOL", 120.0)
    assert ledger.exposure() == pytest.approx(1_200.0)
    assert ledger.total_value() == pytest.approx(9_000.0 + 1_200.0)

    snapshot = ledger.snapshot(T0)
    assert snapshot.holdings == {"SOL": 10}
    assert snapshot.total_value == pytest.approx(ledger.cash + 1_200.0)


def test_daily_pnl_resets_at_utc_day_boundary(ledger: Ledger) -> None:
    ledger.apply_fill(_order("buy", 10), 100.0, T0)
    ledger.apply_fill(_order("sell", 10), 90.0, T0)
    assert ledger.daily_pnl(T0) == pytest.approx(-100.0)

    next_day = T0 + timedelta(days=1)
    assert ledger.daily_pnl(next_day) == 0.0
    assert ledger.realized_pnl == pytest.approx(-100.0)


def test_trade_ids_are_sequential(ledger: Ledger) -> None:
    first = ledger.apply_fill(_order("buy", 1), 100.0, T0)
    second = ledger.apply_fill(_order("buy", 1), 100.0, T0, trade_id="VENUE-9")
    third = ledger.apply_fill(_order("sell", 2), 100.0, T0)
    assert [first.trade_id, second.trade_id, third.trade_id] == ["T000001", "VENUE-9", "T000003"]


def test_can_fill_reports_reasons(ledger: Ledger) -> None:
    assert ledger.can_fill(_order("buy", 1_000), 100.0) is not None
    assert ledger.can_fill(_order("buy", 10), 100.0) is None
    assert "Insufficient holdings" in ledger.can_fill(_order("sell", 1), 100.0)


def test_invalid_fills_rejected(ledger: Ledger) -> None:
    with pytest.raises(LedgerError):
        ledger.apply_fill(_order("buy", 1), 0.0, T0)
    with pytest.raises(LedgerError):
        ledger.apply_fill(_order("buy", 1), 10.0, T0, fees=-1.0)
    with pytest.raises(LedgerError):
        Ledger(initial_cash=-1.0)


def test_load_positions_and_protective_levels(ledger: Ledger) -> None:
    ledger.load_positions(
        [
            Position("SOL", quantity=2, entry_price=100.0),
            Position("ETH", quantity=0, entry_price=100.0),
        ]
    )
    assert ledger.holdings == {"SOL": 2}
    ledger.set_protective_levels("SOL", 95.0, 110.0)
    position = ledger.position("SOL")
    assert position is not None
    assert (position.stop_loss, position.take_profit) == (95.0, 110.0)


def test_positions_returns_copies(ledger: Ledger) -> None:
    ledger.apply_fill(_order("buy", 1), 100.0, T0)
    ledger.positions["SOL"].quantity = 99
    assert ledger.holding("SOL") == 1


def test_performance_summary(ledger: Ledger) -> None:
    ledger.apply_fill(_order("buy", 10), 100.0, T0)
    ledger.apply_fill(_order("sell", 5), 110.0, T0)
    summary = ledger.performance()
    assert summary["trades"] == 2
    assert summary["wins"] == 1
    assert summary["win_rate"] == 1.0
    assert summary["realized_pnl"] == pytest.approx(50.0)
    assert summary["open_positions"] == 1
