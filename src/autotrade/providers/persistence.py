"""Append-only trade persistence."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Iterable

from autotrade.strategies.base import Position, Trade

logger = logging.getLogger(__name__)


def positions_from_trades(trades: Iterable[Trade]) -> list[Position]:
    """Rebuild open positions by replaying fills in order.

    BUYs average the entry price by quantity; SELLs reduce the quantity and
    drop the position once it reaches zero.
    """
    positions: dict[str, Position] = {}
    for trade in trades:
        position = positions.get(trade.instrument)
        if trade.side == "buy":
            if position is None:
                positions[trade.instrument] = Position(
                    instrument=trade.instrument,
                    quantity=trade.quantity,
                    entry_price=trade.executed_price,
                    current_price=trade.executed_price,
                    opened_at=trade.executed_at,
                )
            else:
                total = position.quantity + trade.quantity
                position.entry_price = (
                    position.entry_price * position.quantity + trade.executed_price * trade.quantity
                ) / total
                position.quantity = total
                position.current_price = trade.executed_price
            continue

        if position is None:
            logger.warning(f"Ignoring sell of {trade.instrument} without an open position")
            continue
        position.quantity -= trade.quantity
        position.current_price = trade.executed_price
        position.realized_pnl += trade.realized_pnl or 0.0
        if position.quantity <= 1e-9:
            del positions[trade.instrument]
    return list(positions.values())


class InMemoryPersistence:
    """Trade store held in memory."""

    def __init__(self) -> None:
        self._trades: list[Trade] = []

    def save_trade(self, trade: Trade) -> None:
        self._trades.append(trade)

    def load_trades(self) -> list[Trade]:
        return list(self._trades)

    def load_positions(self) -> list[Position]:
        return positions_from_trades(self._trades)


class JsonlTradeStore:
    """Trade store appending one JSON object per line to a file.

    Thread-safe: Protected by internal lock.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def save_trade(self, trade: Trade) -> None:
        line = json.dumps(trade.to_dict(), ensure_ascii=False)
        with self._lock, self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def load_trades(self) -> list[Trade]:
        if not self.path.exists():
            return []
        trades = []
        with self._lock, self.path.open("r", encoding="utf-8") as fh:
            for line_num, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                try:
                    trades.append(Trade.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                    logger.warning(f"Skipping invalid trade on line {line_num} of {self.path}: {exc}")
        return trades

    def load_positions(self) -> list[Position]:
        return positions_from_trades(self.load_trades())


__all__ = ["InMemoryPersistence", "JsonlTradeStore", "positions_from_trades"]
