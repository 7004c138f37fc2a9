"""Static symbol to instrument resolution."""

from __future__ import annotations

from typing import Mapping

from autotrade.errors import ConfigurationError


class StaticInstrumentResolver:
    """Resolves symbols from a fixed, case-insensitive table.

    Identifiers that are already known instruments resolve to themselves.
    """

    def __init__(self, mapping: Mapping[str, str] | None = None) -> None:
        self._by_symbol: dict[str, str] = {}
        self._by_instrument: dict[str, str] = {}
        for symbol, instrument in (mapping or {}).items():
            self.register(symbol, instrument)

    def register(self, symbol: str, instrument: str) -> None:
        if not symbol or not instrument:
            raise ConfigurationError("symbol and instrument must be non-empty")
        self._by_symbol[symbol.upper()] = instrument
        self._by_instrument[instrument] = symbol.upper()

    def resolve(self, symbol: str) -> str:
        """Return the instrument id for ``symbol``.

        Raises:
            ConfigurationError: If the symbol is unknown
        """
        if symbol in self._by_instrument:
            return symbol
        try:
            return self._by_symbol[symbol.upper()]
        except KeyError:
            raise ConfigurationError(f"Unknown symbol: {symbol!r}") from None

    def symbol_for(self, instrument: str) -> str | None:
        return self._by_instrument.get(instrument)


__all__ = ["StaticInstrumentResolver"]
