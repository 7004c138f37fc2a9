"""External collaborator interfaces and their implementations."""

from autotrade.providers.base import (
    ExecutionProvider,
    Fill,
    InstrumentResolver,
    MarketDataProvider,
    PersistenceProvider,
)
from autotrade.providers.historical import CSVMarketData, load_bars_csv
from autotrade.providers.live import HttpExecutionProvider, HttpMarketDataProvider, VenueClient
from autotrade.providers.persistence import InMemoryPersistence, JsonlTradeStore
from autotrade.providers.resolver import StaticInstrumentResolver
from autotrade.providers.simulated import InMemoryMarketData, SimulatedExecutionProvider

__all__ = [
    # Interfaces
    "Fill",
    "MarketDataProvider",
    "ExecutionProvider",
    "InstrumentResolver",
    "PersistenceProvider",
    # Implementations
    "InMemoryMarketData",
    "CSVMarketData",
    "load_bars_csv",
    "SimulatedExecutionProvider",
    "VenueClient",
    "HttpMarketDataProvider",
    "HttpExecutionProvider",
    "StaticInstrumentResolver",
    "InMemoryPersistence",
    "JsonlTradeStore",
]
