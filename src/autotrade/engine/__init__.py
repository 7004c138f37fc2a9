"""Engine components exposed for external use."""

from autotrade.engine.backtester import BacktestSimulator, SimulationReport, run_backtest
from autotrade.engine.ledger import Ledger
from autotrade.engine.orchestrator import Session, TradingOrchestrator, TransactionRecord
from autotrade.engine.reporting import PerformanceMetrics, PerformanceReporter

__all__ = [
    "Ledger",
    "TradingOrchestrator",
    "Session",
    "TransactionRecord",
    "BacktestSimulator",
    "SimulationReport",
    "run_backtest",
    "PerformanceReporter",
    "PerformanceMetrics",
]
