"""Risk management exposed for external use."""

from autotrade.risk.correlation import CorrelationMatrix, meme_coin_correlations
from autotrade.risk.engine import (
    ProtectiveLevels,
    RiskCheckResult,
    RiskEngine,
    RiskMetrics,
    SizeRecommendation,
    TriggerHit,
)

__all__ = [
    "RiskEngine",
    "RiskCheckResult",
    "SizeRecommendation",
    "ProtectiveLevels",
    "TriggerHit",
    "RiskMetrics",
    "CorrelationMatrix",
    "meme_coin_correlations",
]
