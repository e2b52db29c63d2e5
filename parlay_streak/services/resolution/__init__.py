"""
Bet resolution: the pure evaluator and the stats lookup it reads from.
"""
from parlay_streak.services.resolution.evaluator import (
    DATA_INCOMPLETE,
    ResolutionResult,
    evaluate,
)
from parlay_streak.services.resolution.stats import (
    NOT_AVAILABLE,
    MappingStatsLookup,
    StatsLookup,
)

__all__ = [
    "DATA_INCOMPLETE",
    "ResolutionResult",
    "evaluate",
    "NOT_AVAILABLE",
    "MappingStatsLookup",
    "StatsLookup",
]
