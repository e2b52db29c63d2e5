from parlay_streak.services.providers.base import (
    GameStatsProvider,
    ProviderGameStatus,
    StatsProviderError,
)
from parlay_streak.services.providers.espn_stats_provider import (
    EspnStatsProvider,
    EspnStatsSnapshot,
)

__all__ = [
    "GameStatsProvider",
    "ProviderGameStatus",
    "StatsProviderError",
    "EspnStatsProvider",
    "EspnStatsSnapshot",
]
