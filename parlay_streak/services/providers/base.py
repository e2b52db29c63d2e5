"""
Game stats provider contract.

The bet lifecycle only needs two things from the outside world: where a
game is in its schedule, and a stats lookup for resolving bets on it.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from parlay_streak.models import Game
from parlay_streak.services.resolution.stats import StatsLookup


class StatsProviderError(Exception):
    """The provider could not be reached or returned unusable data."""

    def __init__(self, message: str, error_type: str = "unknown"):
        super().__init__(message)
        self.error_type = error_type


@dataclass(frozen=True)
class ProviderGameStatus:
    status: str
    start_time: Optional[datetime] = None


class GameStatsProvider(Protocol):
    def get_game_status(self, game: Game) -> ProviderGameStatus:
        ...

    def get_stats_snapshot(self, game: Game) -> StatsLookup:
        ...
