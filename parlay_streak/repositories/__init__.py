"""
Repository module.

Data access for users, games, bets, selections, parlays and the streak
ledger.
"""

from parlay_streak.repositories.base import BaseRepository
from parlay_streak.repositories.bet_repository import BetRepository
from parlay_streak.repositories.game_repository import GameRepository
from parlay_streak.repositories.parlay_repository import ParlayRepository
from parlay_streak.repositories.selection_repository import SelectionRepository
from parlay_streak.repositories.user_repository import StreakEventRepository, UserRepository

__all__ = [
    "BaseRepository",
    "BetRepository",
    "GameRepository",
    "ParlayRepository",
    "SelectionRepository",
    "StreakEventRepository",
    "UserRepository",
]
