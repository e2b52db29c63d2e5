"""
Models package.

SQLAlchemy tables live in ``models.py``; the typed bet configuration
(stored in ``Bet.config`` as JSON) lives in ``bet_config.py``.
"""
from parlay_streak.models.models import (
    Base,
    User,
    Game,
    Bet,
    BetSelection,
    Parlay,
    StreakEvent,
)
from parlay_streak.models.constants import (
    GameStatus,
    BetOutcome,
    SelectionStatus,
    ParlayStatus,
    StreakEventType,
    BetType,
    SELECTABLE_SIDES,
)

__all__ = [
    "Base",
    "User",
    "Game",
    "Bet",
    "BetSelection",
    "Parlay",
    "StreakEvent",
    "GameStatus",
    "BetOutcome",
    "SelectionStatus",
    "ParlayStatus",
    "StreakEventType",
    "BetType",
    "SELECTABLE_SIDES",
]
