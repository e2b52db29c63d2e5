"""
Game Repository.

Games are written by the ingestion pipeline; this service only refreshes
status and start time from the stats provider.
"""
from datetime import datetime
from typing import List, Optional

from parlay_streak.models import Bet, BetOutcome, Game, GameStatus
from parlay_streak.repositories.base import BaseRepository
from parlay_streak.utils.timezone import utc_now


class GameRepository(BaseRepository[Game]):
    """Repository for game data access."""

    def __init__(self, db):
        super().__init__(Game, db)

    def find_started_with_pending_bets(self, now: datetime) -> List[Game]:
        """Games past their start time that still have unresolved bets."""
        return (
            self.query()
            .join(Bet, Bet.game_id == Game.id)
            .filter(
                Bet.outcome == BetOutcome.PENDING,
                Game.start_time <= now,
                Game.status.notin_(GameStatus.UNRESOLVABLE),
            )
            .distinct()
            .order_by(Game.start_time)
            .all()
        )

    def update_status(self, game: Game, status: str, start_time: Optional[datetime] = None) -> bool:
        """Apply a provider status refresh. Returns True when anything changed."""
        changed = False
        if status and status != game.status:
            game.status = status
            changed = True
        if start_time is not None and start_time != game.start_time:
            game.start_time = start_time
            changed = True
        if changed:
            game.updated_at = utc_now()
        return changed
