"""
Bet Repository.

``mark_resolved`` is the single conditional update every resolution path
goes through: it only matches while the bet is still pending, so exactly one
concurrent caller transitions the row.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from parlay_streak.models import Bet, BetOutcome, Game
from parlay_streak.repositories.base import BaseRepository


class BetRepository(BaseRepository[Bet]):
    """Repository for bet data access."""

    def __init__(self, db):
        super().__init__(Bet, db)

    def find_pending_started(self, now: datetime, limit: Optional[int] = None) -> List[Bet]:
        """Pending bets whose game has started, oldest game first."""
        query = (
            self.query()
            .join(Game, Game.id == Bet.game_id)
            .filter(Bet.outcome == BetOutcome.PENDING, Game.start_time <= now)
            .order_by(Game.start_time, Bet.priority)
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def next_priority(self, game_id: str) -> int:
        """Priorities are dense per game, starting at 1."""
        current = self.db.query(func.max(Bet.priority)).filter(Bet.game_id == game_id).scalar()
        return (current or 0) + 1

    def mark_resolved(
        self,
        bet_id: str,
        outcome: str,
        snapshot: Optional[Dict[str, Any]],
        now: datetime,
    ) -> int:
        """
        Transition a pending bet to a terminal outcome.

        Returns:
            1 if this call performed the transition, 0 if the bet was no
            longer pending
        """
        return self.update_where(
            {
                Bet.outcome: outcome,
                Bet.resolution_snapshot: snapshot,
                Bet.resolved_at: now,
                Bet.last_fetched_at: now,
                Bet.updated_at: now,
            },
            Bet.id == bet_id,
            Bet.outcome == BetOutcome.PENDING,
        )

    def touch_fetched(self, bet_id: str, now: datetime) -> None:
        self.update_where({Bet.last_fetched_at: now}, Bet.id == bet_id)

    def current_outcome(self, bet_id: str) -> Optional[str]:
        return self.db.query(Bet.outcome).filter(Bet.id == bet_id).scalar()
