"""
Parlay Repository.

Status transitions are conditional updates: locking is guarded on
``locked_at IS NULL`` and settlement on the parlay not being terminal yet.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import selectinload

from parlay_streak.models import BetSelection, Parlay, ParlayStatus
from parlay_streak.repositories.base import BaseRepository


class ParlayRepository(BaseRepository[Parlay]):
    """Repository for parlay data access."""

    def __init__(self, db):
        super().__init__(Parlay, db)

    def find_with_selections(self, parlay_id: str) -> Optional[Parlay]:
        return (
            self.query()
            .options(selectinload(Parlay.selections).selectinload(BetSelection.bet))
            .filter(Parlay.id == parlay_id)
            .first()
        )

    def find_for_user(self, user_id: str, status: Optional[str] = None) -> List[Parlay]:
        query = self.query().options(selectinload(Parlay.selections)).filter(Parlay.user_id == user_id)
        if status:
            query = query.filter(Parlay.status == status)
        return query.order_by(Parlay.created_at.desc()).all()

    def find_open_ids(self) -> List[str]:
        rows = self.db.query(Parlay.id).filter(Parlay.status.in_(ParlayStatus.OPEN)).all()
        return [row[0] for row in rows]

    def mark_locked(self, parlay_id: str, now: datetime) -> int:
        """Record the lock transition exactly once."""
        return self.update_where(
            {Parlay.status: ParlayStatus.LOCKED, Parlay.locked_at: now, Parlay.updated_at: now},
            Parlay.id == parlay_id,
            Parlay.locked_at.is_(None),
            Parlay.status == ParlayStatus.BUILDING,
        )

    def mark_settled(self, parlay_id: str, status: str, now: datetime) -> int:
        """Move an open parlay to a terminal status; 0 if someone else already did."""
        return self.update_where(
            {
                Parlay.status: status,
                Parlay.resolved_at: now,
                Parlay.locked_at: func.coalesce(Parlay.locked_at, now),
                Parlay.updated_at: now,
            },
            Parlay.id == parlay_id,
            Parlay.status.notin_(ParlayStatus.TERMINAL),
        )

    def status_of(self, parlay_id: str) -> Optional[str]:
        return self.db.query(Parlay.status).filter(Parlay.id == parlay_id).scalar()
