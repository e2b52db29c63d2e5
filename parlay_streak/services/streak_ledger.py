"""
Streak ledger read model.

A user's ledger is split into streak groups: each group runs until an
event that resets the streak (a parlay or single-bet loss landing on 0).
Insurance deductions never end a group even if they bring the streak down.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from parlay_streak.core.errors import NotFoundError
from parlay_streak.models import StreakEvent, StreakEventType
from parlay_streak.repositories import StreakEventRepository, UserRepository


@dataclass
class StreakGroup:
    id: int
    status: str  # "active" or "ended"
    peak_streak: int
    start_date: datetime
    end_date: Optional[datetime]
    final_streak: int
    events: List[StreakEvent] = field(default_factory=list)


def _ends_group(event: StreakEvent) -> bool:
    return event.type in StreakEventType.RESETS and event.resulting_streak == 0


def group_streak_events(events: Sequence[StreakEvent]) -> List[StreakGroup]:
    """
    Partition ledger events (oldest first) into streak groups.

    Returns:
        Groups newest first; group ids count up from 1 in ledger order
    """
    groups: List[StreakGroup] = []
    current: List[StreakEvent] = []

    def close(run: List[StreakEvent], ended: bool) -> None:
        groups.append(StreakGroup(
            id=len(groups) + 1,
            status="ended" if ended else "active",
            peak_streak=max(e.resulting_streak for e in run),
            start_date=run[0].created_at,
            end_date=run[-1].created_at if ended else None,
            final_streak=run[-1].resulting_streak,
            events=list(run),
        ))

    for event in events:
        current.append(event)
        if _ends_group(event):
            close(current, ended=True)
            current = []
    if current:
        close(current, ended=False)

    groups.reverse()
    return groups


class StreakLedgerService:
    def __init__(self, db: Session):
        self.users = UserRepository(db)
        self.events = StreakEventRepository(db)

    def history(self, user_id: str) -> List[StreakGroup]:
        if self.users.find_by_id(user_id) is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
        return group_streak_events(self.events.history(user_id))
