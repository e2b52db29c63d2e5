"""
User and streak ledger repositories.

Every streak mutation is a compare-and-swap on ``User.streak_version``; the
ledger event appended in the same transaction takes the new version as its
sequence number, so ``(user_id, sequence)`` uniqueness backs the CAS up.
"""
from datetime import datetime
from typing import List, Optional

from parlay_streak.models import StreakEvent, User
from parlay_streak.repositories.base import BaseRepository
from parlay_streak.utils.timezone import utc_now


class UserRepository(BaseRepository[User]):
    """Repository for user streak state."""

    def __init__(self, db):
        super().__init__(User, db)

    def compare_and_swap_streak(
        self,
        user_id: str,
        expected_version: int,
        current_streak: int,
        longest_streak: int,
        **extra,
    ) -> int:
        """
        Write new streak values if nobody else changed the streak meanwhile.

        Args:
            expected_version: ``streak_version`` the caller read
            extra: additional User columns to write in the same statement
                (e.g. ``insurance_locked``)

        Returns:
            1 on success, 0 when the version moved (caller must re-read)
        """
        values = {
            User.current_streak: current_streak,
            User.longest_streak: longest_streak,
            User.streak_version: expected_version + 1,
            User.updated_at: utc_now(),
        }
        for name, value in extra.items():
            values[getattr(User, name)] = value
        return self.update_where(
            values,
            User.id == user_id,
            User.streak_version == expected_version,
        )

    def set_insurance_lock(self, user: User, parlay_id: Optional[str]) -> None:
        """Hold the insurance lock for ``parlay_id``, or release it when None."""
        user.insurance_locked = parlay_id is not None
        user.last_insured_parlay_id = parlay_id
        user.updated_at = utc_now()


class StreakEventRepository(BaseRepository[StreakEvent]):
    """Append-only access to the streak ledger."""

    def __init__(self, db):
        super().__init__(StreakEvent, db)

    def append(
        self,
        user_id: str,
        sequence: int,
        type: str,
        points_change: int,
        resulting_streak: int,
        created_at: datetime,
        parlay_id: Optional[str] = None,
        bet_selection_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> StreakEvent:
        return self.create(
            user_id=user_id,
            sequence=sequence,
            type=type,
            points_change=points_change,
            resulting_streak=resulting_streak,
            parlay_id=parlay_id,
            bet_selection_id=bet_selection_id,
            note=note,
            created_at=created_at,
        )

    def history(self, user_id: str) -> List[StreakEvent]:
        """All events for a user in ledger order (oldest first)."""
        return (
            self.query()
            .filter(StreakEvent.user_id == user_id)
            .order_by(StreakEvent.sequence)
            .all()
        )

    def latest(self, user_id: str) -> Optional[StreakEvent]:
        return (
            self.query()
            .filter(StreakEvent.user_id == user_id)
            .order_by(StreakEvent.sequence.desc())
            .first()
        )
