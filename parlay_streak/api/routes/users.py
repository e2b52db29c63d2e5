"""
User streak routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from parlay_streak.api.serializers import serialize_group, serialize_streak
from parlay_streak.core.auth import get_current_user_id
from parlay_streak.core.database import get_db
from parlay_streak.core.errors import ForbiddenError, NotFoundError
from parlay_streak.repositories import UserRepository
from parlay_streak.services.streak_ledger import StreakLedgerService

router = APIRouter(prefix="/users", tags=["users"])


def _check_self(user_id: str, current_user_id: str) -> None:
    if user_id != current_user_id:
        raise ForbiddenError("Streak data is only available for your own account")


@router.get("/{user_id}/streak")
def get_streak(user_id: str, current_user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    _check_self(user_id, current_user_id)
    user = UserRepository(db).find_by_id(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
    return serialize_streak(user)


@router.get("/{user_id}/streak-history")
def get_streak_history(
    user_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Streak groups, newest first; the open group (if any) is ``active``."""
    _check_self(user_id, current_user_id)
    groups = StreakLedgerService(db).history(user_id)
    return {"groups": [serialize_group(g) for g in groups]}
