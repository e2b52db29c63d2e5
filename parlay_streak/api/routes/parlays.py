"""
Parlay API Routes.

Building, editing, insuring and deleting a user's parlays. Every read
applies the lock rule first, so a parlay whose earliest game has started is
reported as locked.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from parlay_streak.api.serializers import serialize_parlay
from parlay_streak.core.auth import get_current_user_id
from parlay_streak.core.database import get_db
from parlay_streak.services.parlay_service import ParlayService

router = APIRouter(prefix="/parlays", tags=["parlays"])


class SelectionInput(BaseModel):
    """A new leg: either a bet and side, or an existing single pick."""
    bet_id: Optional[str] = None
    existing_selection_id: Optional[str] = None
    selected_side: Optional[str] = Field(None, description="participant_1/participant_2, over/under or yes/no")


class UpdateParlayRequest(BaseModel):
    insured: bool


@router.post("", status_code=status.HTTP_201_CREATED)
def start_parlay(
    request: SelectionInput,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    parlay = ParlayService(db).start_parlay(
        user_id,
        request.selected_side,
        bet_id=request.bet_id,
        existing_selection_id=request.existing_selection_id,
    )
    return {"success": True, "parlay": serialize_parlay(parlay)}


@router.get("")
def list_parlays(
    status_filter: Optional[str] = Query(None, alias="status", description="building, locked, won, lost, push"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    parlays = ParlayService(db).list_parlays(user_id, status=status_filter)
    return {"parlays": [serialize_parlay(p) for p in parlays], "count": len(parlays)}


@router.get("/{parlay_id}")
def get_parlay(parlay_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    parlay = ParlayService(db).get_parlay(parlay_id, user_id)
    return {"success": True, "parlay": serialize_parlay(parlay)}


@router.post("/{parlay_id}/selections")
def add_selection(
    parlay_id: str,
    request: SelectionInput,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    parlay = ParlayService(db).add_selection(
        parlay_id,
        user_id,
        request.selected_side,
        bet_id=request.bet_id,
        existing_selection_id=request.existing_selection_id,
    )
    return {"success": True, "parlay": serialize_parlay(parlay)}


@router.delete("/{parlay_id}/selections/{selection_id}")
def remove_selection(
    parlay_id: str,
    selection_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Returns the updated parlay, or ``{"message": "deleted"}`` when it fell below two legs."""
    parlay = ParlayService(db).remove_selection(parlay_id, user_id, selection_id)
    if parlay is None:
        return {"message": "deleted"}
    return {"success": True, "parlay": serialize_parlay(parlay)}


@router.patch("/{parlay_id}")
def update_parlay(
    parlay_id: str,
    request: UpdateParlayRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    parlay = ParlayService(db).toggle_insurance(parlay_id, user_id, request.insured)
    return {"success": True, "parlay": serialize_parlay(parlay)}


@router.delete("/{parlay_id}")
def delete_parlay(parlay_id: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    ParlayService(db).delete_parlay(parlay_id, user_id)
    return {"message": "deleted"}
