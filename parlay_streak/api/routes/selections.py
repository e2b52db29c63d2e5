"""
Single selection routes: picking one side of a bet outside a parlay.
"""
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from parlay_streak.api.serializers import serialize_selection
from parlay_streak.core.auth import get_current_user_id
from parlay_streak.core.database import get_db
from parlay_streak.services.parlay_service import ParlayService

router = APIRouter(prefix="/selections", tags=["selections"])


class CreateSelectionRequest(BaseModel):
    bet_id: str
    selected_side: str = Field(..., description="participant_1/participant_2, over/under or yes/no")


@router.get("")
def list_selections(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    selections = ParlayService(db).list_selections(user_id)
    return {"selections": [serialize_selection(s) for s in selections], "count": len(selections)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_selection(
    request: CreateSelectionRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    selection = ParlayService(db).create_selection(user_id, request.bet_id, request.selected_side)
    return {"success": True, "selection": serialize_selection(selection)}


@router.delete("/{selection_id}")
def withdraw_selection(
    selection_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    ParlayService(db).withdraw_selection(selection_id, user_id)
    return {"message": "deleted"}
