"""
Bet API Routes (admin).

Bet creation, manual resolution and voiding. Manual resolution runs the
same ``resolve_bet`` path as the scheduled sweep.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from parlay_streak.api.dependencies import get_stats_provider
from parlay_streak.api.serializers import serialize_bet
from parlay_streak.core.auth import verify_admin_key
from parlay_streak.core.database import get_db
from parlay_streak.services.bet_lifecycle import BetLifecycleService, ResolveBetResult
from parlay_streak.services.providers import GameStatsProvider

router = APIRouter(prefix="/bets", tags=["bets"], dependencies=[Depends(verify_admin_key)])


class CreateBetRequest(BaseModel):
    """Request to create a bet on a game."""
    game_id: str = Field(..., description="Game the bet is written against")
    config: Dict[str, Any] = Field(..., description="COMPARISON, THRESHOLD or EVENT config")
    display_text_override: Optional[str] = Field(None, max_length=255)


class VoidBetRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


def _resolution_response(result: ResolveBetResult) -> dict:
    return {
        "success": True,
        "bet_id": result.bet_id,
        "outcome": result.outcome,
        "transitioned": result.transitioned,
        "settlements": [
            {
                "kind": s.kind,
                "id": s.target_id,
                "outcome": s.outcome,
                "event_type": s.event_type,
                "points_change": s.points_change,
                "resulting_streak": s.resulting_streak,
            }
            for s in result.settlements
        ],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_bet(request: CreateBetRequest, db: Session = Depends(get_db)):
    """Validate the config and store the bet with the next priority for its game."""
    bet = BetLifecycleService(db).create_bet(
        request.game_id,
        request.config,
        display_text_override=request.display_text_override,
    )
    return {"success": True, "bet": serialize_bet(bet)}


@router.post("/{bet_id}/resolve")
def resolve_bet(
    bet_id: str,
    db: Session = Depends(get_db),
    provider: GameStatsProvider = Depends(get_stats_provider),
):
    """
    Resolve a bet from live provider stats.

    Losing a race against a concurrent resolution is reported as success
    with ``transitioned: false``.
    """
    result = BetLifecycleService(db, provider=provider).resolve_bet(bet_id)
    return _resolution_response(result)


@router.post("/{bet_id}/void")
def void_bet(bet_id: str, request: Optional[VoidBetRequest] = None, db: Session = Depends(get_db)):
    result = BetLifecycleService(db).void_bet(bet_id, reason=request.reason if request else None)
    return _resolution_response(result)
