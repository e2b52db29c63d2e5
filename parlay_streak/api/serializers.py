"""
Response shapes for the REST API.

Field names are snake_case; datetimes are ISO-8601 UTC with a trailing Z.
"""
from typing import Any, Dict, Optional

from parlay_streak.models import Bet, BetSelection, Game, Parlay, StreakEvent, User
from parlay_streak.services.streak_ledger import StreakGroup
from parlay_streak.utils.timezone import isoformat_utc


def serialize_game(game: Game) -> Dict[str, Any]:
    return {
        "id": game.id,
        "external_id": game.external_id,
        "sport": game.sport,
        "league": game.league,
        "home_team_name": game.home_team_name,
        "away_team_name": game.away_team_name,
        "start_time": isoformat_utc(game.start_time),
        "status": game.status,
    }


def serialize_bet(bet: Bet, include_game: bool = False) -> Dict[str, Any]:
    data = {
        "id": bet.id,
        "game_id": bet.game_id,
        "bet_type": bet.bet_type,
        "config": bet.config,
        "priority": bet.priority,
        "outcome": bet.outcome,
        "display_text": bet.label,
        "resolved_at": isoformat_utc(bet.resolved_at),
    }
    if include_game:
        data["game"] = serialize_game(bet.game)
    return data


def serialize_selection(selection: BetSelection) -> Dict[str, Any]:
    return {
        "id": selection.id,
        "bet_id": selection.bet_id,
        "parlay_id": selection.parlay_id,
        "selected_side": selection.selected_side,
        "status": selection.status,
        "outcome": selection.outcome,
        "bet": serialize_bet(selection.bet, include_game=True),
        "created_at": isoformat_utc(selection.created_at),
    }


def serialize_parlay(parlay: Parlay) -> Dict[str, Any]:
    return {
        "id": parlay.id,
        "user_id": parlay.user_id,
        "bet_count": parlay.bet_count,
        "parlay_value": parlay.parlay_value,
        "insured": parlay.insured,
        "insurance_cost": parlay.insurance_cost,
        "status": parlay.status,
        "locked_at": isoformat_utc(parlay.locked_at),
        "resolved_at": isoformat_utc(parlay.resolved_at),
        "created_at": isoformat_utc(parlay.created_at),
        "selections": [serialize_selection(s) for s in parlay.selections],
    }


def serialize_streak(user: User) -> Dict[str, Any]:
    return {
        "user_id": user.id,
        "current_streak": user.current_streak,
        "longest_streak": user.longest_streak,
        "insurance_locked": user.insurance_locked,
    }


def serialize_event(event: StreakEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "sequence": event.sequence,
        "type": event.type,
        "points_change": event.points_change,
        "resulting_streak": event.resulting_streak,
        "date": isoformat_utc(event.created_at),
        "parlay_id": event.parlay_id,
        "bet_selection_id": event.bet_selection_id,
    }


def serialize_group(group: StreakGroup) -> Dict[str, Optional[Any]]:
    return {
        "id": group.id,
        "status": group.status,
        "peak_streak": group.peak_streak,
        "final_streak": group.final_streak,
        "start_date": isoformat_utc(group.start_date),
        "end_date": isoformat_utc(group.end_date),
        "events": [serialize_event(e) for e in group.events],
    }
