"""
Bet Selection Repository.
"""
from datetime import datetime
from typing import List, Optional

from parlay_streak.models import BetOutcome, BetSelection, SelectionStatus
from parlay_streak.repositories.base import BaseRepository


class SelectionRepository(BaseRepository[BetSelection]):
    """Repository for bet selection data access."""

    def __init__(self, db):
        super().__init__(BetSelection, db)

    def find_by_user_and_bet(self, user_id: str, bet_id: str) -> Optional[BetSelection]:
        return self.where_first(BetSelection.user_id == user_id, BetSelection.bet_id == bet_id)

    def find_for_bet(self, bet_id: str) -> List[BetSelection]:
        return self.where(BetSelection.bet_id == bet_id)

    def find_singles_for_user(self, user_id: str) -> List[BetSelection]:
        return (
            self.query()
            .filter(BetSelection.user_id == user_id, BetSelection.parlay_id.is_(None))
            .order_by(BetSelection.created_at)
            .all()
        )

    def parlay_ids_for_bet(self, bet_id: str) -> List[str]:
        rows = (
            self.db.query(BetSelection.parlay_id)
            .filter(BetSelection.bet_id == bet_id, BetSelection.parlay_id.isnot(None))
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    def unsettled_single_ids(self, bet_id: Optional[str] = None) -> List[str]:
        """Resolved single selections whose streak effect has not been applied."""
        query = self.db.query(BetSelection.id).filter(
            BetSelection.parlay_id.is_(None),
            BetSelection.settled_at.is_(None),
            BetSelection.outcome.in_(BetOutcome.TERMINAL),
        )
        if bet_id is not None:
            query = query.filter(BetSelection.bet_id == bet_id)
        return [row[0] for row in query.order_by(BetSelection.created_at).all()]

    def resolve_for_bet(self, bet_id: str, bet_outcome: str, winning_side: Optional[str], now: datetime) -> int:
        """
        Grade every selection of a bet against the winning side.

        Push and void carry over unchanged; otherwise a selection wins when
        it picked the winning side.
        """
        selections = self.find_for_bet(bet_id)
        for selection in selections:
            if bet_outcome in BetOutcome.NEUTRAL:
                selection.outcome = bet_outcome
            elif selection.selected_side == winning_side:
                selection.outcome = BetOutcome.WIN
            else:
                selection.outcome = BetOutcome.LOSS
            selection.status = SelectionStatus.RESOLVED
            selection.updated_at = now
        return len(selections)

    def lock_for_parlay(self, parlay_id: str, now: datetime) -> int:
        return self.update_where(
            {BetSelection.status: SelectionStatus.LOCKED, BetSelection.updated_at: now},
            BetSelection.parlay_id == parlay_id,
            BetSelection.status == SelectionStatus.SELECTED,
        )

    def mark_settled(self, selection_id: str, now: datetime) -> int:
        """Claim a single selection for settlement; 0 if already settled."""
        return self.update_where(
            {BetSelection.settled_at: now, BetSelection.updated_at: now},
            BetSelection.id == selection_id,
            BetSelection.settled_at.is_(None),
        )
