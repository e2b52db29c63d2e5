"""
Settlement: turning resolved legs into streak changes.

Triggered after a bet resolves. For every parlay containing that bet, and
every single (non-parlay) selection on it, settlement checks whether all
legs are terminal and, if so, applies the streak effect:

    parlay won          parlay_win          +value (minus insurance cost if insured)
    parlay lost         parlay_loss         streak reset to 0
    parlay lost insured insurance_deducted  -insurance_cost, never below 0
    all legs push/void  (no event)          status push
    single win          bet_win             +1
    single loss         bet_loss            streak reset to 0

The insured-loss deduction is clamped at zero, so the ledger records
``points_change = -min(streak, insurance_cost)``: a user on a streak of 2
losing an insured parlay that cost 3 sees -2, not -3.

Each settlement commits one transaction holding the parlay (or selection)
status claim, the user streak compare-and-swap and the ledger event. When
the streak CAS loses to a concurrent settlement for the same user the whole
transaction is rolled back and retried against the fresh streak.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parlay_streak.core.config import settings
from parlay_streak.core.errors import StateError
from parlay_streak.core.logging import get_logger
from parlay_streak.core.metrics import record_settlement, streak_cas_retries_total
from parlay_streak.models import (
    BetOutcome,
    Parlay,
    ParlayStatus,
    StreakEventType,
    User,
)
from parlay_streak.repositories import (
    ParlayRepository,
    SelectionRepository,
    StreakEventRepository,
    UserRepository,
)
from parlay_streak.services import parlay_economics
from parlay_streak.services.parlay_service import ParlayService
from parlay_streak.utils.timezone import utc_now

logger = get_logger(__name__)


@dataclass
class SettlementResult:
    kind: str  # "parlay" or "single"
    target_id: str
    user_id: str
    outcome: str
    event_type: Optional[str] = None
    points_change: int = 0
    resulting_streak: Optional[int] = None


@dataclass
class _StreakChange:
    event_type: str
    points_change: int
    resulting_streak: int


def parlay_outcome(leg_outcomes: List[str]) -> Optional[str]:
    """
    Parlay status from its legs, or None while any leg is pending.

    Push and void legs drop out; with nothing left the parlay is a push.
    """
    if any(outcome == BetOutcome.PENDING for outcome in leg_outcomes):
        return None
    counted = [o for o in leg_outcomes if o not in BetOutcome.NEUTRAL]
    if not counted:
        return ParlayStatus.PUSH
    if BetOutcome.LOSS in counted:
        return ParlayStatus.LOST
    return ParlayStatus.WON


def parlay_streak_change(parlay: Parlay, status: str, previous: int) -> Optional[_StreakChange]:
    if status == ParlayStatus.WON:
        gain = parlay.parlay_value - (parlay.insurance_cost if parlay.insured else 0)
        return _StreakChange(StreakEventType.PARLAY_WIN, gain, previous + gain)
    if status == ParlayStatus.LOST and parlay.insured:
        resulting = max(0, previous - parlay.insurance_cost)
        return _StreakChange(StreakEventType.INSURANCE_DEDUCTED, resulting - previous, resulting)
    if status == ParlayStatus.LOST:
        return _StreakChange(StreakEventType.PARLAY_LOSS, -previous, 0)
    return None


def single_streak_change(outcome: str, previous: int) -> Optional[_StreakChange]:
    if outcome == BetOutcome.WIN:
        gain = parlay_economics.SINGLE_BET_VALUE
        return _StreakChange(StreakEventType.BET_WIN, gain, previous + gain)
    if outcome == BetOutcome.LOSS:
        return _StreakChange(StreakEventType.BET_LOSS, -previous, 0)
    return None


class SettlementService:
    """
    Applies resolved bets to parlays, single picks and user streaks.

    Usage:
        results = SettlementService(db).settle_for_bet(bet_id)
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now,
                 max_retries: Optional[int] = None):
        self.db = db
        self.clock = clock
        self.max_retries = max_retries or settings.SETTLEMENT_MAX_RETRIES
        self.parlays = ParlayRepository(db)
        self.selections = SelectionRepository(db)
        self.users = UserRepository(db)
        self.events = StreakEventRepository(db)

    # ========================================================================
    # Entry points
    # ========================================================================

    def settle_for_bet(self, bet_id: str) -> List[SettlementResult]:
        """Settle everything the resolution of ``bet_id`` may have completed."""
        results = []
        parlay_service = ParlayService(self.db, clock=self.clock)
        for parlay_id in self.selections.parlay_ids_for_bet(bet_id):
            parlay = self.parlays.find_by_id(parlay_id)
            if parlay is None:
                continue
            # A one-leg draft dissolves into a single pick here
            if parlay_service.apply_lock(parlay) is None:
                continue
            result = self.settle_parlay(parlay_id)
            if result is not None:
                results.append(result)

        for selection_id in self.selections.unsettled_single_ids(bet_id):
            result = self.settle_single(selection_id)
            if result is not None:
                results.append(result)
        return results

    def settle_pending(self) -> List[SettlementResult]:
        """
        Recovery sweep: settle every open parlay whose legs are all terminal
        and every resolved single selection that was never applied.
        """
        results = []
        for parlay_id in self.parlays.find_open_ids():
            result = self.settle_parlay(parlay_id)
            if result is not None:
                results.append(result)
        for selection_id in self.selections.unsettled_single_ids():
            result = self.settle_single(selection_id)
            if result is not None:
                results.append(result)
        if results:
            logger.info(f"Recovered {len(results)} pending settlements")
        return results

    # ========================================================================
    # Parlays
    # ========================================================================

    def settle_parlay(self, parlay_id: str) -> Optional[SettlementResult]:
        """
        Settle one parlay if all of its legs are terminal.

        Returns:
            The applied result, or None when the parlay is not ready or was
            already settled by someone else
        """
        for attempt in range(self.max_retries):
            self.db.expire_all()
            parlay = self.parlays.find_by_id(parlay_id)
            if parlay is None or parlay.status in ParlayStatus.TERMINAL:
                return None
            if parlay.bet_count < parlay_economics.MIN_PARLAY_LEGS:
                return None

            status = parlay_outcome([s.outcome for s in parlay.selections])
            if status is None:
                return None

            user = self.users.find_by_id(parlay.user_id)
            now = self.clock()
            if not self.parlays.mark_settled(parlay.id, status, now):
                self.db.rollback()
                return None

            change = parlay_streak_change(parlay, status, user.current_streak)
            if change is None:
                # All legs pushed: no streak change and the insurance lock stays as it is
                self.db.commit()
                record_settlement("parlay", status)
                logger.info("Parlay settled as push", extra={"parlay_id": parlay.id, "user_id": user.id})
                return SettlementResult("parlay", parlay.id, user.id, status)

            lock_fields = self._insurance_lock_after(user, parlay)
            if self._apply_streak_change(user, change, now, parlay_id=parlay.id, extra=lock_fields):
                record_settlement("parlay", status)
                logger.info(
                    "Parlay settled",
                    extra={
                        "parlay_id": parlay.id,
                        "user_id": user.id,
                        "status": status,
                        "event_type": change.event_type,
                        "points_change": change.points_change,
                        "resulting_streak": change.resulting_streak,
                    },
                )
                return SettlementResult(
                    "parlay", parlay.id, user.id, status,
                    change.event_type, change.points_change, change.resulting_streak,
                )
            self._note_retry(parlay.user_id, attempt)

        raise StateError(
            "Could not settle parlay: streak kept changing concurrently",
            code="SETTLEMENT_CONFLICT",
            details={"parlay_id": parlay_id},
        )

    def _insurance_lock_after(self, user: User, parlay: Parlay) -> dict:
        """
        User column updates releasing the insurance lock, if this settlement
        frees it: an uninsured parlay settled won or lost while the insured one that
        holds the lock is no longer open.
        """
        if not user.insurance_locked or parlay.insured:
            return {}
        holder = user.last_insured_parlay_id
        if holder is not None and self.parlays.status_of(holder) in ParlayStatus.OPEN:
            return {}
        return {"insurance_locked": False, "last_insured_parlay_id": None}

    # ========================================================================
    # Single selections
    # ========================================================================

    def settle_single(self, selection_id: str) -> Optional[SettlementResult]:
        for attempt in range(self.max_retries):
            self.db.expire_all()
            selection = self.selections.find_by_id(selection_id)
            if (
                selection is None
                or selection.parlay_id is not None
                or selection.settled_at is not None
                or selection.outcome not in BetOutcome.TERMINAL
            ):
                return None

            user = self.users.find_by_id(selection.user_id)
            now = self.clock()
            if not self.selections.mark_settled(selection.id, now):
                self.db.rollback()
                return None

            change = single_streak_change(selection.outcome, user.current_streak)
            if change is None:
                self.db.commit()
                record_settlement("single", selection.outcome)
                return SettlementResult("single", selection.id, user.id, selection.outcome)

            if self._apply_streak_change(user, change, now, bet_selection_id=selection.id):
                record_settlement("single", selection.outcome)
                logger.info(
                    "Single selection settled",
                    extra={
                        "selection_id": selection.id,
                        "user_id": user.id,
                        "event_type": change.event_type,
                        "resulting_streak": change.resulting_streak,
                    },
                )
                return SettlementResult(
                    "single", selection.id, user.id, selection.outcome,
                    change.event_type, change.points_change, change.resulting_streak,
                )
            self._note_retry(selection.user_id, attempt)

        raise StateError(
            "Could not settle selection: streak kept changing concurrently",
            code="SETTLEMENT_CONFLICT",
            details={"selection_id": selection_id},
        )

    # ========================================================================
    # Streak mutation
    # ========================================================================

    def _apply_streak_change(self, user: User, change: _StreakChange, now: datetime,
                             parlay_id: Optional[str] = None,
                             bet_selection_id: Optional[str] = None,
                             extra: Optional[dict] = None) -> bool:
        """
        CAS the user's streak and append the ledger event, then commit.

        Returns:
            False (after rolling back) when the streak moved underneath us
        """
        expected = user.streak_version
        longest = max(user.longest_streak, change.resulting_streak)
        if not self.users.compare_and_swap_streak(
            user.id, expected, change.resulting_streak, longest, **(extra or {})
        ):
            self.db.rollback()
            return False

        self.events.append(
            user_id=user.id,
            sequence=expected + 1,
            type=change.event_type,
            points_change=change.points_change,
            resulting_streak=change.resulting_streak,
            created_at=now,
            parlay_id=parlay_id,
            bet_selection_id=bet_selection_id,
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def _note_retry(self, user_id: str, attempt: int) -> None:
        streak_cas_retries_total.inc()
        logger.debug(
            "Streak changed concurrently, retrying settlement",
            extra={"user_id": user_id, "attempt": attempt + 1},
        )
