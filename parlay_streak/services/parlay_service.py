"""
Parlay aggregation: building parlays out of bet selections.

A parlay is created with one leg (a draft) and only becomes a real parlay
at two legs. Derived fields (bet_count, parlay_value, insurance_cost) are
recomputed and stored on every change so settlement never re-derives them.

Locking is evaluated on read, not by a timer: ``apply_lock`` compares the
clock with the earliest leg's game and records the transition once. Every
read and write entry point calls it first.
"""
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from parlay_streak.core.config import settings
from parlay_streak.core.errors import (
    BetUnavailableError,
    DuplicateBetError,
    ForbiddenError,
    GameStartedError,
    InsuranceLockedError,
    NotFoundError,
    ParlayLockedError,
    ValidationError,
)
from parlay_streak.core.logging import get_logger
from parlay_streak.models import (
    SELECTABLE_SIDES,
    Bet,
    BetOutcome,
    BetSelection,
    Game,
    GameStatus,
    Parlay,
    ParlayStatus,
    SelectionStatus,
    User,
)
from parlay_streak.repositories import (
    BetRepository,
    ParlayRepository,
    SelectionRepository,
    UserRepository,
)
from parlay_streak.services import parlay_economics
from parlay_streak.utils.timezone import utc_now

logger = get_logger(__name__)


def game_has_started(game: Game, now: datetime) -> bool:
    return game.status != GameStatus.SCHEDULED or now >= game.start_time


class ParlayService:
    """
    Parlay and single-selection operations for one user request.

    Usage:
        service = ParlayService(db)
        parlay = service.start_parlay(user_id, "participant_1", bet_id=bet.id)
        parlay = service.add_selection(parlay.id, user_id, "over", bet_id=other.id)
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.parlays = ParlayRepository(db)
        self.selections = SelectionRepository(db)
        self.bets = BetRepository(db)
        self.users = UserRepository(db)

    # ========================================================================
    # Lookups and guards
    # ========================================================================

    def _get_user(self, user_id: str) -> User:
        user = self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
        return user

    def _get_open_bet(self, bet_id: str, now: datetime) -> Bet:
        bet = self.bets.find_by_id(bet_id)
        if bet is None:
            raise NotFoundError(f"Bet {bet_id} not found", details={"bet_id": bet_id})
        if bet.outcome != BetOutcome.PENDING:
            raise BetUnavailableError(
                "Bet is no longer available",
                details={"bet_id": bet.id, "current_outcome": bet.outcome},
            )
        if game_has_started(bet.game, now):
            raise GameStartedError(
                "Game has already started",
                details={"bet_id": bet.id, "game_id": bet.game_id},
            )
        return bet

    @staticmethod
    def _check_side(bet: Bet, side: str) -> None:
        allowed = SELECTABLE_SIDES.get(bet.bet_type, ())
        if side not in allowed:
            raise ValidationError(
                f"Invalid side '{side}' for {bet.bet_type} bet",
                details={"allowed_sides": list(allowed)},
            )

    def _get_owned_parlay(self, parlay_id: str, user_id: str) -> Parlay:
        parlay = self.parlays.find_with_selections(parlay_id)
        if parlay is None:
            raise NotFoundError(f"Parlay {parlay_id} not found", details={"parlay_id": parlay_id})
        if parlay.user_id != user_id:
            raise ForbiddenError("Parlay belongs to another user")
        return parlay

    def _get_owned_selection(self, selection_id: str, user_id: str) -> BetSelection:
        selection = self.selections.find_by_id(selection_id)
        if selection is None:
            raise NotFoundError(f"Selection {selection_id} not found", details={"selection_id": selection_id})
        if selection.user_id != user_id:
            raise ForbiddenError("Selection belongs to another user")
        return selection

    def _open_parlay(self, parlay_id: str, user_id: str) -> Parlay:
        """Owned parlay with the lock rule applied; deleted drafts are not found."""
        parlay = self._get_owned_parlay(parlay_id, user_id)
        parlay = self.apply_lock(parlay)
        if parlay is None:
            raise NotFoundError(f"Parlay {parlay_id} not found", details={"parlay_id": parlay_id})
        return parlay

    def _release_insurance_lock(self, user: User, parlay: Parlay) -> None:
        if user.last_insured_parlay_id == parlay.id:
            self.users.set_insurance_lock(user, None)

    def _leg_for(self, user_id: str, side: Optional[str], bet_id: Optional[str],
                 existing_selection_id: Optional[str], now: datetime) -> BetSelection:
        """Resolve the new leg: an existing single pick, or a fresh selection."""
        if existing_selection_id:
            selection = self._get_owned_selection(existing_selection_id, user_id)
            if selection.parlay_id is not None:
                raise ValidationError("Selection is already part of a parlay")
            bet = self._get_open_bet(selection.bet_id, now)
            if side and side != selection.selected_side:
                self._check_side(bet, side)
                selection.selected_side = side
            return selection

        if not bet_id:
            raise ValidationError("Either bet_id or existing_selection_id is required")
        bet = self._get_open_bet(bet_id, now)
        if not side:
            raise ValidationError("selected_side is required")
        self._check_side(bet, side)
        if self.selections.find_by_user_and_bet(user_id, bet.id) is not None:
            raise DuplicateBetError("You already have a selection on this bet", details={"bet_id": bet.id})
        return self.selections.create(
            bet_id=bet.id,
            user_id=user_id,
            selected_side=side,
            status=SelectionStatus.SELECTED,
            outcome=BetOutcome.PENDING,
        )

    # ========================================================================
    # Derived fields and locking
    # ========================================================================

    def recompute(self, parlay: Parlay, user: User) -> None:
        """Refresh bet_count, parlay_value and insurance_cost from the legs."""
        self.db.flush()
        self.db.refresh(parlay, attribute_names=["selections"])
        parlay.bet_count = len(parlay.selections)
        parlay.parlay_value = parlay_economics.parlay_value(parlay.bet_count)
        if parlay.insured and not parlay_economics.can_insure(parlay.bet_count):
            parlay.insured = False
            self._release_insurance_lock(user, parlay)
        parlay.insurance_cost = (
            parlay_economics.insurance_cost(parlay.bet_count, user.current_streak)
            if parlay.insured else 0
        )
        parlay.updated_at = self.clock()

    def lock_point(self, parlay: Parlay, now: datetime) -> bool:
        """True once the earliest leg's game has started."""
        games = [s.bet.game for s in parlay.selections]
        if not games:
            return False
        return any(game_has_started(game, now) for game in games)

    def apply_lock(self, parlay: Parlay, now: Optional[datetime] = None) -> Optional[Parlay]:
        """
        Idempotent lock transition.

        Returns:
            The parlay (locked if its lock point has passed), or None when it
            was a one-leg draft and has been dissolved into a single pick
        """
        if parlay.status != ParlayStatus.BUILDING:
            return parlay
        now = now or self.clock()
        if not self.lock_point(parlay, now):
            return parlay

        if parlay.bet_count < parlay_economics.MIN_PARLAY_LEGS:
            for selection in list(parlay.selections):
                selection.parlay_id = None
                if selection.status == SelectionStatus.SELECTED:
                    selection.status = SelectionStatus.LOCKED
                selection.updated_at = now
            self.db.flush()
            self.parlays.delete(parlay)
            self.db.commit()
            logger.info("Dissolved one-leg draft parlay at lock", extra={"parlay_id": parlay.id})
            return None

        if self.parlays.mark_locked(parlay.id, now):
            self.selections.lock_for_parlay(parlay.id, now)
            logger.info(
                "Parlay locked",
                extra={"parlay_id": parlay.id, "user_id": parlay.user_id, "bet_count": parlay.bet_count},
            )
        self.db.commit()
        self.db.refresh(parlay)
        return parlay

    # ========================================================================
    # Parlay operations
    # ========================================================================

    def start_parlay(self, user_id: str, side: Optional[str] = None, bet_id: Optional[str] = None,
                     existing_selection_id: Optional[str] = None) -> Parlay:
        """Create a draft parlay holding one leg."""
        now = self.clock()
        self._get_user(user_id)
        leg = self._leg_for(user_id, side, bet_id, existing_selection_id, now)

        parlay = self.parlays.create(
            user_id=user_id,
            bet_count=1,
            parlay_value=0,
            insured=False,
            insurance_cost=0,
            status=ParlayStatus.BUILDING,
        )
        self.db.flush()
        leg.parlay_id = parlay.id
        leg.updated_at = now
        self.db.commit()
        self.db.refresh(parlay)
        logger.info("Parlay started", extra={"parlay_id": parlay.id, "user_id": user_id})
        return parlay

    def add_selection(self, parlay_id: str, user_id: str, side: Optional[str] = None,
                      bet_id: Optional[str] = None, existing_selection_id: Optional[str] = None) -> Parlay:
        parlay = self._open_parlay(parlay_id, user_id)
        if parlay.status != ParlayStatus.BUILDING:
            raise ParlayLockedError("Parlay is locked", details={"parlay_id": parlay.id, "status": parlay.status})
        if parlay.bet_count >= settings.PARLAY_MAX_LEGS:
            raise ValidationError(
                f"Parlays are limited to {settings.PARLAY_MAX_LEGS} selections",
                details={"max_legs": settings.PARLAY_MAX_LEGS},
            )

        now = self.clock()
        target_bet_id = bet_id
        if existing_selection_id:
            target_bet_id = self._get_owned_selection(existing_selection_id, user_id).bet_id
        if any(s.bet_id == target_bet_id for s in parlay.selections):
            raise DuplicateBetError("Bet is already in this parlay", details={"bet_id": target_bet_id})

        leg = self._leg_for(user_id, side, bet_id, existing_selection_id, now)
        leg.parlay_id = parlay.id
        leg.updated_at = now

        user = self._get_user(user_id)
        self.recompute(parlay, user)
        self.db.commit()
        self.db.refresh(parlay)
        return parlay

    def remove_selection(self, parlay_id: str, user_id: str, selection_id: str) -> Optional[Parlay]:
        """
        Remove one leg.

        Returns:
            The updated parlay, or None when the parlay fell below two legs
            and was deleted together with its remaining selection
        """
        parlay = self._open_parlay(parlay_id, user_id)
        if parlay.status != ParlayStatus.BUILDING:
            raise ParlayLockedError("Parlay is locked", details={"parlay_id": parlay.id, "status": parlay.status})

        selection = next((s for s in parlay.selections if s.id == selection_id), None)
        if selection is None:
            raise NotFoundError(
                f"Selection {selection_id} is not part of this parlay",
                details={"selection_id": selection_id},
            )

        user = self._get_user(user_id)
        remaining = [s for s in parlay.selections if s.id != selection_id]
        self.selections.delete(selection)

        if len(remaining) < parlay_economics.MIN_PARLAY_LEGS:
            for leftover in remaining:
                self.selections.delete(leftover)
            self._release_insurance_lock(user, parlay)
            self.db.flush()
            self.parlays.delete(parlay)
            self.db.commit()
            logger.info("Parlay deleted after removing selection", extra={"parlay_id": parlay_id})
            return None

        self.recompute(parlay, user)
        self.db.commit()
        self.db.refresh(parlay)
        return parlay

    def toggle_insurance(self, parlay_id: str, user_id: str, insured: bool) -> Parlay:
        parlay = self._open_parlay(parlay_id, user_id)
        if parlay.status != ParlayStatus.BUILDING:
            raise ParlayLockedError(
                "Insurance can only be changed while the parlay is building",
                details={"parlay_id": parlay.id, "status": parlay.status},
            )
        if not parlay_economics.can_insure(parlay.bet_count):
            raise ValidationError(
                f"Insurance requires at least {parlay_economics.MIN_INSURED_LEGS} selections",
                details={"bet_count": parlay.bet_count},
            )

        user = self._get_user(user_id)
        if insured and not parlay.insured:
            if user.insurance_locked and user.last_insured_parlay_id != parlay.id:
                raise InsuranceLockedError(
                    "Insurance is locked. Complete an uninsured parlay first.",
                    details={"locked_by_parlay_id": user.last_insured_parlay_id},
                )
            parlay.insured = True
            self.users.set_insurance_lock(user, parlay.id)
        elif not insured and parlay.insured:
            parlay.insured = False
            self._release_insurance_lock(user, parlay)

        self.recompute(parlay, user)
        self.db.commit()
        self.db.refresh(parlay)
        logger.info(
            "Parlay insurance toggled",
            extra={"parlay_id": parlay.id, "insured": parlay.insured, "insurance_cost": parlay.insurance_cost},
        )
        return parlay

    def delete_parlay(self, parlay_id: str, user_id: str) -> None:
        parlay = self._open_parlay(parlay_id, user_id)
        if parlay.status != ParlayStatus.BUILDING:
            raise ParlayLockedError("Parlay is locked", details={"parlay_id": parlay.id, "status": parlay.status})

        user = self._get_user(user_id)
        for selection in list(parlay.selections):
            self.selections.delete(selection)
        self._release_insurance_lock(user, parlay)
        self.db.flush()
        self.parlays.delete(parlay)
        self.db.commit()
        logger.info("Parlay deleted", extra={"parlay_id": parlay_id, "user_id": user_id})

    def get_parlay(self, parlay_id: str, user_id: str) -> Parlay:
        return self._open_parlay(parlay_id, user_id)

    def list_parlays(self, user_id: str, status: Optional[str] = None) -> List[Parlay]:
        now = self.clock()
        result = []
        for parlay in self.parlays.find_for_user(user_id):
            parlay = self.apply_lock(parlay, now)
            if parlay is not None and (status is None or parlay.status == status):
                result.append(parlay)
        return result

    # ========================================================================
    # Single selections
    # ========================================================================

    def create_selection(self, user_id: str, bet_id: str, side: str) -> BetSelection:
        now = self.clock()
        self._get_user(user_id)
        selection = self._leg_for(user_id, side, bet_id, None, now)
        self.db.commit()
        self.db.refresh(selection)
        return selection

    def withdraw_selection(self, selection_id: str, user_id: str) -> None:
        selection = self._get_owned_selection(selection_id, user_id)
        if selection.parlay_id is not None:
            raise ValidationError(
                "Selection is part of a parlay; remove it from the parlay instead",
                details={"parlay_id": selection.parlay_id},
            )
        if selection.status != SelectionStatus.SELECTED or game_has_started(selection.bet.game, self.clock()):
            raise GameStartedError(
                "Selection can no longer be withdrawn",
                details={"selection_id": selection.id, "status": selection.status},
            )
        self.selections.delete(selection)
        self.db.commit()

    def list_selections(self, user_id: str) -> List[BetSelection]:
        return self.selections.find_singles_for_user(user_id)
