"""
Bet lifecycle: creation and the pending -> terminal transition.

``resolve_bet`` is the one entry point for resolution. The admin route and
the scheduled sweep both call it, and it is safe to call concurrently: the
outcome is written with a conditional update that only matches a pending
bet, so exactly one caller transitions the row and triggers settlement.
The others observe zero matched rows and report success with
``transitioned=False``.

Resolution steps:
1. Timing: the game must have started
2. Idempotency: the bet must still be pending
3. Game state: postponed/canceled games cannot be resolved
4. Fetch a fresh stats snapshot from the provider
5. Evaluate; incomplete data leaves the bet pending
6. Conditional write of the outcome, grading every selection
7. Settlement of affected parlays and single picks
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from parlay_streak.core.errors import (
    AlreadyResolvedError,
    BetNotFoundError,
    GameDataFetchError,
    GameInvalidStatusError,
    GameNotStartedError,
    NotFoundError,
    ResolutionFailedError,
    StreakEngineError,
    UnsupportedBetConfigError,
    ValidationError,
)
from parlay_streak.core.logging import get_logger
from parlay_streak.core.metrics import bet_resolution_duration_seconds, record_resolution
from parlay_streak.models import Bet, BetOutcome, GameStatus
from parlay_streak.models.bet_config import dump_bet_config, parse_bet_config
from parlay_streak.repositories import BetRepository, GameRepository, SelectionRepository
from parlay_streak.services.display_text import generate_display_text
from parlay_streak.services.providers.base import GameStatsProvider, StatsProviderError
from parlay_streak.services.resolution import evaluate
from parlay_streak.services.settlement_service import SettlementResult, SettlementService
from parlay_streak.utils.timezone import isoformat_utc, minutes_until, utc_now

logger = get_logger(__name__)


@dataclass
class ResolveBetResult:
    bet_id: str
    outcome: str
    transitioned: bool
    settlements: List[SettlementResult] = field(default_factory=list)


class BetLifecycleService:
    """
    Usage:
        service = BetLifecycleService(db, provider=EspnStatsProvider())
        result = service.resolve_bet(bet_id)
    """

    def __init__(
        self,
        db: Session,
        provider: Optional[GameStatsProvider] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.provider = provider
        self.clock = clock
        self.bets = BetRepository(db)
        self.games = GameRepository(db)
        self.selections = SelectionRepository(db)

    # ========================================================================
    # Creation
    # ========================================================================

    def create_bet(
        self,
        game_id: str,
        config: Any,
        display_text_override: Optional[str] = None,
    ) -> Bet:
        """
        Validate and store a new bet at the end of the game's priority list.

        Raises:
            ValidationError: malformed config
            NotFoundError: unknown game
        """
        parsed = parse_bet_config(config)
        game = self.games.find_by_id(game_id)
        if game is None:
            raise NotFoundError(f"Game {game_id} not found", details={"game_id": game_id})
        if game.status in GameStatus.UNRESOLVABLE:
            raise ValidationError(
                f"Cannot create bets on a {game.status} game",
                details={"game_id": game.id, "game_status": game.status},
            )

        bet = self.bets.create(
            game_id=game.id,
            bet_type=parsed.type,
            config=dump_bet_config(parsed),
            priority=self.bets.next_priority(game.id),
            outcome=BetOutcome.PENDING,
            display_text=generate_display_text(parsed),
            display_text_override=display_text_override or None,
        )
        self.db.commit()
        self.db.refresh(bet)
        logger.info(
            "Bet created",
            extra={"bet_id": bet.id, "game_id": game.id, "bet_type": bet.bet_type, "priority": bet.priority},
        )
        return bet

    # ========================================================================
    # Resolution
    # ========================================================================

    def _load(self, bet_id: str) -> Bet:
        bet = self.bets.find_by_id(bet_id)
        if bet is None:
            raise BetNotFoundError(bet_id)
        return bet

    def _check_resolvable(self, bet: Bet, now: datetime) -> None:
        game = bet.game
        if game.status == GameStatus.SCHEDULED or now < game.start_time:
            raise GameNotStartedError(
                "Game has not started yet",
                details={
                    "time_until_start_minutes": max(0, minutes_until(game.start_time, now)),
                    "game_start_time": isoformat_utc(game.start_time),
                },
            )
        if bet.outcome != BetOutcome.PENDING:
            raise AlreadyResolvedError(
                "Bet is already resolved",
                details={"current_outcome": bet.outcome},
            )
        if game.status in GameStatus.UNRESOLVABLE:
            raise GameInvalidStatusError(
                f"Cannot resolve a bet on a {game.status} game",
                details={"game_status": game.status},
            )

    def resolve_bet(self, bet_id: str) -> ResolveBetResult:
        """
        Resolve a bet from fresh provider stats.

        Raises:
            BetNotFoundError, GameNotStartedError, AlreadyResolvedError,
            GameInvalidStatusError, GameDataFetchError, ResolutionFailedError,
            UnsupportedBetConfigError
        """
        try:
            with bet_resolution_duration_seconds.time():
                result = self._resolve(bet_id)
        except StreakEngineError as e:
            record_resolution(e.code)
            raise
        record_resolution("RESOLVED" if result.transitioned else "CONCURRENT_NOOP")
        return result

    def _resolve(self, bet_id: str) -> ResolveBetResult:
        now = self.clock()
        bet = self._load(bet_id)
        try:
            self._check_resolvable(bet, now)
        except GameNotStartedError:
            logger.info("Bet resolution skipped: game not started", extra={"bet_id": bet_id})
            raise

        try:
            config = parse_bet_config(bet.config)
        except ValidationError as e:
            # Stored configs were validated at creation; a failure here is a model mismatch
            raise UnsupportedBetConfigError(
                f"Stored config for bet {bet_id} is not a supported bet config",
                details=e.details,
            ) from e
        game = bet.game
        if self.provider is None:
            raise GameDataFetchError("No stats provider configured", details={"bet_id": bet_id})
        try:
            stats = self.provider.get_stats_snapshot(game)
        except StatsProviderError as e:
            logger.error(
                f"Stats fetch failed for bet {bet_id}: {e}",
                extra={"bet_id": bet_id, "game_id": game.id, "error_type": e.error_type},
            )
            raise GameDataFetchError(
                "Failed to fetch game data",
                details={"provider_error": str(e), "retryable": True},
            ) from e

        evaluation = evaluate(config, stats)
        if not evaluation.resolved:
            self.bets.touch_fetched(bet.id, self.clock())
            self.db.commit()
            logger.warning(
                "Bet resolution deferred: stats incomplete",
                extra={"bet_id": bet_id, "reason": evaluation.reason, "missing": evaluation.missing},
            )
            raise ResolutionFailedError(
                "Resolution data incomplete",
                details={"reason": evaluation.reason, "missing": evaluation.missing},
            )

        snapshot = dict(evaluation.stat_snapshot, winning_side=evaluation.winning_side)
        return self._transition(bet.id, evaluation.outcome, evaluation.winning_side, snapshot)

    def void_bet(self, bet_id: str, reason: Optional[str] = None) -> ResolveBetResult:
        """Admin action: void a pending bet (e.g. game canceled). Voided legs count as pushes."""
        bet = self._load(bet_id)
        if bet.outcome != BetOutcome.PENDING:
            raise AlreadyResolvedError(
                "Bet is already resolved",
                details={"current_outcome": bet.outcome},
            )
        snapshot = {"voided": True, "reason": reason}
        result = self._transition(bet.id, BetOutcome.VOID, None, snapshot)
        record_resolution("VOIDED" if result.transitioned else "CONCURRENT_NOOP")
        return result

    def _transition(self, bet_id: str, outcome: str, winning_side: Optional[str],
                    snapshot: Dict[str, Any]) -> ResolveBetResult:
        now = self.clock()
        if not self.bets.mark_resolved(bet_id, outcome, snapshot, now):
            # Another caller resolved the bet first; report what it wrote
            self.db.rollback()
            persisted = self.bets.current_outcome(bet_id)
            logger.info(
                "Bet already transitioned by a concurrent caller",
                extra={"bet_id": bet_id, "outcome": persisted},
            )
            return ResolveBetResult(bet_id, persisted, transitioned=False)

        self.selections.resolve_for_bet(bet_id, outcome, winning_side, now)
        self.db.commit()
        logger.info("Bet resolved", extra={"bet_id": bet_id, "outcome": outcome, "winning_side": winning_side})

        settlements = SettlementService(self.db, clock=self.clock).settle_for_bet(bet_id)
        return ResolveBetResult(bet_id, outcome, transitioned=True, settlements=settlements)
