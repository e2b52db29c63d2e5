"""
Resolution sweep run by the external scheduler.

One pass:
1. Refresh status/start time for started games that still have pending bets
2. Call ``BetLifecycleService.resolve_bet`` for each pending bet on them
3. Re-run settlement for anything resolved but not yet applied

The sweep has no resolution logic of its own; it shares the admin path.
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from parlay_streak.core.errors import StreakEngineError, UnsupportedBetConfigError
from parlay_streak.core.logging import get_logger
from parlay_streak.repositories import BetRepository, GameRepository
from parlay_streak.services.bet_lifecycle import BetLifecycleService
from parlay_streak.services.providers.base import GameStatsProvider, StatsProviderError
from parlay_streak.services.settlement_service import SettlementService
from parlay_streak.utils.timezone import to_naive_utc, utc_now

logger = get_logger(__name__)


@dataclass
class SweepReport:
    games_refreshed: int = 0
    bets_attempted: int = 0
    bets_resolved: int = 0
    skipped: Dict[str, int] = field(default_factory=dict)
    fatal: List[str] = field(default_factory=list)
    recovered_settlements: int = 0


class ResolutionSweep:
    def __init__(self, db: Session, provider: GameStatsProvider,
                 clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.provider = provider
        self.clock = clock
        self.games = GameRepository(db)
        self.bets = BetRepository(db)

    def refresh_games(self, now: datetime) -> int:
        refreshed = 0
        for game in self.games.find_started_with_pending_bets(now):
            try:
                status = self.provider.get_game_status(game)
            except StatsProviderError as e:
                logger.warning(
                    f"Could not refresh game {game.id}: {e}",
                    extra={"game_id": game.id, "error_type": e.error_type},
                )
                continue
            start_time = to_naive_utc(status.start_time) if status.start_time else None
            if self.games.update_status(game, status.status, start_time):
                refreshed += 1
        self.db.commit()
        return refreshed

    def run(self, limit: Optional[int] = None, dry_run: bool = False) -> SweepReport:
        report = SweepReport()
        now = self.clock()
        if not dry_run:
            report.games_refreshed = self.refresh_games(now)

        pending = self.bets.find_pending_started(now, limit=limit)
        if dry_run:
            report.bets_attempted = len(pending)
            return report

        lifecycle = BetLifecycleService(self.db, provider=self.provider, clock=self.clock)
        skipped = Counter()
        for bet_id in [bet.id for bet in pending]:
            report.bets_attempted += 1
            try:
                result = lifecycle.resolve_bet(bet_id)
            except UnsupportedBetConfigError as e:
                logger.error(f"Unsupported bet config on bet {bet_id}: {e.message}", extra={"bet_id": bet_id})
                report.fatal.append(bet_id)
                continue
            except StreakEngineError as e:
                skipped[e.code] += 1
                continue
            if result.transitioned:
                report.bets_resolved += 1
            else:
                skipped["CONCURRENT_NOOP"] += 1
        report.skipped = dict(skipped)

        report.recovered_settlements = len(SettlementService(self.db, clock=self.clock).settle_pending())
        logger.info(
            "Resolution sweep finished",
            extra={
                "games_refreshed": report.games_refreshed,
                "bets_attempted": report.bets_attempted,
                "bets_resolved": report.bets_resolved,
                "skipped": report.skipped,
                "fatal": len(report.fatal),
            },
        )
        return report
