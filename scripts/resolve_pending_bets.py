#!/usr/bin/env python3
"""
Pending Bet Resolution Sweep

Resolves every pending bet whose game has started, using the same
resolve_bet entry point as the admin route, then settles anything that
was resolved but never applied to a streak. Meant to be run by cron or any
external scheduler; safe to run concurrently with admin resolution.

Usage:
    # One sweep
    python scripts/resolve_pending_bets.py

    # Only look at what would be attempted
    python scripts/resolve_pending_bets.py --dry-run

    # Cap the number of bets per run
    python scripts/resolve_pending_bets.py --limit=200
"""
import argparse
import sys

from dotenv import load_dotenv

from parlay_streak.core.config import settings
from parlay_streak.core.database import SessionLocal, init_db
from parlay_streak.core.logging import configure_logging, get_logger
from parlay_streak.services.providers import EspnStatsProvider
from parlay_streak.services.resolution_sweep import ResolutionSweep

logger = get_logger("resolve_pending_bets")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Resolve pending bets for started games")
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of bets to attempt in this run",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many bets would be attempted without resolving anything",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    load_dotenv()
    configure_logging(
        level="DEBUG" if args.verbose else settings.LOG_LEVEL,
        json_output=settings.LOG_JSON,
    )
    init_db()

    db = SessionLocal()
    provider = EspnStatsProvider()
    try:
        report = ResolutionSweep(db, provider).run(limit=args.limit, dry_run=args.dry_run)
    except Exception as e:
        logger.error(f"Resolution sweep failed: {e}")
        db.rollback()
        raise
    finally:
        provider.close()
        db.close()

    logger.info("=" * 60)
    logger.info(f"Games refreshed:        {report.games_refreshed}")
    logger.info(f"Bets attempted:         {report.bets_attempted}")
    logger.info(f"Bets resolved:          {report.bets_resolved}")
    for code, count in sorted(report.skipped.items()):
        logger.info(f"Skipped ({code}): {count}")
    logger.info(f"Recovered settlements:  {report.recovered_settlements}")
    logger.info("=" * 60)

    if report.fatal:
        logger.error(f"Bets with unsupported configs: {', '.join(report.fatal)}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
