"""
Shared FastAPI dependencies.

Tests override ``get_stats_provider`` (and ``get_db``) through
``app.dependency_overrides``.
"""
from typing import Optional

from parlay_streak.services.providers import EspnStatsProvider, GameStatsProvider

_provider: Optional[EspnStatsProvider] = None


def get_stats_provider() -> GameStatsProvider:
    global _provider
    if _provider is None:
        _provider = EspnStatsProvider()
    return _provider


def close_stats_provider() -> None:
    global _provider
    if _provider is not None:
        _provider.close()
        _provider = None
