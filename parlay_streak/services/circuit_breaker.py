"""
Circuit breaker for the game stats provider.

Uses pybreaker. After ``STATS_BREAKER_FAIL_MAX`` consecutive failures the
breaker opens and calls fail fast until ``STATS_BREAKER_RESET_TIMEOUT``
seconds have passed; the next call is then let through to probe recovery.

Circuit Breaker States:
- CLOSED: Requests pass through normally
- OPEN: Requests fail immediately with CircuitBreakerError
- HALF_OPEN: One request allowed to test if the provider has recovered
"""
from pybreaker import CircuitBreaker, CircuitBreakerError, CircuitBreakerListener

from parlay_streak.core.config import settings
from parlay_streak.core.logging import get_logger

logger = get_logger(__name__)


class _LoggingListener(CircuitBreakerListener):
    def state_change(self, cb, old_state, new_state):
        logger.warning(
            f"Circuit breaker '{cb.name}' changed state: {old_state.name} -> {new_state.name}",
            extra={"breaker": cb.name, "state": new_state.name},
        )


def build_stats_breaker(name: str = "stats_provider") -> CircuitBreaker:
    return CircuitBreaker(
        fail_max=settings.STATS_BREAKER_FAIL_MAX,
        reset_timeout=settings.STATS_BREAKER_RESET_TIMEOUT,
        name=name,
        listeners=[_LoggingListener()],
    )


stats_provider_breaker = build_stats_breaker()


def get_breaker_state(breaker: CircuitBreaker = stats_provider_breaker) -> str:
    """'closed', 'open' or 'half-open'."""
    return breaker.current_state


def reset_breaker(breaker: CircuitBreaker = stats_provider_breaker) -> None:
    """Manually close a breaker. Only do this once the provider has recovered."""
    breaker.close()
    logger.warning(f"Circuit breaker '{breaker.name}' manually reset to CLOSED state")


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerError",
    "build_stats_breaker",
    "stats_provider_breaker",
    "get_breaker_state",
    "reset_breaker",
]
