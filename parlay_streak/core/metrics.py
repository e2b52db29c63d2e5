"""
Prometheus metrics for the settlement engine.

Metrics exposed:
- Bet resolution attempts by result code
- Parlay and single-bet settlements by outcome
- Game stats provider fetch success/failure counters
- Compare-and-swap retries on the user streak counter
"""
from prometheus_client import Counter, Histogram

# Resolution
bet_resolution_attempts_total = Counter(
    "bet_resolution_attempts_total",
    "Bet resolution attempts by result code",
    ["result"]
)

bet_resolution_duration_seconds = Histogram(
    "bet_resolution_duration_seconds",
    "Time spent resolving a single bet, including the stats fetch"
)

# Settlement
settlements_total = Counter(
    "settlements_total",
    "Settled parlays and single selections",
    ["kind", "outcome"]
)

streak_cas_retries_total = Counter(
    "streak_cas_retries_total",
    "Retries caused by a concurrent update of a user's streak"
)

# Stats provider
stats_provider_requests_success_total = Counter(
    "stats_provider_requests_success_total",
    "Successful game stats provider requests"
)

stats_provider_requests_failure_total = Counter(
    "stats_provider_requests_failure_total",
    "Failed game stats provider requests",
    ["error_type"]
)


def record_resolution(result: str) -> None:
    bet_resolution_attempts_total.labels(result=result).inc()


def record_settlement(kind: str, outcome: str) -> None:
    settlements_total.labels(kind=kind, outcome=outcome).inc()


def record_provider_failure(error_type: str) -> None:
    stats_provider_requests_failure_total.labels(error_type=error_type).inc()
