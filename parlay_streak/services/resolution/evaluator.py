"""
Resolution evaluator: (bet config, stats lookup) -> outcome.

Pure and deterministic; no I/O and no clock. ``Bet.outcome`` is expressed
from the perspective of the bet's primary side:

- COMPARISON: win = participant_1 beat participant_2
- THRESHOLD: win = the stat landed on the operator's side of the line
- EVENT: win = the player reached the double/triple double

``winning_side`` names the selectable side that won, so selections are
graded by a simple equality check regardless of bet type.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from parlay_streak.core.errors import UnsupportedBetConfigError
from parlay_streak.models.bet_config import (
    ComparisonConfig,
    EventConfig,
    Participant,
    ThresholdConfig,
)
from parlay_streak.models.constants import BetOutcome
from parlay_streak.services.resolution.stats import NOT_AVAILABLE, StatsLookup

DATA_INCOMPLETE = "DATA_INCOMPLETE"

EVENT_CATEGORIES = ("points", "rebounds", "assists", "steals", "blocks")
EVENT_REQUIRED_COUNT = {"DOUBLE_DOUBLE": 2, "TRIPLE_DOUBLE": 3}
EVENT_CATEGORY_MIN = 10


@dataclass
class ResolutionResult:
    resolved: bool
    outcome: Optional[str] = None
    winning_side: Optional[str] = None
    reason: Optional[str] = None
    missing: List[Dict[str, str]] = field(default_factory=list)
    stat_snapshot: Dict[str, Any] = field(default_factory=dict)


def _snapshot_entry(participant: Participant, value, metric: Optional[str] = None) -> Dict[str, Any]:
    return {
        "subject_id": participant.subject_id,
        "subject_name": participant.subject_name,
        "metric": metric or participant.metric,
        "time_period": participant.time_period,
        "value": None if value is NOT_AVAILABLE else value,
    }


def _missing_entry(participant: Participant, metric: Optional[str] = None) -> Dict[str, str]:
    return {
        "subject_id": participant.subject_id,
        "subject_name": participant.subject_name,
        "metric": metric or participant.metric,
        "time_period": participant.time_period,
    }


def _lookup(stats: StatsLookup, participant: Participant, metric: Optional[str] = None):
    return stats.value(participant.subject_id, metric or participant.metric, participant.time_period)


def _incomplete(missing, snapshot) -> ResolutionResult:
    return ResolutionResult(
        resolved=False,
        reason=DATA_INCOMPLETE,
        missing=missing,
        stat_snapshot=snapshot,
    )


def _evaluate_comparison(config: ComparisonConfig, stats: StatsLookup) -> ResolutionResult:
    if config.operator != "GREATER_THAN":
        raise UnsupportedBetConfigError(f"Unsupported comparison operator: {config.operator}")

    v1 = _lookup(stats, config.participant_1)
    v2 = _lookup(stats, config.participant_2)
    snapshot = {
        "type": config.type,
        "values": [
            _snapshot_entry(config.participant_1, v1),
            _snapshot_entry(config.participant_2, v2),
        ],
    }

    missing = []
    if v1 is NOT_AVAILABLE:
        missing.append(_missing_entry(config.participant_1))
    if v2 is NOT_AVAILABLE:
        missing.append(_missing_entry(config.participant_2))
    if missing:
        return _incomplete(missing, snapshot)

    adjusted = v1
    if config.spread is not None:
        adjusted = v1 + config.spread.signed
        snapshot["spread"] = config.spread.signed
        snapshot["participant_1_adjusted"] = adjusted

    if adjusted > v2:
        return ResolutionResult(True, BetOutcome.WIN, "participant_1", stat_snapshot=snapshot)
    if adjusted < v2:
        return ResolutionResult(True, BetOutcome.LOSS, "participant_2", stat_snapshot=snapshot)
    return ResolutionResult(True, BetOutcome.PUSH, None, stat_snapshot=snapshot)


def _evaluate_threshold(config: ThresholdConfig, stats: StatsLookup) -> ResolutionResult:
    if config.operator not in ("OVER", "UNDER"):
        raise UnsupportedBetConfigError(f"Unsupported threshold operator: {config.operator}")

    value = _lookup(stats, config.participant)
    snapshot = {
        "type": config.type,
        "threshold": config.threshold,
        "operator": config.operator,
        "values": [_snapshot_entry(config.participant, value)],
    }
    if value is NOT_AVAILABLE:
        return _incomplete([_missing_entry(config.participant)], snapshot)

    if value == config.threshold:
        return ResolutionResult(True, BetOutcome.PUSH, None, stat_snapshot=snapshot)

    winning_side = "over" if value > config.threshold else "under"
    outcome = BetOutcome.WIN if winning_side == config.operator.lower() else BetOutcome.LOSS
    return ResolutionResult(True, outcome, winning_side, stat_snapshot=snapshot)


def _evaluate_event(config: EventConfig, stats: StatsLookup) -> ResolutionResult:
    required = EVENT_REQUIRED_COUNT.get(config.event_type)
    if required is None:
        raise UnsupportedBetConfigError(f"Unsupported event type: {config.event_type}")

    participant = config.participant
    values = {metric: _lookup(stats, participant, metric) for metric in EVENT_CATEGORIES}
    reached = [
        metric for metric, value in values.items()
        if value is not NOT_AVAILABLE and value >= EVENT_CATEGORY_MIN
    ]
    unknown = [metric for metric, value in values.items() if value is NOT_AVAILABLE]

    snapshot = {
        "type": config.type,
        "event_type": config.event_type,
        "values": [_snapshot_entry(participant, values[m], metric=m) for m in EVENT_CATEGORIES],
        "categories_reached": reached,
    }

    # A partial box score can still decide the bet either way
    if len(reached) >= required:
        return ResolutionResult(True, BetOutcome.WIN, "yes", stat_snapshot=snapshot)
    if len(reached) + len(unknown) < required:
        return ResolutionResult(True, BetOutcome.LOSS, "no", stat_snapshot=snapshot)
    return _incomplete([_missing_entry(participant, metric=m) for m in unknown], snapshot)


def evaluate(config, stats: StatsLookup) -> ResolutionResult:
    """
    Compute the outcome of a bet from a stats snapshot.

    Returns ``resolved=False`` with ``reason="DATA_INCOMPLETE"`` when a
    required stat is not available yet.

    Raises:
        UnsupportedBetConfigError: config variant or operator the evaluator
            does not know how to grade
    """
    if isinstance(config, ComparisonConfig):
        return _evaluate_comparison(config, stats)
    if isinstance(config, ThresholdConfig):
        return _evaluate_threshold(config, stats)
    if isinstance(config, EventConfig):
        return _evaluate_event(config, stats)
    raise UnsupportedBetConfigError(
        f"Unsupported bet config: {type(config).__name__}",
        details={"config_type": getattr(config, "type", None)},
    )
