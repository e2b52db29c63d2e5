"""
Human-readable bet labels generated from the typed config.

Examples:
    "Lakers ML"                          moneyline
    "Lakers +3.5"                        full-game team spread
    "LeBron James OVER 28.5 Points (1H)" threshold
    "Nikola Jokic triple double"         event
"""
from parlay_streak.models.bet_config import (
    ComparisonConfig,
    EventConfig,
    Participant,
    ThresholdConfig,
)

PERIOD_LABELS = {
    "FULL_GAME": "Full Game",
    "H1": "1H",
    "H2": "2H",
}


def format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def format_metric_label(metric: str) -> str:
    return metric.replace("_", " ").title()


def format_period_label(period: str) -> str:
    return PERIOD_LABELS.get(period, period)


def _period_suffix(period: str) -> str:
    return "" if period == "FULL_GAME" else f" ({format_period_label(period)})"


def _is_full_game_team_points(p: Participant) -> bool:
    return p.subject_type == "TEAM" and p.metric == "points" and p.time_period == "FULL_GAME"


def generate_display_text(config) -> str:
    if isinstance(config, ComparisonConfig):
        p1, p2, spread = config.participant_1, config.participant_2, config.spread
        spread_text = f"{spread.direction}{format_number(spread.value)}" if spread else ""

        if _is_full_game_team_points(p1) and _is_full_game_team_points(p2):
            if spread is None:
                return f"{p1.subject_name} ML"
            return f"{p1.subject_name} {spread_text}"

        left = f"{p1.subject_name} {format_metric_label(p1.metric)}{_period_suffix(p1.time_period)}"
        right = f"{p2.subject_name} {format_metric_label(p2.metric)}{_period_suffix(p2.time_period)}"
        if spread_text:
            return f"{left} {spread_text} > {right}"
        return f"{left} > {right}"

    if isinstance(config, ThresholdConfig):
        p = config.participant
        return (
            f"{p.subject_name} {config.operator} {format_number(config.threshold)} "
            f"{format_metric_label(p.metric)}{_period_suffix(p.time_period)}"
        )

    if isinstance(config, EventConfig):
        label = config.event_type.replace("_", " ").lower()
        return f"{config.participant.subject_name} {label}{_period_suffix(config.time_period)}"

    return "Unknown bet"
