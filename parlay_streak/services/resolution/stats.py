"""
Stats lookup contract consumed by the evaluator.

A lookup answers ``value(subject_id, metric, time_period)`` with a number or
``NOT_AVAILABLE`` when the stat does not exist yet (period not finished,
player did not play, partial box score).
"""
from typing import Dict, Protocol, Tuple, Union, runtime_checkable


class _NotAvailable:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_AVAILABLE"

    def __bool__(self) -> bool:
        return False


NOT_AVAILABLE = _NotAvailable()

StatValue = Union[float, _NotAvailable]
StatKey = Tuple[str, str, str]


@runtime_checkable
class StatsLookup(Protocol):
    def value(self, subject_id: str, metric: str, time_period: str) -> StatValue:
        ...


class MappingStatsLookup:
    """Lookup backed by a dict keyed by ``(subject_id, metric, time_period)``."""

    def __init__(self, values: Dict[StatKey, float]):
        self._values = {
            (str(subject_id), metric, period): value
            for (subject_id, metric, period), value in values.items()
        }

    def value(self, subject_id: str, metric: str, time_period: str) -> StatValue:
        found = self._values.get((str(subject_id), metric, time_period))
        if found is None:
            return NOT_AVAILABLE
        return float(found)
