"""
Typed bet configuration.

``Bet.config`` is stored as JSON; every read goes through ``parse_bet_config``
so the evaluator only ever sees one of the three variants below, selected by
the ``type`` discriminator:

- COMPARISON: participant_1 vs participant_2, optional half-point spread
- THRESHOLD: one participant over/under a line
- EVENT: double-double / triple-double for one player
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from parlay_streak.core.errors import ValidationError

SubjectType = Literal["TEAM", "PLAYER"]
TimePeriod = Literal["FULL_GAME", "Q1", "Q2", "Q3", "Q4", "H1", "H2", "OT"]

# Every metric is available for the full game from the box score
Metric = Literal[
    "points",
    "rebounds",
    "assists",
    "steals",
    "blocks",
    "turnovers",
    "field_goals_made",
    "field_goals_attempted",
    "three_pointers_made",
    "three_pointers_attempted",
    "free_throws_made",
    "free_throws_attempted",
]
# Player metrics that can be split by quarter or half from play-by-play
PERIOD_PLAYER_METRICS = frozenset({
    "points", "rebounds", "assists", "steals", "blocks", "turnovers", "three_pointers_made",
})


class Participant(BaseModel):
    """A team or player whose stat is looked up for one time period."""
    model_config = ConfigDict(frozen=True)

    subject_type: SubjectType
    subject_id: str = Field(..., min_length=1)
    subject_name: str = Field(..., min_length=1)
    metric: Metric
    time_period: TimePeriod = "FULL_GAME"

    @model_validator(mode="after")
    def metric_available_for_period(self) -> "Participant":
        if self.time_period == "FULL_GAME":
            return self
        if self.subject_type == "TEAM" and self.metric != "points":
            raise ValueError("team stats other than points are only available for FULL_GAME")
        if self.subject_type == "PLAYER" and self.metric not in PERIOD_PLAYER_METRICS:
            raise ValueError(f"{self.metric} is only available for FULL_GAME")
        return self


class Spread(BaseModel):
    model_config = ConfigDict(frozen=True)

    direction: Literal["+", "-"]
    value: float

    @field_validator("value")
    @classmethod
    def must_be_half_point(cls, value: float) -> float:
        # X.5 lines can never tie
        if value <= 0 or (value * 2) % 2 != 1:
            raise ValueError("spread value must be a positive half-point number (e.g. 3.5)")
        return value

    @property
    def signed(self) -> float:
        return self.value if self.direction == "+" else -self.value


class ComparisonConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["COMPARISON"] = "COMPARISON"
    participant_1: Participant
    participant_2: Participant
    operator: Literal["GREATER_THAN"] = "GREATER_THAN"
    spread: Optional[Spread] = None


class ThresholdConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["THRESHOLD"] = "THRESHOLD"
    participant: Participant
    operator: Literal["OVER", "UNDER"]
    threshold: float


class EventConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["EVENT"] = "EVENT"
    participant: Participant
    event_type: Literal["DOUBLE_DOUBLE", "TRIPLE_DOUBLE"]
    time_period: TimePeriod = "FULL_GAME"

    @model_validator(mode="after")
    def period_matches_participant(self) -> "EventConfig":
        if self.time_period != self.participant.time_period:
            raise ValueError("time_period must match the participant's time_period")
        if self.participant.subject_type != "PLAYER":
            raise ValueError("EVENT bets require a PLAYER participant")
        return self


BetConfig = Annotated[
    Union[ComparisonConfig, ThresholdConfig, EventConfig],
    Field(discriminator="type"),
]

_bet_config_adapter = TypeAdapter(BetConfig)


def parse_bet_config(payload) -> Union[ComparisonConfig, ThresholdConfig, EventConfig]:
    """
    Validate a raw config payload (dict or JSON string).

    Raises:
        ValidationError: unknown ``type`` or malformed fields
    """
    try:
        if isinstance(payload, (str, bytes)):
            return _bet_config_adapter.validate_json(payload)
        return _bet_config_adapter.validate_python(payload)
    except PydanticValidationError as e:
        errors = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationError("Invalid bet config", details={"errors": errors}) from e


def dump_bet_config(config) -> dict:
    """JSON-ready form stored in ``Bet.config``."""
    return config.model_dump(mode="json", exclude_none=True)
