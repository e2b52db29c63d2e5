"""
ESPN game summary adapter.

Endpoint:
    {ESPN_BASE_URL}/{sport}/{league}/summary?event={external_id}

The summary payload carries everything resolution needs:
- header.competitions[]: status (pre/in/post), start date, competitors with
  final score and per-period linescores
- boxscore.teams[]: team totals (totalRebounds, assists, ...)
- boxscore.players[]: per-player box score rows (``keys`` + ``stats``)
- plays[]: play-by-play, used for per-period player stats and for
  detecting which periods have ended (type id 412)

Full-game values are only reported once the game is final; period values
once that period has ended. Everything else is NOT_AVAILABLE so a live game
never resolves early.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

import httpx
from pybreaker import CircuitBreaker, CircuitBreakerError
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from parlay_streak.core.config import settings
from parlay_streak.core.logging import get_logger
from parlay_streak.core.metrics import record_provider_failure, stats_provider_requests_success_total
from parlay_streak.models import Game, GameStatus
from parlay_streak.services.circuit_breaker import stats_provider_breaker
from parlay_streak.services.providers.base import ProviderGameStatus, StatsProviderError
from parlay_streak.services.resolution.stats import NOT_AVAILABLE, StatValue
from parlay_streak.utils.timezone import parse_iso_utc

logger = get_logger(__name__)

END_PERIOD_PLAY_TYPE = "412"
REGULATION_PERIODS = 4

# metric -> (team statistics name, player box score key, part of "made-attempted")
BOX_SCORE_FIELDS = {
    "rebounds": ("totalRebounds", "rebounds", None),
    "assists": ("assists", "assists", None),
    "steals": ("steals", "steals", None),
    "blocks": ("blocks", "blocks", None),
    "turnovers": ("turnovers", "turnovers", None),
    "points": (None, "points", None),
    "field_goals_made": ("fieldGoalsMade-fieldGoalsAttempted", "fieldGoalsMade-fieldGoalsAttempted", 0),
    "field_goals_attempted": ("fieldGoalsMade-fieldGoalsAttempted", "fieldGoalsMade-fieldGoalsAttempted", 1),
    "three_pointers_made": (
        "threePointFieldGoalsMade-threePointFieldGoalsAttempted",
        "threePointFieldGoalsMade-threePointFieldGoalsAttempted",
        0,
    ),
    "three_pointers_attempted": (
        "threePointFieldGoalsMade-threePointFieldGoalsAttempted",
        "threePointFieldGoalsMade-threePointFieldGoalsAttempted",
        1,
    ),
    "free_throws_made": ("freeThrowsMade-freeThrowsAttempted", "freeThrowsMade-freeThrowsAttempted", 0),
    "free_throws_attempted": ("freeThrowsMade-freeThrowsAttempted", "freeThrowsMade-freeThrowsAttempted", 1),
}

ESPN_STATUS_NAMES = {
    "STATUS_POSTPONED": GameStatus.POSTPONED,
    "STATUS_CANCELED": GameStatus.CANCELED,
    "STATUS_CANCELLED": GameStatus.CANCELED,
}

ESPN_STATES = {
    "pre": GameStatus.SCHEDULED,
    "in": GameStatus.IN_PROGRESS,
    "post": GameStatus.COMPLETED,
}


def _parse_number(display_value: Any, part: Optional[int] = None) -> Optional[float]:
    if display_value is None:
        return None
    text = str(display_value).strip()
    if part is not None:
        pieces = text.split("-")
        if len(pieces) != 2:
            return None
        text = pieces[part]
    try:
        return float(text)
    except ValueError:
        return None


def _athlete_id(participant: Dict[str, Any]) -> Optional[str]:
    athlete = participant.get("athlete") or {}
    value = athlete.get("id")
    return str(value) if value is not None else None


# Per-period player stats from play-by-play. Each rule returns what a single
# play adds to ``player_id``'s total.
def _play_points(play, player_id):
    participants = play.get("participants") or []
    if play.get("scoringPlay") and participants and _athlete_id(participants[0]) == player_id:
        return play.get("scoreValue") or 0
    return 0


def _play_rebounds(play, player_id):
    participants = play.get("participants") or []
    text = (play.get("type") or {}).get("text", "")
    return int("Rebound" in text and bool(participants) and _athlete_id(participants[0]) == player_id)


def _play_assists(play, player_id):
    participants = play.get("participants") or []
    return int(bool(play.get("scoringPlay")) and len(participants) >= 2 and _athlete_id(participants[1]) == player_id)


def _play_steals(play, player_id):
    participants = play.get("participants") or []
    return int("steals" in play.get("text", "") and len(participants) >= 2 and _athlete_id(participants[1]) == player_id)


def _play_blocks(play, player_id):
    participants = play.get("participants") or []
    return int("blocks" in play.get("text", "") and len(participants) >= 2 and _athlete_id(participants[1]) == player_id)


def _play_turnovers(play, player_id):
    participants = play.get("participants") or []
    text = (play.get("type") or {}).get("text", "")
    return int("Turnover" in text and bool(participants) and _athlete_id(participants[0]) == player_id)


def _play_threes(play, player_id):
    participants = play.get("participants") or []
    return int(
        bool(play.get("scoringPlay"))
        and play.get("scoreValue") == 3
        and bool(participants)
        and _athlete_id(participants[0]) == player_id
    )


PLAY_BY_PLAY_RULES: Dict[str, Callable[[Dict[str, Any], str], float]] = {
    "points": _play_points,
    "rebounds": _play_rebounds,
    "assists": _play_assists,
    "steals": _play_steals,
    "blocks": _play_blocks,
    "turnovers": _play_turnovers,
    "three_pointers_made": _play_threes,
}


class EspnStatsSnapshot:
    """StatsLookup over one ESPN game summary payload."""

    def __init__(self, summary: Dict[str, Any]):
        self.summary = summary or {}
        self.competition = self._find_competition()
        status = self.competition.get("status") or {}
        status_type = status.get("type") or {}
        self.completed = bool(status_type.get("completed"))
        self.state = status_type.get("state")
        self.status_name = status_type.get("name")
        self.plays: List[Dict[str, Any]] = self.summary.get("plays") or []
        self.ended_periods = self._find_ended_periods()

    def _find_competition(self) -> Dict[str, Any]:
        header = self.summary.get("header") or {}
        competitions = header.get("competitions") or []
        for competition in competitions:
            if str(competition.get("id")) == str(header.get("id")):
                return competition
        return competitions[0] if competitions else {}

    def _find_ended_periods(self) -> Set[int]:
        ended = set()
        for play in self.plays:
            if str((play.get("type") or {}).get("id")) == END_PERIOD_PLAY_TYPE:
                number = (play.get("period") or {}).get("number")
                if number is not None:
                    ended.add(int(number))
        return ended

    # ------------------------------------------------------------------
    # Game status
    # ------------------------------------------------------------------

    @property
    def game_status(self) -> str:
        if self.status_name in ESPN_STATUS_NAMES:
            return ESPN_STATUS_NAMES[self.status_name]
        if self.completed:
            return GameStatus.COMPLETED
        return ESPN_STATES.get(self.state, GameStatus.SCHEDULED)

    @property
    def start_time(self):
        return parse_iso_utc(self.competition.get("date"))

    # ------------------------------------------------------------------
    # Period bookkeeping
    # ------------------------------------------------------------------

    def _period_numbers(self, time_period: str) -> Optional[List[int]]:
        if time_period.startswith("Q") and time_period[1:].isdigit():
            return [int(time_period[1:])]
        if time_period == "H1":
            return [1, 2]
        if time_period == "H2":
            return [3, 4]
        if time_period == "OT":
            last = max([REGULATION_PERIODS] + self._played_periods())
            return list(range(REGULATION_PERIODS + 1, last + 1))
        return None

    def _played_periods(self) -> List[int]:
        periods = set()
        for competitor in self.competition.get("competitors") or []:
            periods.update(range(1, len(competitor.get("linescores") or []) + 1))
        for play in self.plays:
            number = (play.get("period") or {}).get("number")
            if number is not None:
                periods.add(int(number))
        return sorted(periods)

    def is_period_complete(self, time_period: str) -> bool:
        if self.completed:
            return True
        if time_period in ("FULL_GAME", "H2", "OT"):
            return False
        if time_period == "H1":
            return 2 in self.ended_periods
        numbers = self._period_numbers(time_period) or []
        return bool(numbers) and all(n in self.ended_periods for n in numbers)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _competitor(self, team_id: str) -> Optional[Dict[str, Any]]:
        for competitor in self.competition.get("competitors") or []:
            team = competitor.get("team") or {}
            if str(team.get("id", competitor.get("id"))) == team_id:
                return competitor
        return None

    def _team_points(self, team_id: str, time_period: str) -> StatValue:
        competitor = self._competitor(team_id)
        if competitor is None:
            return NOT_AVAILABLE
        if time_period == "FULL_GAME":
            score = _parse_number(competitor.get("score"))
            return NOT_AVAILABLE if score is None else score

        linescores = competitor.get("linescores") or []
        total = 0.0
        for number in self._period_numbers(time_period) or []:
            if number > len(linescores):
                # OT periods that were never played contribute nothing
                if number > REGULATION_PERIODS:
                    continue
                return NOT_AVAILABLE
            entry = linescores[number - 1]
            value = _parse_number(entry.get("displayValue", entry.get("value")))
            if value is None:
                return NOT_AVAILABLE
            total += value
        return total

    def _team_box_stat(self, team_id: str, metric: str) -> StatValue:
        field = BOX_SCORE_FIELDS.get(metric)
        if field is None or field[0] is None:
            return NOT_AVAILABLE
        name, _, part = field
        for team_block in (self.summary.get("boxscore") or {}).get("teams") or []:
            if str((team_block.get("team") or {}).get("id")) != team_id:
                continue
            for stat in team_block.get("statistics") or []:
                if stat.get("name") == name:
                    value = _parse_number(stat.get("displayValue"), part)
                    return NOT_AVAILABLE if value is None else value
        return NOT_AVAILABLE

    def _player_box_stat(self, player_id: str, metric: str) -> StatValue:
        field = BOX_SCORE_FIELDS.get(metric)
        if field is None:
            return NOT_AVAILABLE
        _, key, part = field
        for team_block in (self.summary.get("boxscore") or {}).get("players") or []:
            for group in team_block.get("statistics") or []:
                keys = group.get("keys") or []
                if key not in keys:
                    continue
                index = keys.index(key)
                for row in group.get("athletes") or []:
                    if _athlete_id(row) != player_id:
                        continue
                    stats = row.get("stats") or []
                    if row.get("didNotPlay") or index >= len(stats):
                        return NOT_AVAILABLE
                    value = _parse_number(stats[index], part)
                    return NOT_AVAILABLE if value is None else value
        return NOT_AVAILABLE

    def _player_row(self, player_id: str) -> Optional[Dict[str, Any]]:
        for team_block in (self.summary.get("boxscore") or {}).get("players") or []:
            for group in team_block.get("statistics") or []:
                for row in group.get("athletes") or []:
                    if _athlete_id(row) == player_id:
                        return row
        return None

    def _player_period_stat(self, player_id: str, metric: str, numbers: Iterable[int]) -> StatValue:
        rule = PLAY_BY_PLAY_RULES.get(metric)
        if rule is None:
            return NOT_AVAILABLE
        # No plays for a player off the box score is not the same as zero
        row = self._player_row(player_id)
        if row is None or row.get("didNotPlay"):
            return NOT_AVAILABLE
        numbers = set(numbers)
        return float(sum(
            rule(play, player_id)
            for play in self.plays
            if (play.get("period") or {}).get("number") in numbers
        ))

    def _is_team(self, subject_id: str) -> bool:
        return self._competitor(subject_id) is not None

    def value(self, subject_id: str, metric: str, time_period: str) -> StatValue:
        subject_id = str(subject_id)
        if not self.is_period_complete(time_period):
            return NOT_AVAILABLE

        if self._is_team(subject_id):
            if metric == "points":
                return self._team_points(subject_id, time_period)
            if time_period == "FULL_GAME":
                return self._team_box_stat(subject_id, metric)
            return NOT_AVAILABLE

        if time_period == "FULL_GAME":
            return self._player_box_stat(subject_id, metric)
        numbers = self._period_numbers(time_period)
        if not numbers:
            return NOT_AVAILABLE
        return self._player_period_stat(subject_id, metric, numbers)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


class EspnStatsProvider:
    """
    Game stats provider backed by ESPN's public summary endpoint.

    Each request goes through the circuit breaker; transient failures
    (network errors, 5xx) are retried with bounded exponential backoff.
    Anything still failing after that surfaces as StatsProviderError.

    Usage:
        provider = EspnStatsProvider()
        status = provider.get_game_status(game)
        stats = provider.get_stats_snapshot(game)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        breaker: Optional[CircuitBreaker] = None,
        max_attempts: Optional[int] = None,
        wait=None,
    ):
        self.base_url = (base_url or settings.ESPN_BASE_URL).rstrip("/")
        self._client = client
        self._breaker = breaker or stats_provider_breaker
        self._max_attempts = max_attempts or settings.STATS_FETCH_MAX_ATTEMPTS
        self._wait = wait if wait is not None else wait_exponential(multiplier=0.5, max=settings.STATS_FETCH_BACKOFF_MAX)

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(settings.STATS_FETCH_TIMEOUT),
                headers={"Accept": "application/json"},
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _get_json(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = self._get_client().get(url, params=params)
        response.raise_for_status()
        return response.json()

    def _fetch_with_breaker(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return self._breaker.call(self._get_json, url, params)

    def fetch_summary(self, game: Game) -> Dict[str, Any]:
        """
        Fetch the raw summary payload for a game.

        Raises:
            StatsProviderError: breaker open, retries exhausted, non-retryable
                HTTP error or a body that is not JSON
        """
        url = f"{self.base_url}/{game.sport}/{game.league}/summary"
        params = {"event": game.external_id}
        retryer = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        try:
            data = retryer(self._fetch_with_breaker, url, params)
        except CircuitBreakerError as e:
            record_provider_failure("circuit_open")
            raise StatsProviderError(f"Stats provider circuit is open: {e}", "circuit_open") from e
        except httpx.HTTPStatusError as e:
            record_provider_failure(f"http_{e.response.status_code}")
            raise StatsProviderError(
                f"Stats provider returned {e.response.status_code} for event {game.external_id}",
                "http_status",
            ) from e
        except httpx.HTTPError as e:
            record_provider_failure(type(e).__name__)
            raise StatsProviderError(f"Stats provider request failed: {e}", "transport") from e
        except ValueError as e:
            record_provider_failure("invalid_json")
            raise StatsProviderError("Stats provider returned invalid JSON", "invalid_json") from e

        stats_provider_requests_success_total.inc()
        logger.debug(
            f"Fetched ESPN summary for event {game.external_id}",
            extra={"game_id": game.id, "external_id": game.external_id},
        )
        return data

    def get_game_status(self, game: Game) -> ProviderGameStatus:
        snapshot = EspnStatsSnapshot(self.fetch_summary(game))
        return ProviderGameStatus(status=snapshot.game_status, start_time=snapshot.start_time)

    def get_stats_snapshot(self, game: Game) -> EspnStatsSnapshot:
        return EspnStatsSnapshot(self.fetch_summary(game))
