"""Shared pytest fixtures for parlay-streak tests."""
import sys
from datetime import timedelta
from pathlib import Path
from typing import Generator
import uuid

import pytest
from sqlalchemy.orm import sessionmaker, Session

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from parlay_streak.core.database import build_engine, init_db  # noqa: E402
from parlay_streak.models import Game, GameStatus, User  # noqa: E402
from parlay_streak.services.providers.base import ProviderGameStatus  # noqa: E402
from parlay_streak.services.resolution.stats import MappingStatsLookup  # noqa: E402
from parlay_streak.utils.timezone import utc_now  # noqa: E402


# =============================================================================
# TEST DOUBLES
# =============================================================================

class Clock:
    """Controllable clock passed to services instead of ``utc_now``."""

    def __init__(self, now=None):
        self.now = (now or utc_now()).replace(microsecond=0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class FakeStatsProvider:
    """
    In-memory GameStatsProvider.

    Stats are keyed like MappingStatsLookup: ``(subject_id, metric, period)``.
    Set ``error`` to make every call raise, or ``on_snapshot`` to run code
    while a resolution is in flight.
    """

    def __init__(self):
        self.values = {}
        self.status = None
        self.start_time = None
        self.error = None
        self.on_snapshot = None
        self.snapshot_calls = 0

    def set_stat(self, subject_id, metric, value, time_period="FULL_GAME"):
        self.values[(subject_id, metric, time_period)] = value

    def get_game_status(self, game):
        if self.error is not None:
            raise self.error
        return ProviderGameStatus(status=self.status or game.status, start_time=self.start_time)

    def get_stats_snapshot(self, game):
        self.snapshot_calls += 1
        if self.on_snapshot is not None:
            hook, self.on_snapshot = self.on_snapshot, None
            hook(game)
        if self.error is not None:
            raise self.error
        return MappingStatsLookup(dict(self.values))


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture(scope="function")
def engine(tmp_path):
    """File-backed SQLite so several sessions can see each other's commits."""
    engine = build_engine(f"sqlite:///{tmp_path / 'parlay_streak_test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create fresh test database session."""
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# CLOCK AND PROVIDER
# =============================================================================

@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def provider():
    return FakeStatsProvider()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(db_session: Session):
    """Create a user, optionally with an existing streak."""
    def _make(username=None, current_streak=0, longest_streak=None):
        now = utc_now()
        user = User(
            id=str(uuid.uuid4()),
            username=username or f"user_{uuid.uuid4().hex[:8]}",
            current_streak=current_streak,
            longest_streak=longest_streak if longest_streak is not None else current_streak,
            streak_version=0,
            insurance_locked=False,
            created_at=now,
            updated_at=now,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def make_game(db_session: Session, clock):
    """Create a game starting ``starts_in`` from the clock (negative = already started)."""
    def _make(starts_in=timedelta(hours=2), status=None, home="Los Angeles Lakers", away="Boston Celtics"):
        now = utc_now()
        start_time = clock() + starts_in
        if status is None:
            status = GameStatus.SCHEDULED if starts_in > timedelta(0) else GameStatus.IN_PROGRESS
        game = Game(
            id=str(uuid.uuid4()),
            external_id=str(401700000 + len(db_session.query(Game).all())),
            sport="basketball",
            league="nba",
            home_team_name=home,
            away_team_name=away,
            home_team_external_id="13",
            away_team_external_id="2",
            start_time=start_time,
            status=status,
            created_at=now,
            updated_at=now,
        )
        db_session.add(game)
        db_session.commit()
        return game
    return _make


@pytest.fixture
def start_game(db_session: Session, clock):
    """Tip off a game: mark it in progress and move the clock past its start."""
    def _start(game, status=GameStatus.IN_PROGRESS):
        game.status = status
        db_session.commit()
        if clock.now <= game.start_time:
            clock.now = game.start_time + timedelta(minutes=1)
        return game
    return _start


def _threshold_config(subject_id, threshold=20.5, operator="OVER", metric="points",
                      time_period="FULL_GAME", subject_name=None):
    return {
        "type": "THRESHOLD",
        "participant": {
            "subject_type": "PLAYER",
            "subject_id": subject_id,
            "subject_name": subject_name or f"Player {subject_id}",
            "metric": metric,
            "time_period": time_period,
        },
        "operator": operator,
        "threshold": threshold,
    }


def _moneyline_config(home_id="13", away_id="2", spread=None):
    config = {
        "type": "COMPARISON",
        "participant_1": {
            "subject_type": "TEAM",
            "subject_id": home_id,
            "subject_name": "Lakers",
            "metric": "points",
            "time_period": "FULL_GAME",
        },
        "participant_2": {
            "subject_type": "TEAM",
            "subject_id": away_id,
            "subject_name": "Celtics",
            "metric": "points",
            "time_period": "FULL_GAME",
        },
        "operator": "GREATER_THAN",
    }
    if spread is not None:
        config["spread"] = spread
    return config


@pytest.fixture
def threshold_config():
    return _threshold_config


@pytest.fixture
def moneyline_config():
    return _moneyline_config


@pytest.fixture
def make_bet(db_session: Session, clock):
    """
    Create a bet through the lifecycle service.

    Defaults to a player points OVER 20.5 bet on a fresh subject id so every
    bet can be decided independently via ``provider.set_stat``.
    """
    from parlay_streak.services.bet_lifecycle import BetLifecycleService

    counter = {"n": 0}

    def _make(game, config=None, display_text_override=None):
        if config is None:
            counter["n"] += 1
            config = _threshold_config(f"p{counter['n']}")
        return BetLifecycleService(db_session, clock=clock).create_bet(
            game.id, config, display_text_override=display_text_override
        )
    return _make


@pytest.fixture
def lifecycle(db_session: Session, provider, clock):
    from parlay_streak.services.bet_lifecycle import BetLifecycleService
    return BetLifecycleService(db_session, provider=provider, clock=clock)


@pytest.fixture
def parlay_service(db_session: Session, clock):
    from parlay_streak.services.parlay_service import ParlayService
    return ParlayService(db_session, clock=clock)


@pytest.fixture
def build_parlay(parlay_service):
    """Build a parlay for ``user`` with one OVER leg per bet."""
    def _build(user, bets, side="over", insured=False):
        parlay = parlay_service.start_parlay(user.id, side, bet_id=bets[0].id)
        for bet in bets[1:]:
            parlay = parlay_service.add_selection(parlay.id, user.id, side, bet_id=bet.id)
        if insured:
            parlay = parlay_service.toggle_insurance(parlay.id, user.id, True)
        return parlay
    return _build


@pytest.fixture
def settle_bet(lifecycle, provider):
    """Resolve a default threshold bet to the given outcome for its OVER side."""
    def _settle(bet, outcome):
        subject_id = bet.config["participant"]["subject_id"]
        value = {"win": 25, "loss": 15, "push": bet.config["threshold"]}[outcome]
        provider.set_stat(subject_id, "points", value)
        return lifecycle.resolve_bet(bet.id)
    return _settle


# =============================================================================
# API CLIENT
# =============================================================================

@pytest.fixture(scope="function")
def test_client(db_session, provider):
    """
    FastAPI TestClient bound to the test database and fake stats provider.

    Note: We don't use context manager (with TestClient) so the lifespan
    hook never touches the configured database.
    """
    from fastapi.testclient import TestClient
    from parlay_streak.api.dependencies import get_stats_provider
    from parlay_streak.core.database import get_db
    from parlay_streak.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stats_provider] = lambda: provider

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
