"""Tests for parlay and single-pick settlement into user streaks.

Each test builds selections on scheduled games, tips the games off and
resolves the bets through the lifecycle service, which triggers settlement
exactly as production does.
"""
import pytest

from parlay_streak.core.errors import StateError
from parlay_streak.models import Parlay, StreakEvent, User
from parlay_streak.repositories import BetRepository, SelectionRepository, StreakEventRepository
from parlay_streak.services.settlement_service import SettlementService


@pytest.fixture
def game(make_game):
    return make_game()


@pytest.fixture
def bets(game, make_bet):
    return [make_bet(game) for _ in range(5)]


def reload_user(db_session, user_id):
    db_session.expire_all()
    return db_session.get(User, user_id)


class TestParlaySettlement:
    def test_insured_parlay_with_one_losing_leg(
        self, make_user, bets, game, build_parlay, start_game, settle_bet, db_session
    ):
        """4-leg insured parlay, 3 wins and a loss: the insurance cost is deducted instead of a reset."""
        user = make_user(current_streak=10)
        parlay = build_parlay(user, bets[:4], insured=True)
        assert parlay.insurance_cost == 3
        start_game(game)

        for bet in bets[:3]:
            assert settle_bet(bet, "win").settlements == []
        result = settle_bet(bets[3], "loss")

        [settlement] = result.settlements
        assert settlement.kind == "parlay"
        assert settlement.outcome == "lost"
        assert settlement.event_type == "insurance_deducted"
        assert settlement.points_change == -3
        assert settlement.resulting_streak == 7

        user = reload_user(db_session, user.id)
        assert (user.current_streak, user.longest_streak) == (7, 10)
        event = StreakEventRepository(db_session).latest(user.id)
        assert (event.type, event.points_change, event.parlay_id) == ("insurance_deducted", -3, parlay.id)

    def test_winning_parlay_adds_value(self, make_user, bets, game, build_parlay, start_game, settle_bet, db_session):
        user = make_user(current_streak=1)
        parlay = build_parlay(user, bets[:3])
        start_game(game)

        for bet in bets[:3]:
            result = settle_bet(bet, "win")

        assert result.settlements[0].event_type == "parlay_win"
        assert result.settlements[0].points_change == 4
        user = reload_user(db_session, user.id)
        assert (user.current_streak, user.longest_streak) == (5, 5)
        stored = db_session.get(Parlay, parlay.id)
        assert stored.status == "won"
        assert stored.resolved_at is not None
        assert stored.locked_at is not None

    def test_insured_win_pays_value_minus_cost(
        self, make_user, bets, game, build_parlay, start_game, settle_bet, db_session
    ):
        user = make_user()
        build_parlay(user, bets[:4], insured=True)
        start_game(game)

        for bet in bets[:4]:
            result = settle_bet(bet, "win")

        assert result.settlements[0].points_change == 8 - 3
        assert reload_user(db_session, user.id).current_streak == 5

    def test_losing_parlay_resets_streak(self, make_user, bets, game, build_parlay, start_game, settle_bet, db_session):
        user = make_user(current_streak=6)
        build_parlay(user, bets[:2])
        start_game(game)

        assert settle_bet(bets[0], "loss").settlements == []  # still waiting on the other leg
        result = settle_bet(bets[1], "win")

        assert result.settlements[0].event_type == "parlay_loss"
        assert result.settlements[0].points_change == -6
        user = reload_user(db_session, user.id)
        assert (user.current_streak, user.longest_streak) == (0, 6)

    def test_insurance_never_drops_streak_below_zero(
        self, make_user, bets, game, build_parlay, start_game, settle_bet, db_session
    ):
        user = make_user(current_streak=1)
        build_parlay(user, bets[:4], insured=True)
        start_game(game)

        for bet, outcome in zip(bets[:4], ["loss", "loss", "win", "win"]):
            result = settle_bet(bet, outcome)

        settlement = result.settlements[0]
        assert (settlement.points_change, settlement.resulting_streak) == (-1, 0)
        event = StreakEventRepository(db_session).latest(user.id)
        assert (event.type, event.points_change, event.resulting_streak) == ("insurance_deducted", -1, 0)

    def test_push_legs_drop_out(self, make_user, bets, game, build_parlay, start_game, settle_bet, db_session):
        user = make_user()
        build_parlay(user, bets[:2])
        start_game(game)

        settle_bet(bets[0], "push")
        result = settle_bet(bets[1], "win")

        assert result.settlements[0].outcome == "won"
        assert reload_user(db_session, user.id).current_streak == 2

    def test_all_push_parlay_has_no_effect(self, make_user, bets, game, build_parlay, start_game, settle_bet, db_session):
        user = make_user(current_streak=4)
        parlay = build_parlay(user, bets[:2])
        start_game(game)

        settle_bet(bets[0], "push")
        result = settle_bet(bets[1], "push")

        assert result.settlements[0].outcome == "push"
        assert result.settlements[0].event_type is None
        assert db_session.get(Parlay, parlay.id).status == "push"
        assert reload_user(db_session, user.id).current_streak == 4
        assert db_session.query(StreakEvent).count() == 0

    def test_settled_parlay_not_settled_again(
        self, make_user, bets, game, build_parlay, start_game, settle_bet, db_session, clock
    ):
        user = make_user()
        parlay = build_parlay(user, bets[:2])
        start_game(game)
        settle_bet(bets[0], "win")
        settle_bet(bets[1], "win")

        service = SettlementService(db_session, clock=clock)
        assert service.settle_parlay(parlay.id) is None
        assert service.settle_pending() == []
        assert reload_user(db_session, user.id).current_streak == 2

    def test_one_leg_draft_settles_as_single(
        self, make_user, bets, game, parlay_service, start_game, settle_bet, db_session
    ):
        user = make_user()
        parlay_service.start_parlay(user.id, "over", bet_id=bets[0].id)
        start_game(game)

        result = settle_bet(bets[0], "win")

        [settlement] = result.settlements
        assert (settlement.kind, settlement.event_type) == ("single", "bet_win")
        assert db_session.query(Parlay).count() == 0


class TestInsuranceLockRelease:
    def test_uninsured_parlay_after_insured_one_releases_lock(
        self, make_user, make_game, make_bet, build_parlay, start_game, settle_bet, db_session
    ):
        user = make_user(current_streak=10)
        first_game = make_game()
        insured_legs = [make_bet(first_game) for _ in range(4)]
        build_parlay(user, insured_legs, insured=True)
        second_game = make_game()
        plain_legs = [make_bet(second_game) for _ in range(2)]
        build_parlay(user, plain_legs)

        start_game(first_game)
        start_game(second_game)

        # Uninsured parlay settles first while the insured one is still open
        for bet in plain_legs:
            settle_bet(bet, "win")
        assert reload_user(db_session, user.id).insurance_locked is True

        for bet in insured_legs:
            settle_bet(bet, "win")
        assert reload_user(db_session, user.id).insurance_locked is True

        next_game = make_game()
        next_legs = [make_bet(next_game) for _ in range(2)]
        build_parlay(user, next_legs)
        start_game(next_game)
        for bet in next_legs:
            settle_bet(bet, "loss")

        user = reload_user(db_session, user.id)
        assert user.insurance_locked is False
        assert user.last_insured_parlay_id is None

    def test_all_push_parlay_keeps_lock(
        self, make_user, make_game, make_bet, build_parlay, start_game, settle_bet, db_session
    ):
        """Should only release the lock for an uninsured parlay that was won or lost."""
        user = make_user(current_streak=5)
        insured_game = make_game()
        insured_legs = [make_bet(insured_game) for _ in range(4)]
        insured = build_parlay(user, insured_legs, insured=True)
        start_game(insured_game)
        for bet in insured_legs:
            settle_bet(bet, "win")

        push_game = make_game()
        push_legs = [make_bet(push_game) for _ in range(2)]
        build_parlay(user, push_legs)
        start_game(push_game)
        for bet in push_legs:
            result = settle_bet(bet, "push")

        assert result.settlements[0].outcome == "push"
        user = reload_user(db_session, user.id)
        assert user.insurance_locked is True
        assert user.last_insured_parlay_id == insured.id


class TestLedger:
    def test_sequences_follow_streak_version(
        self, make_user, make_game, make_bet, parlay_service, start_game, settle_bet, db_session
    ):
        user = make_user()
        game = make_game()
        picks = [make_bet(game) for _ in range(3)]
        for bet in picks:
            parlay_service.create_selection(user.id, bet.id, "over")
        start_game(game)

        for bet, outcome in zip(picks, ["win", "win", "loss"]):
            settle_bet(bet, outcome)

        events = StreakEventRepository(db_session).history(user.id)
        assert [e.sequence for e in events] == [1, 2, 3]
        assert [e.resulting_streak for e in events] == [1, 2, 0]
        user = reload_user(db_session, user.id)
        assert (user.streak_version, user.longest_streak) == (3, 2)


class TestRecovery:
    def test_settle_pending_applies_unsettled_results(
        self, make_user, bets, game, build_parlay, parlay_service, start_game, db_session, clock
    ):
        """A crash between resolution and settlement is repaired by the sweep."""
        user = make_user()
        build_parlay(user, bets[:2])
        parlay_service.create_selection(user.id, bets[2].id, "over")
        start_game(game)

        bet_repo = BetRepository(db_session)
        selection_repo = SelectionRepository(db_session)
        for bet in bets[:3]:
            bet_repo.mark_resolved(bet.id, "win", {"manual": True}, clock())
            selection_repo.resolve_for_bet(bet.id, "win", "over", clock())
        db_session.commit()

        results = SettlementService(db_session, clock=clock).settle_pending()

        assert sorted(r.kind for r in results) == ["parlay", "single"]
        assert reload_user(db_session, user.id).current_streak == 3
        assert SettlementService(db_session, clock=clock).settle_pending() == []


class TestStreakConflict:
    def test_gives_up_after_max_retries(
        self, make_user, bets, game, build_parlay, start_game, db_session, clock, monkeypatch
    ):
        user = make_user(current_streak=3)
        parlay = build_parlay(user, bets[:2])
        start_game(game)
        for bet in bets[:2]:
            BetRepository(db_session).mark_resolved(bet.id, "win", None, clock())
            SelectionRepository(db_session).resolve_for_bet(bet.id, "win", "over", clock())
        db_session.commit()

        service = SettlementService(db_session, clock=clock, max_retries=3)
        calls = []

        def always_stale(*args, **kwargs):
            calls.append(args)
            return 0

        monkeypatch.setattr(service.users, "compare_and_swap_streak", always_stale)

        with pytest.raises(StateError) as exc_info:
            service.settle_parlay(parlay.id)

        assert exc_info.value.code == "SETTLEMENT_CONFLICT"
        assert len(calls) == 3
        db_session.expire_all()
        assert db_session.get(Parlay, parlay.id).status == "building"
        assert reload_user(db_session, user.id).current_streak == 3
