"""
HTTP endpoint integration tests for the parlay streak API.

These tests verify that FastAPI endpoints:
- Return correct HTTP status codes
- Render domain errors in the ``{"success": false, "error": {...}}`` envelope
- Enforce the admin key and X-User-Id identity
- Expose parlay deletion as a deletion signal rather than a parlay body

Uses FastAPI TestClient for in-memory HTTP testing.
"""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from parlay_streak.core.config import settings
from parlay_streak.models import GameStatus
from parlay_streak.services.providers.base import StatsProviderError


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def user(make_user):
    return make_user(username="streaker", current_streak=4)


@pytest.fixture
def headers(user):
    return {"X-User-Id": user.id}


@pytest.fixture
def upcoming_game(make_game):
    return make_game(starts_in=timedelta(hours=2))


@pytest.fixture
def upcoming_bets(upcoming_game, make_bet):
    return [make_bet(upcoming_game) for _ in range(5)]


@pytest.fixture
def live_game(make_game):
    return make_game(starts_in=timedelta(hours=-1))


def start_parlay(test_client, headers, bets, side="over"):
    response = test_client.post(
        "/api/v1/parlays", json={"bet_id": bets[0].id, "selected_side": side}, headers=headers
    )
    assert response.status_code == 201
    parlay = response.json()["parlay"]
    for bet in bets[1:]:
        response = test_client.post(
            f"/api/v1/parlays/{parlay['id']}/selections",
            json={"bet_id": bet.id, "selected_side": side},
            headers=headers,
        )
        assert response.status_code == 200
        parlay = response.json()["parlay"]
    return parlay


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

class TestRootAndHealthEndpoints:
    """Tests for root and health check endpoints."""

    def test_root_endpoint(self, test_client: TestClient):
        """Should return API information."""
        response = test_client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert data["endpoints"]["parlays"] == "/api/v1/parlays"

    def test_health_endpoint(self, test_client: TestClient):
        """Should report database connectivity and the stats provider circuit."""
        response = test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "connected"
        assert "circuit" in data["components"]["stats_provider"]

    def test_api_health_endpoint(self, test_client: TestClient):
        response = test_client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


# =============================================================================
# BET ENDPOINTS (ADMIN)
# =============================================================================

class TestBetEndpoints:
    def test_create_bet(self, test_client: TestClient, upcoming_game, moneyline_config):
        response = test_client.post(
            "/api/v1/bets",
            json={"game_id": upcoming_game.id, "config": moneyline_config(spread={"direction": "-", "value": 5.5})},
        )

        assert response.status_code == 201
        bet = response.json()["bet"]
        assert bet["display_text"] == "Lakers -5.5"
        assert bet["priority"] == 1
        assert bet["outcome"] == "pending"

    def test_create_bet_invalid_config(self, test_client: TestClient, upcoming_game, moneyline_config):
        response = test_client.post(
            "/api/v1/bets",
            json={"game_id": upcoming_game.id, "config": moneyline_config(spread={"direction": "+", "value": 3})},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["errors"]

    def test_malformed_request_uses_error_envelope(self, test_client: TestClient):
        response = test_client.post("/api/v1/bets", json={"config": {}})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_resolve_before_start(self, test_client: TestClient, upcoming_bets):
        response = test_client.post(f"/api/v1/bets/{upcoming_bets[0].id}/resolve")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "GAME_NOT_STARTED"
        assert error["time_until_start_minutes"] > 100
        assert error["game_start_time"].endswith("Z")

    def test_resolve_and_resolve_again(self, test_client: TestClient, live_game, make_bet, provider):
        bet = make_bet(live_game)
        provider.set_stat("p1", "points", 31)

        response = test_client.post(f"/api/v1/bets/{bet.id}/resolve")
        assert response.status_code == 200
        data = response.json()
        assert (data["success"], data["outcome"], data["transitioned"]) == (True, "win", True)

        response = test_client.post(f"/api/v1/bets/{bet.id}/resolve")
        assert response.status_code == 409
        assert response.json()["error"] == {
            "code": "ALREADY_RESOLVED",
            "message": "Bet is already resolved",
            "current_outcome": "win",
        }

    def test_resolve_unknown_bet(self, test_client: TestClient):
        response = test_client.post("/api/v1/bets/does-not-exist/resolve")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_resolve_with_incomplete_data(self, test_client: TestClient, live_game, make_bet):
        bet = make_bet(live_game)

        response = test_client.post(f"/api/v1/bets/{bet.id}/resolve")

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "RESOLUTION_FAILED"
        assert error["reason"] == "DATA_INCOMPLETE"

    def test_resolve_with_provider_down(self, test_client: TestClient, live_game, make_bet, provider):
        bet = make_bet(live_game)
        provider.error = StatsProviderError("boom", "transport")

        response = test_client.post(f"/api/v1/bets/{bet.id}/resolve")

        assert response.status_code == 503
        assert response.json()["error"]["retryable"] is True

    def test_void_bet(self, test_client: TestClient, upcoming_bets):
        response = test_client.post(f"/api/v1/bets/{upcoming_bets[0].id}/void", json={"reason": "postponed"})

        assert response.status_code == 200
        assert response.json()["outcome"] == "void"

    def test_admin_key_enforced(self, test_client: TestClient, upcoming_game, moneyline_config, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_API_KEY", "s3cret")
        payload = {"game_id": upcoming_game.id, "config": moneyline_config()}

        assert test_client.post("/api/v1/bets", json=payload).status_code == 401
        assert test_client.post("/api/v1/bets", json=payload, headers={"X-API-Key": "nope"}).status_code == 403
        assert test_client.post("/api/v1/bets", json=payload, headers={"X-API-Key": "s3cret"}).status_code == 201


# =============================================================================
# SELECTION ENDPOINTS
# =============================================================================

class TestSelectionEndpoints:
    def test_requires_user(self, test_client: TestClient, upcoming_bets):
        response = test_client.post("/api/v1/selections", json={"bet_id": upcoming_bets[0].id, "selected_side": "over"})
        assert response.status_code == 401

    def test_pick_list_and_withdraw(self, test_client: TestClient, headers, upcoming_bets):
        response = test_client.post(
            "/api/v1/selections", json={"bet_id": upcoming_bets[0].id, "selected_side": "under"}, headers=headers
        )
        assert response.status_code == 201
        selection = response.json()["selection"]
        assert selection["bet"]["game"]["status"] == "scheduled"

        listed = test_client.get("/api/v1/selections", headers=headers).json()
        assert listed["count"] == 1

        response = test_client.delete(f"/api/v1/selections/{selection['id']}", headers=headers)
        assert response.json() == {"message": "deleted"}
        assert test_client.get("/api/v1/selections", headers=headers).json()["count"] == 0

    def test_duplicate_pick(self, test_client: TestClient, headers, upcoming_bets):
        payload = {"bet_id": upcoming_bets[0].id, "selected_side": "over"}
        test_client.post("/api/v1/selections", json=payload, headers=headers)

        response = test_client.post("/api/v1/selections", json=payload, headers=headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "DUPLICATE_BET"

    def test_started_game(self, test_client: TestClient, headers, live_game, make_bet):
        bet = make_bet(live_game)
        response = test_client.post(
            "/api/v1/selections", json={"bet_id": bet.id, "selected_side": "over"}, headers=headers
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "GAME_STARTED"


# =============================================================================
# PARLAY ENDPOINTS
# =============================================================================

class TestParlayEndpoints:
    def test_build_parlay(self, test_client: TestClient, headers, upcoming_bets):
        parlay = start_parlay(test_client, headers, upcoming_bets[:3])

        assert parlay["bet_count"] == 3
        assert parlay["parlay_value"] == 4
        assert parlay["status"] == "building"
        assert len(parlay["selections"]) == 3

    def test_removing_leg_from_two_leg_parlay_deletes_it(self, test_client: TestClient, headers, upcoming_bets):
        parlay = start_parlay(test_client, headers, upcoming_bets[:2])
        leg_id = parlay["selections"][0]["id"]

        response = test_client.delete(f"/api/v1/parlays/{parlay['id']}/selections/{leg_id}", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"message": "deleted"}
        response = test_client.get(f"/api/v1/parlays/{parlay['id']}", headers=headers)
        assert response.status_code == 404

    def test_removing_leg_from_larger_parlay_returns_parlay(self, test_client: TestClient, headers, upcoming_bets):
        parlay = start_parlay(test_client, headers, upcoming_bets[:3])
        leg_id = parlay["selections"][2]["id"]

        response = test_client.delete(f"/api/v1/parlays/{parlay['id']}/selections/{leg_id}", headers=headers)

        assert response.json()["parlay"]["bet_count"] == 2

    def test_insurance_toggle(self, test_client: TestClient, headers, upcoming_bets):
        parlay = start_parlay(test_client, headers, upcoming_bets[:4])

        response = test_client.patch(f"/api/v1/parlays/{parlay['id']}", json={"insured": True}, headers=headers)

        assert response.status_code == 200
        assert response.json()["parlay"]["insured"] is True
        assert response.json()["parlay"]["insurance_cost"] == 3

    def test_insurance_needs_four_legs(self, test_client: TestClient, headers, upcoming_bets):
        parlay = start_parlay(test_client, headers, upcoming_bets[:2])
        response = test_client.patch(f"/api/v1/parlays/{parlay['id']}", json={"insured": True}, headers=headers)
        assert response.status_code == 400

    def test_other_user_forbidden(self, test_client: TestClient, headers, upcoming_bets, make_user):
        parlay = start_parlay(test_client, headers, upcoming_bets[:2])
        stranger = make_user()

        response = test_client.get(f"/api/v1/parlays/{parlay['id']}", headers={"X-User-Id": stranger.id})
        assert response.status_code == 403

    def test_locked_on_read(self, test_client: TestClient, headers, upcoming_game, upcoming_bets, db_session):
        parlay = start_parlay(test_client, headers, upcoming_bets[:2])
        upcoming_game.status = GameStatus.IN_PROGRESS
        db_session.commit()

        response = test_client.get("/api/v1/parlays", params={"status": "locked"}, headers=headers)
        assert response.json()["count"] == 1
        assert response.json()["parlays"][0]["locked_at"] is not None

        response = test_client.post(
            f"/api/v1/parlays/{parlay['id']}/selections",
            json={"bet_id": upcoming_bets[2].id, "selected_side": "over"},
            headers=headers,
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "PARLAY_LOCKED"

    def test_delete_parlay(self, test_client: TestClient, headers, upcoming_bets):
        parlay = start_parlay(test_client, headers, upcoming_bets[:2])

        response = test_client.delete(f"/api/v1/parlays/{parlay['id']}", headers=headers)

        assert response.json() == {"message": "deleted"}
        assert test_client.get("/api/v1/parlays", headers=headers).json()["count"] == 0


# =============================================================================
# USER STREAK ENDPOINTS
# =============================================================================

class TestStreakEndpoints:
    def test_get_own_streak(self, test_client: TestClient, user, headers):
        response = test_client.get(f"/api/v1/users/{user.id}/streak", headers=headers)

        assert response.status_code == 200
        assert response.json() == {
            "user_id": user.id,
            "current_streak": 4,
            "longest_streak": 4,
            "insurance_locked": False,
        }

    def test_other_users_streak_forbidden(self, test_client: TestClient, user, make_user):
        other = make_user()
        response = test_client.get(f"/api/v1/users/{user.id}/streak", headers={"X-User-Id": other.id})
        assert response.status_code == 403

    def test_streak_history_after_settlement(
        self, test_client: TestClient, user, headers, upcoming_game, upcoming_bets, db_session, provider
    ):
        start_parlay(test_client, headers, upcoming_bets[:2])
        upcoming_game.status = GameStatus.IN_PROGRESS
        upcoming_game.start_time = upcoming_game.start_time - timedelta(hours=3)
        db_session.commit()
        provider.set_stat("p1", "points", 25)
        provider.set_stat("p2", "points", 25)
        for bet in upcoming_bets[:2]:
            assert test_client.post(f"/api/v1/bets/{bet.id}/resolve").status_code == 200

        response = test_client.get(f"/api/v1/users/{user.id}/streak-history", headers=headers)

        [group] = response.json()["groups"]
        assert group["status"] == "active"
        assert group["peak_streak"] == 6
        assert [e["type"] for e in group["events"]] == ["parlay_win"]
        assert group["events"][0]["date"].endswith("Z")
