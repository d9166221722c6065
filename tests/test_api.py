"""API tests: gating responses and the lineup endpoints."""

import pytest
from conftest import player_payload

from fantasy_core.config.settings import Settings
from fantasy_core.database.repositories import PlayerPoolRepository
from fantasy_core.exceptions import InternalInconsistencyError, RateLimitStoreError
from fantasy_core.gating.gate import FeatureGate
from fantasy_core.gating.store import InMemoryRateLimitStore, RateLimitStore
from fantasy_core.optimization.lineup_builder import LineupBuilder

POSITIONS = {"QB": 1, "RB": 2, "FLEX": 1}


def headers(user_id="u1"):
    return {"X-User-Id": user_id}


def lineup_payload(small_pool, ids=("qb1", "rb1", "rb2", "wr1"), slots=("QB", "RB", "RB", "FLEX")):
    by_id = {p.player_id: p for p in small_pool}
    return [{"slot": s, "player": player_payload(by_id[pid])} for s, pid in zip(slots, ids)]


@pytest.fixture
def pro_user(add_subscription):
    add_subscription("pro", "PRO")
    return "pro"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_public_config(client):
    body = client.get("/api/config").json()
    assert body["salary_cap"] == 50000
    assert body["hourly_quotas"]["FREE"] == 100
    assert "database_url" not in body


def test_plans(client):
    plans = client.get("/api/subscriptions/plans").json()
    assert [p["tier"] for p in plans] == ["FREE", "PRO", "ELITE"]
    assert plans[0]["hourly_quota"] == 100
    assert plans[2]["hourly_quota"] is None
    assert "LINEUP_OPTIMIZER" not in plans[0]["capabilities"]
    assert "LINEUP_OPTIMIZER" in plans[1]["capabilities"]


def test_missing_user_header(client):
    assert client.get("/api/subscriptions/access").status_code == 401


def test_access(client, pro_user):
    body = client.get("/api/subscriptions/access", headers=headers(pro_user)).json()
    assert body["tier"] == "PRO"
    assert "LINEUP_OPTIMIZER" in [c["route_key"] for c in body["capabilities"]]
    assert body["quota"]["ceiling"] == 1000
    assert body["quota"]["used"] == 0


def test_plans_and_access_share_the_gate_quotas(app, client, pro_user):
    app.state.gate = FeatureGate(
        store=InMemoryRateLimitStore(), config=Settings(pro_hourly_quota=250)
    )
    plans = client.get("/api/subscriptions/plans").json()
    pro_plan = next(p for p in plans if p["tier"] == "PRO")
    assert pro_plan["hourly_quota"] == 250

    access = client.get("/api/subscriptions/access", headers=headers(pro_user)).json()
    assert access["quota"]["ceiling"] == 250


class TestValidateEndpoint:
    def test_valid_lineup(self, client, small_pool):
        response = client.post(
            "/api/lineups/validate",
            json={"positions": POSITIONS, "lineup": lineup_payload(small_pool)},
            headers=headers(),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["is_valid"]
        assert body["total_salary"] == 33000
        assert body["slot_counts"] == {"QB": 1, "RB": 2, "FLEX": 1}

    def test_explain_lists_every_violation(self, client, small_pool):
        payload = {
            "positions": POSITIONS,
            "lineup": lineup_payload(small_pool, ids=("qb1", "rb1", "wr1", "rb1")),
            "salary_cap": 30000,
            "explain": True,
        }
        body = client.post("/api/lineups/validate", json=payload, headers=headers()).json()
        assert not body["is_valid"]
        rules = {v["rule"] for v in body["violations"]}
        assert {"duplicate_player", "position_eligibility", "salary_cap"} <= rules

    def test_draft_pick_in_progress(self, client, small_pool):
        payload = {
            "positions": POSITIONS,
            "lineup": lineup_payload(small_pool, ids=("qb1",), slots=("QB",)),
            "require_complete": False,
        }
        body = client.post("/api/lineups/validate", json=payload, headers=headers()).json()
        assert body["is_valid"]

    def test_bad_slot_configuration(self, client, small_pool):
        payload = {"positions": {"QB": 0}, "lineup": lineup_payload(small_pool)}
        response = client.post("/api/lineups/validate", json=payload, headers=headers())
        assert response.status_code == 422


class TestSaveEndpoint:
    def test_save_valid_lineup(self, client, small_pool):
        payload = {"positions": POSITIONS, "lineup": lineup_payload(small_pool), "slate_id": 3}
        response = client.post("/api/lineups", json=payload, headers=headers())
        assert response.status_code == 201
        body = response.json()
        assert body["user_id"] == "u1"
        assert body["slate_id"] == 3
        assert body["total_salary"] == 33000

    def test_invalid_lineup_not_saved(self, client, small_pool):
        payload = {
            "positions": POSITIONS,
            "lineup": lineup_payload(small_pool, ids=("qb1", "rb1", "rb2"), slots=("QB", "RB", "RB")),
        }
        response = client.post("/api/lineups", json=payload, headers=headers())
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "invalid_lineup"
        assert detail["violations"][0]["slot"] == "FLEX"


class TestOptimizeEndpoint:
    def payload(self, small_pool, **extra):
        return {"positions": POSITIONS, "players": [player_payload(p) for p in small_pool], **extra}

    def test_free_user_gets_upgrade_prompt(self, client, small_pool):
        response = client.post("/api/optimize/lineup", json=self.payload(small_pool), headers=headers())
        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["code"] == "insufficient_tier"
        assert detail["required_tier"] == "PRO"
        assert detail["current_tier"] == "FREE"

    def test_pro_user_gets_lineup(self, client, small_pool, pro_user):
        response = client.post(
            "/api/optimize/lineup", json=self.payload(small_pool), headers=headers(pro_user)
        )
        assert response.status_code == 200
        body = response.json()
        lineup = body["lineups"][0]
        assert {p["player_id"] for p in lineup["lineup"]} == {"qb1", "rb1", "rb2", "wr1"}
        assert lineup["total_salary"] == 33000
        assert lineup["projected_points"] == 85.0
        assert lineup["stacking_analysis"]["total_stacks"] == 1
        assert body["quota_remaining"] == 999

    def test_multiple_lineups(self, client, small_pool, pro_user):
        response = client.post(
            "/api/optimize/lineup",
            json=self.payload(small_pool, num_lineups=3),
            headers=headers(pro_user),
        )
        assert response.status_code == 200
        assert len(response.json()["lineups"]) >= 2

    def test_candidates_from_slate(self, client, small_pool, pro_user, db_session):
        PlayerPoolRepository(db_session).add_players(11, small_pool)
        response = client.post(
            "/api/optimize/lineup",
            json={"positions": POSITIONS, "slate_id": 11, "locked_ids": ["te1"]},
            headers=headers(pro_user),
        )
        assert response.status_code == 200
        assert "te1" in {p["player_id"] for p in response.json()["lineups"][0]["lineup"]}

    def test_empty_slate(self, client, pro_user):
        response = client.post(
            "/api/optimize/lineup",
            json={"positions": POSITIONS, "slate_id": 999},
            headers=headers(pro_user),
        )
        assert response.status_code == 404

    def test_slot_names_differing_only_in_case(self, client, small_pool, pro_user):
        positions = {"QB": 1, "rb": 1, "RB": 2}
        response = client.post(
            "/api/optimize/lineup",
            json={"positions": positions, "players": [player_payload(p) for p in small_pool]},
            headers=headers(pro_user),
        )
        assert response.status_code == 422

    def test_missing_candidates(self, client, pro_user):
        response = client.post(
            "/api/optimize/lineup", json={"positions": POSITIONS}, headers=headers(pro_user)
        )
        assert response.status_code == 422

    def test_infeasible(self, client, small_pool, pro_user):
        response = client.post(
            "/api/optimize/lineup",
            json=self.payload(small_pool, salary_cap=20000),
            headers=headers(pro_user),
        )
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "infeasible"
        assert detail["reason"] == "salary_cap"

    def test_internal_inconsistency_is_generic_500(self, client, small_pool, pro_user, monkeypatch):
        def broken(self, *args, **kwargs):
            raise InternalInconsistencyError("roster rejected", ["detail that must not leak"])

        monkeypatch.setattr(LineupBuilder, "optimize", broken)
        response = client.post(
            "/api/optimize/lineup", json=self.payload(small_pool), headers=headers(pro_user)
        )
        assert response.status_code == 500
        assert "leak" not in response.text


class TestQuotaResponses:
    def test_quota_exceeded_has_retry_after(self, app, client, small_pool):
        app.state.gate = FeatureGate(
            store=InMemoryRateLimitStore(), config=Settings(free_hourly_quota=2)
        )
        payload = {"positions": POSITIONS, "lineup": lineup_payload(small_pool)}

        for _ in range(2):
            assert client.post("/api/lineups/validate", json=payload, headers=headers()).status_code == 200

        response = client.post("/api/lineups/validate", json=payload, headers=headers())
        assert response.status_code == 429
        retry_after = int(response.headers["Retry-After"])
        assert 1 <= retry_after <= 3600
        assert response.json()["detail"]["retry_after_seconds"] == retry_after

        # Other users keep their own quota
        other = client.post("/api/lineups/validate", json=payload, headers=headers("u2"))
        assert other.status_code == 200

    def test_store_failure_is_503(self, app, client, small_pool):
        class BrokenStore(RateLimitStore):
            def increment_with_ceiling(self, user_id, ceiling, now, window):
                raise RateLimitStoreError("unavailable")

            def get_window(self, user_id):
                return None

        app.state.gate = FeatureGate(store=BrokenStore(), config=Settings())
        payload = {"positions": POSITIONS, "lineup": lineup_payload(small_pool)}
        response = client.post("/api/lineups/validate", json=payload, headers=headers())
        assert response.status_code == 503
