"""Tests for the database repositories."""

from datetime import datetime, timedelta, timezone

from conftest import make_player
from sqlalchemy.exc import OperationalError

from fantasy_core.database.models import SavedLineup, SlatePlayer
from fantasy_core.database.repositories import (
    LineupRepository,
    PlayerPoolRepository,
    SubscriptionRepository,
)
from fantasy_core.gating.tiers import SubscriptionTier
from fantasy_core.optimization.roster import Roster

NOW = datetime.now(timezone.utc)


def test_player_pool_round_trip(db_session, small_pool):
    repo = PlayerPoolRepository(db_session)
    assert repo.add_players(7, small_pool) == len(small_pool)

    pool = repo.get_player_pool(7)
    assert sorted(p.player_id for p in pool) == sorted(p.player_id for p in small_pool)
    assert {p.player_id: p for p in pool}["qb1"] == small_pool[0]
    assert repo.get_player_pool(8) == []


def test_player_pool_filters(db_session, small_pool):
    repo = PlayerPoolRepository(db_session)
    repo.add_players(7, small_pool)
    db_session.query(SlatePlayer).filter(SlatePlayer.player_id == "rb1").update({"status": "Out"})
    db_session.commit()

    ids = {p.player_id for p in repo.get_player_pool(7)}
    assert "rb1" not in ids

    rbs = repo.get_player_pool(7, positions=["RB"], min_cost=6000)
    assert [p.player_id for p in rbs] == ["rb2"]

    cheap = repo.get_player_pool(7, max_cost=5500)
    assert {p.player_id for p in cheap} == {"rb3", "te1"}


class TestSubscriptionRepository:
    def test_no_subscription_is_free(self, db_session):
        assert SubscriptionRepository(db_session).resolve_tier("nobody", NOW) == SubscriptionTier.FREE

    def test_active_subscription(self, db_session, add_subscription):
        add_subscription("u1", "PRO")
        assert SubscriptionRepository(db_session).resolve_tier("u1", NOW) == SubscriptionTier.PRO

    def test_lapsed_subscription(self, db_session, add_subscription):
        add_subscription("u1", "ELITE", period_end=datetime(2020, 1, 1))
        assert SubscriptionRepository(db_session).resolve_tier("u1", NOW) == SubscriptionTier.FREE

    def test_cancelled_subscription(self, db_session, add_subscription):
        add_subscription("u1", "ELITE", status="CANCELLED")
        assert SubscriptionRepository(db_session).resolve_tier("u1", NOW) == SubscriptionTier.FREE

    def test_latest_subscription_wins(self, db_session, add_subscription):
        add_subscription("u1", "PRO")
        add_subscription("u1", "ELITE", period_end=(NOW + timedelta(days=365)).replace(tzinfo=None))
        assert SubscriptionRepository(db_session).resolve_tier("u1", NOW) == SubscriptionTier.ELITE

    def test_database_failure_is_free(self, db_session, monkeypatch):
        repo = SubscriptionRepository(db_session)

        def broken(user_id):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(repo, "latest_subscription", broken)
        assert repo.resolve_tier("u1", NOW) == SubscriptionTier.FREE


def test_save_lineup(db_session):
    roster = Roster.from_pairs(
        [("QB", make_player("qb1", "QB", cost=8000, points=24.0)),
         ("RB", make_player("rb1", "RB", cost=9000, points=22.0))]
    )
    saved = LineupRepository(db_session).save("u1", roster, slate_id=7)

    assert saved.id is not None
    assert saved.total_salary == 17000
    assert saved.slots == [{"slot": "QB", "player_id": "qb1"}, {"slot": "RB", "player_id": "rb1"}]
    assert db_session.query(SavedLineup).filter(SavedLineup.user_id == "u1").count() == 1
