"""Shared pytest fixtures.

Database tests run against an in-memory SQLite engine. StaticPool keeps a
single connection alive so every session (and every thread the TestClient
uses) sees the same in-memory database.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fantasy_core.api.main import create_app
from fantasy_core.database.connection import get_db
from fantasy_core.database.init_db import create_database
from fantasy_core.database.models import UserSubscription
from fantasy_core.optimization.roster import Player, slots_from_counts


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def add_subscription(db_session):
    """Insert a subscription row: add_subscription("u1", "PRO")."""

    def _add(user_id, tier, status="ACTIVE", period_end=None):
        if period_end is None:
            period_end = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(days=30)
        db_session.add(
            UserSubscription(
                user_id=user_id,
                tier=tier,
                status=status,
                current_period_end=period_end,
            )
        )
        db_session.commit()

    return _add


@pytest.fixture
def app(session_factory):
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def make_player(player_id, position, team="", cost=5000, points=10.0, ownership=0.0, name=None):
    return Player(
        player_id=player_id,
        name=name or player_id,
        position=position,
        team=team,
        cost=cost,
        projected_points=points,
        ownership_percent=ownership,
    )


@pytest.fixture
def small_slots():
    """QB, 2 RB and a FLEX (RB/WR/TE)."""
    return slots_from_counts({"QB": 1, "RB": 2, "FLEX": 1})


@pytest.fixture
def small_pool():
    return [
        make_player("qb1", "QB", "KC", 8000, 24.0, 30.0),
        make_player("qb2", "QB", "BUF", 7000, 20.0, 10.0),
        make_player("rb1", "RB", "KC", 9000, 22.0, 40.0),
        make_player("rb2", "RB", "SF", 7500, 18.0, 25.0),
        make_player("rb3", "RB", "BUF", 5000, 12.0, 8.0),
        make_player("wr1", "WR", "KC", 8500, 21.0, 35.0),
        make_player("wr2", "WR", "BUF", 6000, 15.0, 12.0),
        make_player("te1", "TE", "KC", 5500, 11.0, 15.0),
    ]


def player_payload(player: Player) -> dict:
    return {
        "player_id": player.player_id,
        "name": player.name,
        "position": player.position,
        "team": player.team,
        "cost": player.cost,
        "projected_points": player.projected_points,
        "ownership_percent": player.ownership_percent,
    }
