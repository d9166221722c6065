"""SQLAlchemy database models for the fantasy core collaborators.

This file defines the tables the gate and the constraint engine read from and
write to. The core logic never touches them directly; repositories in
repositories.py (and the database-backed rate-limit store) translate between
rows and the plain dataclasses the engine works with.

Model Categories:
1. Player Pool: Candidate players per slate (salary, projection, ownership)
2. Subscriptions: Which tier a user holds and whether it is still in force
3. Rate Limiting: One counter window per user
4. Lineups: Rosters users saved after validation
"""

from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import Float
from sqlalchemy import Index
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import Boolean
from sqlalchemy import String
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

# Base class for all database models
Base = declarative_base()


class SlatePlayer(Base):
    """A player available on a DFS slate.

    One row per (slate, player). Salary and ownership are slate specific, so
    the same real-world player appears once per slate.
    """

    __tablename__ = "slate_players"

    id = Column(Integer, primary_key=True, index=True)
    slate_id = Column(Integer, nullable=False, index=True)
    player_id = Column(String(50), nullable=False)  # External player identifier

    name = Column(String(100), nullable=False)
    position = Column(String(10), nullable=False)  # QB, RB, WR, TE, DST
    team_abbr = Column(String(5), nullable=False, default="")

    salary = Column(Integer, nullable=False)
    projected_points = Column(Float, nullable=False, default=0.0)
    ownership_percent = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, default="Active")

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("slate_id", "player_id", name="uq_slate_player"),
        Index("idx_slate_position", "slate_id", "position"),
    )


class UserSubscription(Base):
    """A user's subscription as recorded by the billing collaborator.

    Tier and status are stored as plain strings; effective_tier() turns them
    into the tier the gate should apply, falling back to FREE for anything
    cancelled, expired, lapsed or unreadable.
    """

    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)

    tier = Column(String(10), nullable=False, default="FREE")  # FREE, PRO, ELITE
    status = Column(String(12), nullable=False, default="ACTIVE")  # ACTIVE, TRIAL, CANCELLED, EXPIRED
    billing_interval = Column(String(10), nullable=False, default="monthly")

    current_period_start = Column(DateTime)
    current_period_end = Column(DateTime)
    cancel_at_period_end = Column(Boolean, default=False)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class RateLimitWindowRecord(Base):
    """Hourly counter for metered capabilities, one row per user.

    reset_at is stored as naive UTC.
    """

    __tablename__ = "rate_limit_windows"

    user_id = Column(String(64), primary_key=True)
    count = Column(Integer, nullable=False, default=0)
    reset_at = Column(DateTime, nullable=False)


class SavedLineup(Base):
    """A validated roster persisted for a user.

    slots holds the ordered assignments as [{"slot": "QB", "player_id": "..."}].
    """

    __tablename__ = "saved_lineups"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    slate_id = Column(Integer, nullable=True, index=True)

    slots = Column(JSON, nullable=False)
    total_salary = Column(Integer, nullable=False)
    projected_points = Column(Float, nullable=False)

    created_at = Column(DateTime, default=func.now())
