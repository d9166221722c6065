"""Repository-style access to the collaborator tables.

The gate and the constraint engine work with plain dataclasses; these
classes translate to and from ORM rows so route handlers and the CLI never
build queries themselves.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..gating.tiers import SubscriptionTier, TierResolver, effective_tier
from ..optimization.roster import Player, Roster
from .models import SavedLineup, SlatePlayer, UserSubscription

logger = logging.getLogger(__name__)


class PlayerPoolRepository:
    """Candidate players per slate (the sports-data collaborator)."""

    def __init__(self, db: Session):
        self.db = db

    def get_player_pool(
        self,
        slate_id: int,
        positions: list[str] | None = None,
        min_cost: int | None = None,
        max_cost: int | None = None,
    ) -> list[Player]:
        """Get available players for optimization.

        Filtering Strategy:
        - Only active players (not injured/inactive)
        - Only specified positions
        - Only players within the salary range, when one is given

        Args:
            slate_id: Slate to load
            positions: Positions to include (default: all)
            min_cost: Minimum salary threshold (removes cheap backups)
            max_cost: Maximum salary threshold

        Returns:
            List of Player candidates ordered by player id
        """
        query = self.db.query(SlatePlayer).filter(
            SlatePlayer.slate_id == slate_id,
            SlatePlayer.status == "Active",
        )
        if positions:
            query = query.filter(SlatePlayer.position.in_(positions))
        if min_cost is not None:
            query = query.filter(SlatePlayer.salary >= min_cost)
        if max_cost is not None:
            query = query.filter(SlatePlayer.salary <= max_cost)

        rows = query.order_by(SlatePlayer.player_id).all()
        if not rows:
            logger.warning(f"No players found for slate {slate_id}")
            return []

        logger.info(f"Found {len(rows)} players for slate {slate_id}")
        return [
            Player(
                player_id=row.player_id,
                name=row.name,
                position=row.position,
                team=row.team_abbr or "",
                cost=row.salary,
                projected_points=row.projected_points or 0.0,
                ownership_percent=row.ownership_percent or 0.0,
            )
            for row in rows
        ]

    def add_players(self, slate_id: int, players: Iterable[Player]) -> int:
        """Insert players for a slate and commit. Returns the number added."""
        rows = [
            SlatePlayer(
                slate_id=slate_id,
                player_id=p.player_id,
                name=p.name,
                position=p.position,
                team_abbr=p.team,
                salary=p.cost,
                projected_points=p.projected_points,
                ownership_percent=p.ownership_percent,
            )
            for p in players
        ]
        self.db.add_all(rows)
        self.db.commit()
        return len(rows)


class SubscriptionRepository(TierResolver):
    """Tier lookup backed by the user_subscriptions table.

    Any failure to read the subscription resolves to FREE so a database
    outage can never grant paid access.
    """

    def __init__(self, db: Session):
        self.db = db

    def latest_subscription(self, user_id: str) -> UserSubscription | None:
        return (
            self.db.query(UserSubscription)
            .filter(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
            .first()
        )

    def resolve_tier(self, user_id: str, now: datetime) -> SubscriptionTier:
        try:
            subscription = self.latest_subscription(user_id)
        except SQLAlchemyError:
            logger.exception(f"Could not load subscription for user {user_id}, using FREE")
            return SubscriptionTier.FREE

        if subscription is None:
            return SubscriptionTier.FREE
        return effective_tier(
            subscription.tier,
            subscription.status,
            subscription.current_period_end,
            now,
        )


class LineupRepository:
    """Persistence for validated rosters."""

    def __init__(self, db: Session):
        self.db = db

    def save(self, user_id: str, roster: Roster, slate_id: int | None = None) -> SavedLineup:
        lineup = SavedLineup(
            user_id=user_id,
            slate_id=slate_id,
            slots=[{"slot": a.slot, "player_id": a.player.player_id} for a in roster.assignments],
            total_salary=roster.total_cost,
            projected_points=roster.projected_points,
        )
        self.db.add(lineup)
        self.db.commit()
        self.db.refresh(lineup)
        logger.info(f"Saved lineup {lineup.id} for user {user_id}")
        return lineup
