"""Subscription tiers, their total order, and the plan catalogue.

Every tier decision in the codebase goes through `meets_tier`. Handlers never
compare tier strings directly, which keeps access monotonic: a higher tier
can never lose a capability a lower tier has.

Tier parsing is fail-closed. A missing, empty or unknown tier resolves to
FREE, the least privileged tier.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)


class SubscriptionTier(Enum):
    """Subscription levels, ordered FREE < PRO < ELITE."""

    FREE = "FREE"
    PRO = "PRO"
    ELITE = "ELITE"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, SubscriptionTier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, SubscriptionTier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, SubscriptionTier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, SubscriptionTier):
            return NotImplemented
        return self.rank >= other.rank


_TIER_RANK = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.PRO: 1,
    SubscriptionTier.ELITE: 2,
}


class SubscriptionStatus(Enum):
    """Billing status of a stored subscription."""

    ACTIVE = "ACTIVE"
    TRIAL = "TRIAL"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


def parse_tier(value) -> SubscriptionTier:
    """Resolve a tier from user input, defaulting to FREE.

    Args:
        value: A SubscriptionTier, a tier name in any case, or None

    Returns:
        The matching tier, or FREE if the value is missing or unknown
    """
    if isinstance(value, SubscriptionTier):
        return value
    if value is None:
        return SubscriptionTier.FREE
    try:
        return SubscriptionTier(str(value).strip().upper())
    except ValueError:
        logger.warning(f"Unparseable subscription tier {value!r}, defaulting to FREE")
        return SubscriptionTier.FREE


def meets_tier(user_tier: SubscriptionTier, required_tier: SubscriptionTier) -> bool:
    """True when `user_tier` meets or exceeds `required_tier`."""
    return parse_tier(user_tier).rank >= parse_tier(required_tier).rank


def effective_tier(
    tier,
    status,
    period_end: datetime | None,
    now: datetime,
) -> SubscriptionTier:
    """Tier a stored subscription actually confers at `now`.

    Only ACTIVE and TRIAL subscriptions count, and only until their billing
    period ends. Cancelled, expired or lapsed subscriptions fall back to FREE.
    """
    if not isinstance(status, SubscriptionStatus):
        try:
            status = SubscriptionStatus(str(status).strip().upper())
        except ValueError:
            return SubscriptionTier.FREE

    if status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL):
        return SubscriptionTier.FREE
    if period_end is not None and _as_naive_utc(period_end) < _as_naive_utc(now):
        return SubscriptionTier.FREE
    return parse_tier(tier)


def _as_naive_utc(moment: datetime) -> datetime:
    # SQLite round-trips datetimes without tzinfo
    if moment.tzinfo is not None:
        return moment.replace(tzinfo=None) - moment.utcoffset()
    return moment


class TierResolver(ABC):
    """Looks up the tier an authenticated user currently holds."""

    @abstractmethod
    def resolve_tier(self, user_id: str, now: datetime) -> SubscriptionTier:
        """Current tier for `user_id`; implementations return FREE when unsure."""


@dataclass(frozen=True)
class TierPlan:
    """Marketing and pricing information for one tier."""

    tier: SubscriptionTier
    name: str
    description: str
    monthly_price: float
    yearly_price: float | None = None
    currency: str = "USD"

    @property
    def yearly_savings(self) -> float | None:
        """Savings of yearly billing over twelve monthly payments."""
        if self.yearly_price is None:
            return None
        return round(self.monthly_price * 12 - self.yearly_price, 2)


PLANS: dict[SubscriptionTier, TierPlan] = {
    SubscriptionTier.FREE: TierPlan(
        tier=SubscriptionTier.FREE,
        name="Fantasy Starter",
        description="Perfect for casual fantasy managers",
        monthly_price=0.0,
    ),
    SubscriptionTier.PRO: TierPlan(
        tier=SubscriptionTier.PRO,
        name="Fantasy Pro",
        description="Advanced features for serious managers",
        monthly_price=19.99,
        yearly_price=199.99,
    ),
    SubscriptionTier.ELITE: TierPlan(
        tier=SubscriptionTier.ELITE,
        name="Fantasy Elite",
        description="Ultimate fantasy AI experience",
        monthly_price=49.99,
        yearly_price=499.99,
    ),
}


def get_plan(tier) -> TierPlan:
    return PLANS[parse_tier(tier)]
