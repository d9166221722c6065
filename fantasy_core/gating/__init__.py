"""Subscription feature gating and metered rate limiting."""

from .capabilities import CapabilityRequirement, CapabilityTable
from .gate import Decision, DenialReason, FeatureGate, QuotaUsage
from .store import (
    InMemoryRateLimitStore,
    RateLimitStore,
    RateLimitWindow,
    SqlAlchemyRateLimitStore,
    WindowOutcome,
)
from .tiers import (
    PLANS,
    SubscriptionStatus,
    SubscriptionTier,
    TierPlan,
    TierResolver,
    effective_tier,
    get_plan,
    meets_tier,
    parse_tier,
)

__all__ = [
    "PLANS",
    "CapabilityRequirement",
    "CapabilityTable",
    "Decision",
    "DenialReason",
    "FeatureGate",
    "InMemoryRateLimitStore",
    "QuotaUsage",
    "RateLimitStore",
    "RateLimitWindow",
    "SqlAlchemyRateLimitStore",
    "SubscriptionStatus",
    "SubscriptionTier",
    "TierPlan",
    "TierResolver",
    "WindowOutcome",
    "effective_tier",
    "get_plan",
    "meets_tier",
    "parse_tier",
]
