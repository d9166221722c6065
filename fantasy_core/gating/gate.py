"""Feature gate: tier checks and metered quota enforcement.

The gate answers one question per request: may this caller use this
capability right now? The answer is a Decision value, never an exception,
so route handlers can turn it into an upgrade prompt or a Retry-After
response without parsing messages.

Decision flow for authorize():
1. Route not in the capability table -> allowed, nothing counted.
2. Caller's tier below the required tier -> denied (INSUFFICIENT_TIER).
   The quota is not touched.
3. Route not metered, or the tier's ceiling is 0 (unlimited) -> allowed.
4. Otherwise one atomic increment_with_ceiling on the store. A rejected
   increment -> denied (QUOTA_EXCEEDED) with seconds until the window resets.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from ..config.settings import Settings, settings as default_settings
from .capabilities import CapabilityTable
from .store import InMemoryRateLimitStore, RateLimitStore
from .tiers import SubscriptionTier, meets_tier, parse_tier

logger = logging.getLogger(__name__)

UNLIMITED = 0


class DenialReason(Enum):
    INSUFFICIENT_TIER = "insufficient_tier"
    QUOTA_EXCEEDED = "quota_exceeded"


@dataclass(frozen=True)
class Decision:
    """Outcome of a gate check.

    Denied decisions carry what the caller needs to explain the denial:
    the required tier for INSUFFICIENT_TIER, retry_after_seconds for
    QUOTA_EXCEEDED.
    """

    allowed: bool
    route_key: str
    reason: DenialReason | None = None
    required_tier: SubscriptionTier | None = None
    retry_after_seconds: int | None = None
    quota_remaining: int | None = None  # None when not metered or unlimited

    @classmethod
    def allow(cls, route_key: str, quota_remaining: int | None = None) -> "Decision":
        return cls(allowed=True, route_key=route_key, quota_remaining=quota_remaining)

    @classmethod
    def insufficient_tier(cls, route_key: str, required_tier: SubscriptionTier) -> "Decision":
        return cls(
            allowed=False,
            route_key=route_key,
            reason=DenialReason.INSUFFICIENT_TIER,
            required_tier=required_tier,
        )

    @classmethod
    def quota_exceeded(cls, route_key: str, retry_after_seconds: int) -> "Decision":
        return cls(
            allowed=False,
            route_key=route_key,
            reason=DenialReason.QUOTA_EXCEEDED,
            retry_after_seconds=retry_after_seconds,
            quota_remaining=0,
        )


@dataclass(frozen=True)
class QuotaUsage:
    """Read-only view of a caller's quota for the access endpoint."""

    tier: SubscriptionTier
    ceiling: int
    used: int
    remaining: int | None
    reset_at: datetime | None

    @property
    def unlimited(self) -> bool:
        return self.ceiling == UNLIMITED


class FeatureGate:
    """Authorizes capability use by tier and meters quota-bearing routes."""

    def __init__(
        self,
        capabilities: CapabilityTable | None = None,
        store: RateLimitStore | None = None,
        config: Settings | None = None,
    ):
        self.config = config if config is not None else default_settings
        self.capabilities = (
            capabilities
            if capabilities is not None
            else CapabilityTable.with_overrides(self.config.capability_overrides)
        )
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.window = timedelta(seconds=self.config.rate_limit_window_seconds)

    def authorize(
        self,
        user_id: str,
        user_tier,
        route_key: str,
        now: datetime | None = None,
    ) -> Decision:
        """Decide whether `user_id` at `user_tier` may invoke `route_key`.

        Args:
            user_id: Identity the quota is counted against
            user_tier: SubscriptionTier or tier name; missing/unknown means FREE
            route_key: Capability being invoked
            now: Current time (defaults to UTC now)

        Returns:
            Decision; denials never consume quota
        """
        now = now or datetime.now(timezone.utc)
        requirement = self.capabilities.get(route_key)
        if requirement is None:
            return Decision.allow(route_key)

        tier = parse_tier(user_tier)
        if not meets_tier(tier, requirement.required_tier):
            logger.info(
                f"Denied {requirement.route_key} for user {user_id}: "
                f"{tier.value} < {requirement.required_tier.value}"
            )
            return Decision.insufficient_tier(requirement.route_key, requirement.required_tier)

        if not requirement.metered:
            return Decision.allow(requirement.route_key)

        return self._apply_quota(user_id, tier, requirement.route_key, now)

    def _apply_quota(
        self, user_id: str, tier: SubscriptionTier, route_key: str, now: datetime
    ) -> Decision:
        ceiling = self.config.quota_for(tier)
        if ceiling == UNLIMITED:
            return Decision.allow(route_key)

        outcome = self.store.increment_with_ceiling(user_id, ceiling, now, self.window)
        if not outcome.admitted:
            retry_after = retry_after_seconds(outcome.reset_at, now)
            logger.info(
                f"Quota exceeded on {route_key} for user {user_id} "
                f"({outcome.count}/{ceiling}), retry in {retry_after}s"
            )
            return Decision.quota_exceeded(route_key, retry_after)

        return Decision.allow(route_key, quota_remaining=max(ceiling - outcome.count, 0))

    def usage(self, user_id: str, user_tier, now: datetime | None = None) -> QuotaUsage:
        """Current quota consumption without counting a call."""
        now = now or datetime.now(timezone.utc)
        tier = parse_tier(user_tier)
        ceiling = self.config.quota_for(tier)
        current = self.store.get_window(user_id)

        if current is None or now > _on_clock_of(current.reset_at, now):
            used, reset_at = 0, None
        else:
            used, reset_at = current.count, _on_clock_of(current.reset_at, now)

        remaining = None if ceiling == UNLIMITED else max(ceiling - used, 0)
        return QuotaUsage(tier=tier, ceiling=ceiling, used=used, remaining=remaining, reset_at=reset_at)


def retry_after_seconds(reset_at: datetime, now: datetime) -> int:
    """Whole seconds until `reset_at`, at least 1."""
    delta = (_on_clock_of(reset_at, now) - now).total_seconds()
    return max(1, math.ceil(delta))


def _on_clock_of(moment: datetime, now: datetime) -> datetime:
    # Database-backed windows come back naive UTC
    if now.tzinfo is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
