"""FastAPI dependencies: caller identity, tier resolution and the feature gate.

Authentication is handled upstream; the authenticated user id arrives in the
X-User-Id header. Every gated route declares
`Depends(require_capability("ROUTE_KEY"))`, which runs the gate before the
handler body and turns a denial into an HTTP response:

- INSUFFICIENT_TIER -> 403 with the required tier (for an upgrade prompt)
- QUOTA_EXCEEDED    -> 429 with a Retry-After header
"""

import logging
from datetime import datetime, timezone

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from ..config.settings import Settings
from ..database.connection import SessionLocal, get_db
from ..database.repositories import SubscriptionRepository
from ..exceptions import RateLimitStoreError
from ..gating.gate import Decision, DenialReason, FeatureGate
from ..gating.store import InMemoryRateLimitStore, SqlAlchemyRateLimitStore
from ..gating.tiers import SubscriptionTier, get_plan

logger = logging.getLogger(__name__)


def build_gate(config: Settings) -> FeatureGate:
    """Feature gate with the rate-limit backend selected in settings."""
    if config.rate_limit_backend == "database":
        store = SqlAlchemyRateLimitStore(SessionLocal, max_attempts=config.rate_limit_max_attempts)
    else:
        store = InMemoryRateLimitStore()
    logger.info(f"Feature gate using {config.rate_limit_backend} rate limit store")
    return FeatureGate(store=store, config=config)


def get_gate(request: Request) -> FeatureGate:
    return request.app.state.gate


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_user_tier(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> SubscriptionTier:
    return SubscriptionRepository(db).resolve_tier(user_id, datetime.now(timezone.utc))


def require_capability(route_key: str):
    """Dependency factory gating a route on `route_key`."""

    def dependency(
        user_id: str = Depends(get_current_user_id),
        tier: SubscriptionTier = Depends(get_user_tier),
        gate: FeatureGate = Depends(get_gate),
    ) -> Decision:
        try:
            decision = gate.authorize(user_id, tier, route_key)
        except RateLimitStoreError:
            logger.exception(f"Rate limit store unavailable for {route_key}")
            raise HTTPException(status_code=503, detail="Rate limiting temporarily unavailable")

        if decision.allowed:
            return decision

        if decision.reason == DenialReason.INSUFFICIENT_TIER:
            plan = get_plan(decision.required_tier)
            raise HTTPException(
                status_code=403,
                detail={
                    "code": "insufficient_tier",
                    "message": f"{decision.route_key} requires the {plan.name} plan",
                    "route_key": decision.route_key,
                    "current_tier": tier.value,
                    "required_tier": decision.required_tier.value,
                },
            )

        raise HTTPException(
            status_code=429,
            detail={
                "code": "quota_exceeded",
                "message": "Hourly quota exceeded",
                "route_key": decision.route_key,
                "retry_after_seconds": decision.retry_after_seconds,
            },
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )

    return dependency
