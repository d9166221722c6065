"""
Subscription endpoints: plan comparison and the caller's current access.

Endpoints:
- /subscriptions/plans: Every plan with price, hourly quota and capabilities
- /subscriptions/access: The caller's tier, unlocked capabilities and quota usage

Neither route is gated; /access reads the quota without consuming it.
"""

from fastapi import APIRouter, Depends

from ...gating.gate import FeatureGate
from ...gating.tiers import PLANS, SubscriptionTier
from ..dependencies import get_current_user_id, get_gate, get_user_tier
from ..schemas import AccessResponse, CapabilityOut, PlanResponse, QuotaResponse

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(gate: FeatureGate = Depends(get_gate)) -> list[PlanResponse]:
    """Plan comparison, cheapest first."""
    return [
        PlanResponse.from_plan(
            plan,
            gate.config.quota_for(tier),
            [c.route_key for c in gate.capabilities.capabilities_for(tier)],
        )
        for tier, plan in sorted(PLANS.items(), key=lambda item: item[0].rank)
    ]


@router.get("/access", response_model=AccessResponse)
def get_access(
    user_id: str = Depends(get_current_user_id),
    tier: SubscriptionTier = Depends(get_user_tier),
    gate: FeatureGate = Depends(get_gate),
) -> AccessResponse:
    """What the caller's tier unlocks and how much quota is left this window."""
    return AccessResponse(
        user_id=user_id,
        tier=tier.value,
        capabilities=[
            CapabilityOut(
                route_key=c.route_key,
                required_tier=c.required_tier.value,
                metered=c.metered,
                description=c.description,
            )
            for c in gate.capabilities.capabilities_for(tier)
        ],
        quota=QuotaResponse.from_usage(gate.usage(user_id, tier)),
    )
