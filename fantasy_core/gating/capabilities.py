"""Capability requirements: which tier unlocks which route.

Each gated action maps to exactly one minimum tier. Route keys are
upper-cased on the way in so "lineup_optimizer" and "LINEUP_OPTIMIZER" name
the same capability. A route key missing from the table is not gated.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from ..exceptions import ConfigurationError
from .tiers import SubscriptionTier, meets_tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilityRequirement:
    """Minimum tier for a route, and whether it counts against the quota."""

    route_key: str
    required_tier: SubscriptionTier
    metered: bool = False
    description: str = ""


DEFAULT_REQUIREMENTS: tuple[CapabilityRequirement, ...] = (
    CapabilityRequirement("LINEUP_VALIDATE", SubscriptionTier.FREE, True, "Validate a lineup"),
    CapabilityRequirement("LINEUP_SAVE", SubscriptionTier.FREE, True, "Save a lineup or draft pick"),
    CapabilityRequirement("AI_INSIGHTS", SubscriptionTier.FREE, True, "Basic AI insights"),
    CapabilityRequirement(
        "LINEUP_OPTIMIZER", SubscriptionTier.PRO, True, "Advanced lineup optimizer"
    ),
    CapabilityRequirement(
        "ADVANCED_AI_INSIGHTS", SubscriptionTier.PRO, True, "Advanced AI insights"
    ),
    CapabilityRequirement("VOICE_ASSISTANT", SubscriptionTier.PRO, False, "Voice assistant"),
    CapabilityRequirement("TRADE_ANALYZER", SubscriptionTier.PRO, False, "Trade analyzer"),
    CapabilityRequirement("PRIORITY_SUPPORT", SubscriptionTier.PRO, False, "Priority support"),
    CapabilityRequirement("API_ACCESS", SubscriptionTier.ELITE, True, "Full API access"),
    CapabilityRequirement(
        "CUSTOM_INTEGRATIONS", SubscriptionTier.ELITE, False, "Custom integrations"
    ),
)


def normalize_route_key(route_key: str) -> str:
    return route_key.strip().upper()


class CapabilityTable:
    """Lookup table from route key to its CapabilityRequirement."""

    def __init__(self, requirements: Iterable[CapabilityRequirement] = DEFAULT_REQUIREMENTS):
        self._requirements: dict[str, CapabilityRequirement] = {}
        for requirement in requirements:
            key = normalize_route_key(requirement.route_key)
            if key in self._requirements:
                raise ConfigurationError(f"Capability {key} declared more than once")
            self._requirements[key] = requirement

    @classmethod
    def with_overrides(cls, overrides: Mapping[str, str]) -> "CapabilityTable":
        """Default table with required tiers replaced or added from config.

        Unknown tier names are rejected rather than parsed to FREE, since an
        override typo would otherwise silently open a paid feature.
        """
        merged = {normalize_route_key(r.route_key): r for r in DEFAULT_REQUIREMENTS}
        for route_key, tier_name in overrides.items():
            key = normalize_route_key(route_key)
            try:
                tier = SubscriptionTier(str(tier_name).strip().upper())
            except ValueError as e:
                raise ConfigurationError(
                    f"Unknown tier {tier_name!r} for capability {key}"
                ) from e

            existing = merged.get(key)
            merged[key] = CapabilityRequirement(
                route_key=key,
                required_tier=tier,
                metered=existing.metered if existing else False,
                description=existing.description if existing else "",
            )
            logger.info(f"Capability {key} requires {tier.value} (override)")
        return cls(merged.values())

    def get(self, route_key: str) -> CapabilityRequirement | None:
        return self._requirements.get(normalize_route_key(route_key))

    def capabilities_for(self, tier: SubscriptionTier) -> list[CapabilityRequirement]:
        """Every capability the tier unlocks, sorted by route key."""
        return sorted(
            (r for r in self._requirements.values() if meets_tier(tier, r.required_tier)),
            key=lambda r: r.route_key,
        )

    def __iter__(self):
        return iter(sorted(self._requirements.values(), key=lambda r: r.route_key))

    def __len__(self) -> int:
        return len(self._requirements)
