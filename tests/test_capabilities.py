"""Tests for the capability table and config overrides."""

import pytest

from fantasy_core.exceptions import ConfigurationError
from fantasy_core.gating.capabilities import (
    DEFAULT_REQUIREMENTS,
    CapabilityRequirement,
    CapabilityTable,
)
from fantasy_core.gating.tiers import SubscriptionTier


def test_default_table():
    table = CapabilityTable()
    assert len(table) == len(DEFAULT_REQUIREMENTS)

    optimizer = table.get("LINEUP_OPTIMIZER")
    assert optimizer.required_tier == SubscriptionTier.PRO
    assert optimizer.metered

    assert table.get("lineup_optimizer") is optimizer
    assert table.get("UNKNOWN_ROUTE") is None


def test_capabilities_for_tier():
    table = CapabilityTable()
    free = {c.route_key for c in table.capabilities_for(SubscriptionTier.FREE)}
    pro = {c.route_key for c in table.capabilities_for(SubscriptionTier.PRO)}
    elite = {c.route_key for c in table.capabilities_for(SubscriptionTier.ELITE)}

    assert "LINEUP_VALIDATE" in free
    assert "LINEUP_OPTIMIZER" not in free
    assert "LINEUP_OPTIMIZER" in pro
    assert "API_ACCESS" not in pro
    assert free < pro < elite
    assert len(elite) == len(table)


def test_overrides_replace_and_add():
    table = CapabilityTable.with_overrides(
        {"trade_analyzer": "elite", "DRAFT_ASSISTANT": "PRO"}
    )

    trade = table.get("TRADE_ANALYZER")
    assert trade.required_tier == SubscriptionTier.ELITE
    assert trade.description == "Trade analyzer"

    added = table.get("DRAFT_ASSISTANT")
    assert added.required_tier == SubscriptionTier.PRO
    assert not added.metered
    assert len(table) == len(DEFAULT_REQUIREMENTS) + 1


def test_override_with_unknown_tier_is_rejected():
    with pytest.raises(ConfigurationError, match="PLATINUM"):
        CapabilityTable.with_overrides({"LINEUP_OPTIMIZER": "PLATINUM"})


def test_duplicate_route_keys_rejected():
    requirements = [
        CapabilityRequirement("LINEUP_SAVE", SubscriptionTier.FREE),
        CapabilityRequirement("lineup_save", SubscriptionTier.PRO),
    ]
    with pytest.raises(ConfigurationError):
        CapabilityTable(requirements)
