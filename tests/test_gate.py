"""Tests for the feature gate decision flow."""

from datetime import datetime, timedelta, timezone

import pytest

from fantasy_core.config.settings import Settings
from fantasy_core.gating.capabilities import CapabilityTable
from fantasy_core.gating.gate import DenialReason, FeatureGate, retry_after_seconds
from fantasy_core.gating.store import InMemoryRateLimitStore, SqlAlchemyRateLimitStore
from fantasy_core.gating.tiers import SubscriptionTier

FREE = SubscriptionTier.FREE
PRO = SubscriptionTier.PRO
ELITE = SubscriptionTier.ELITE

NOW = datetime(2024, 9, 8, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def config():
    return Settings(
        free_hourly_quota=100,
        pro_hourly_quota=1000,
        elite_hourly_quota=0,
        rate_limit_window_seconds=3600,
        capability_overrides={},
    )


@pytest.fixture
def gate(config):
    return FeatureGate(store=InMemoryRateLimitStore(), config=config)


def test_ungated_route_is_allowed(gate):
    decision = gate.authorize("u1", FREE, "SOMETHING_NEW", NOW)
    assert decision.allowed
    assert decision.quota_remaining is None
    assert gate.store.get_window("u1") is None


def test_free_user_denied_optimizer(gate):
    decision = gate.authorize("u1", FREE, "LINEUP_OPTIMIZER", NOW)
    assert not decision.allowed
    assert decision.reason == DenialReason.INSUFFICIENT_TIER
    assert decision.required_tier == PRO


def test_tier_denial_consumes_no_quota(gate):
    for _ in range(5):
        gate.authorize("u1", FREE, "LINEUP_OPTIMIZER", NOW)
    assert gate.store.get_window("u1") is None
    assert gate.usage("u1", FREE, NOW).used == 0


def test_unknown_tier_treated_as_free(gate):
    decision = gate.authorize("u1", "PLATINUM", "LINEUP_OPTIMIZER", NOW)
    assert decision.reason == DenialReason.INSUFFICIENT_TIER


def test_pro_user_allowed_optimizer(gate):
    decision = gate.authorize("u1", PRO, "lineup_optimizer", NOW)
    assert decision.allowed
    assert decision.route_key == "LINEUP_OPTIMIZER"
    assert decision.quota_remaining == 999


def test_unmetered_route_does_not_count(gate):
    decision = gate.authorize("u1", PRO, "TRADE_ANALYZER", NOW)
    assert decision.allowed
    assert gate.store.get_window("u1") is None


def test_free_quota_exhaustion(gate):
    """100 calls in the hour succeed; the 101st is told when to retry."""
    for i in range(100):
        decision = gate.authorize("u1", FREE, "LINEUP_VALIDATE", NOW + timedelta(seconds=i))
        assert decision.allowed
    assert decision.quota_remaining == 0

    late = NOW + timedelta(minutes=40)
    denied = gate.authorize("u1", FREE, "LINEUP_VALIDATE", late)
    assert not denied.allowed
    assert denied.reason == DenialReason.QUOTA_EXCEEDED
    assert denied.retry_after_seconds == 20 * 60
    assert gate.usage("u1", FREE, late).used == 100


def test_quota_shared_across_metered_routes(gate):
    for _ in range(60):
        gate.authorize("u1", FREE, "LINEUP_VALIDATE", NOW)
    for _ in range(40):
        gate.authorize("u1", FREE, "LINEUP_SAVE", NOW)
    assert not gate.authorize("u1", FREE, "AI_INSIGHTS", NOW).allowed


def test_window_reset_counts_resetting_call(gate):
    for _ in range(100):
        gate.authorize("u1", FREE, "LINEUP_VALIDATE", NOW)

    after_reset = NOW + timedelta(hours=1, seconds=1)
    decision = gate.authorize("u1", FREE, "LINEUP_VALIDATE", after_reset)
    assert decision.allowed
    assert decision.quota_remaining == 99
    assert gate.store.get_window("u1").count == 1


def test_elite_is_unlimited(gate):
    for _ in range(2000):
        assert gate.authorize("u1", ELITE, "API_ACCESS", NOW).allowed
    usage = gate.usage("u1", ELITE, NOW)
    assert usage.unlimited
    assert usage.remaining is None


def test_upgrade_takes_effect_immediately(gate):
    assert not gate.authorize("u1", FREE, "LINEUP_OPTIMIZER", NOW).allowed
    assert gate.authorize("u1", PRO, "LINEUP_OPTIMIZER", NOW).allowed


def test_capability_override(config):
    config = config.model_copy(update={"capability_overrides": {"LINEUP_OPTIMIZER": "ELITE"}})
    gate = FeatureGate(store=InMemoryRateLimitStore(), config=config)
    decision = gate.authorize("u1", PRO, "LINEUP_OPTIMIZER", NOW)
    assert decision.reason == DenialReason.INSUFFICIENT_TIER
    assert decision.required_tier == ELITE


def test_explicit_capability_table(config):
    """An empty table leaves every route ungated instead of falling back to the defaults."""
    store = InMemoryRateLimitStore()
    gate = FeatureGate(capabilities=CapabilityTable([]), store=store, config=config)
    assert len(gate.capabilities) == 0
    assert gate.store is store

    decision = gate.authorize("u1", FREE, "LINEUP_OPTIMIZER", NOW)
    assert decision.allowed
    assert decision.reason is None
    assert store.get_window("u1") is None


def test_usage_before_and_after_calls(gate):
    usage = gate.usage("u1", FREE, NOW)
    assert (usage.ceiling, usage.used, usage.remaining, usage.reset_at) == (100, 0, 100, None)

    for _ in range(3):
        gate.authorize("u1", FREE, "LINEUP_SAVE", NOW)
    usage = gate.usage("u1", FREE, NOW + timedelta(minutes=1))
    assert usage.used == 3
    assert usage.remaining == 97
    assert usage.reset_at == NOW + timedelta(hours=1)

    # Expired windows read as empty
    assert gate.usage("u1", FREE, NOW + timedelta(hours=2)).used == 0


def test_gate_with_database_store(config, session_factory):
    gate = FeatureGate(store=SqlAlchemyRateLimitStore(session_factory), config=config)
    for _ in range(100):
        assert gate.authorize("u1", FREE, "LINEUP_SAVE", NOW).allowed

    denied = gate.authorize("u1", FREE, "LINEUP_SAVE", NOW + timedelta(minutes=59, seconds=30))
    assert denied.reason == DenialReason.QUOTA_EXCEEDED
    assert denied.retry_after_seconds == 30

    usage = gate.usage("u1", FREE, NOW)
    assert usage.used == 100
    assert usage.reset_at == NOW + timedelta(hours=1)


@pytest.mark.parametrize(
    "delta, expected",
    [
        (timedelta(minutes=20), 1200),
        (timedelta(seconds=0.2), 1),
        (timedelta(0), 1),
        (timedelta(seconds=-5), 1),
    ],
)
def test_retry_after_seconds(delta, expected):
    assert retry_after_seconds(NOW + delta, NOW) == expected


def test_retry_after_with_naive_reset():
    reset_at = (NOW + timedelta(seconds=90)).replace(tzinfo=None)
    assert retry_after_seconds(reset_at, NOW) == 90
