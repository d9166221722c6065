"""Tests for application settings.

Settings come from pydantic-settings, so every value can be overridden by
an environment variable of the same (case-insensitive) name. Complex values
such as capability overrides are parsed from JSON.
"""

from fantasy_core.config.settings import Settings, settings
from fantasy_core.gating.tiers import SubscriptionTier


def test_project_config():
    """Defaults match the DraftKings classic format and the plan quotas.

    Validates:
    1. Settings import and instantiate
    2. The salary cap and flex positions are the classic defaults
    3. Quotas resolve per tier, with 0 as the unlimited sentinel
    4. Paths are derived from the project root
    """
    config = Settings(_env_file=None)
    assert config.salary_cap == 50000
    assert config.flex_positions == ["RB", "WR", "TE"]
    assert config.rate_limit_window_seconds == 3600

    assert config.quota_for(SubscriptionTier.FREE) == 100
    assert config.quota_for(SubscriptionTier.PRO) == 1000
    assert config.quota_for(SubscriptionTier.ELITE) == 0

    assert (settings.project_root / "fantasy_core").is_dir()
    assert settings.data_dir == settings.project_root / "data"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FREE_HOURLY_QUOTA", "25")
    monkeypatch.setenv("RATE_LIMIT_BACKEND", "database")
    monkeypatch.setenv("CAPABILITY_OVERRIDES", '{"TRADE_ANALYZER": "ELITE"}')
    monkeypatch.setenv("FLEX_POSITIONS", '["RB", "WR"]')

    config = Settings(_env_file=None)
    assert config.quota_for(SubscriptionTier.FREE) == 25
    assert config.rate_limit_backend == "database"
    assert config.capability_overrides == {"TRADE_ANALYZER": "ELITE"}
    assert config.flex_positions == ["RB", "WR"]
