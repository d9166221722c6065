"""Application settings and configuration management.

This file implements a centralized configuration system using Pydantic Settings.
It handles environment variables, default values, and configuration validation
for the feature gate and the lineup constraint engine.

Key Benefits:
- Type safety: All settings have defined types with validation
- Environment integration: Automatically loads from .env files
- Flexibility: Quotas and salary caps can change per deployment without code edits

For beginners:

Pydantic Settings: A Python library that automatically validates configuration
and loads values from environment variables, .env files, and defaults.

Complex values (lists and dicts) are read from the environment as JSON, e.g.
FLEX_POSITIONS='["RB","WR"]' or CAPABILITY_OVERRIDES='{"TRADE_ANALYZER": "ELITE"}'.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from ..gating.tiers import SubscriptionTier


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Configuration Sources (in priority order):
    1. Environment variables (highest priority)
    2. .env file values
    3. Default values defined here (lowest priority)

    Example Usage:
    - In code: `settings.free_hourly_quota`
    - Environment variable: `FREE_HOURLY_QUOTA=50`
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration - FastAPI web server settings
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # Database Configuration - SQLAlchemy connection settings
    database_url: str = "sqlite:///data/database/fantasy_core.db"
    database_pool_size: int = 5  # Ignored for SQLite
    database_echo: bool = False

    # Logging Configuration
    log_level: str = "INFO"
    log_file: Path | None = None

    # Rate limiting - quota ceilings per tier, 0 means unlimited
    rate_limit_backend: Literal["memory", "database"] = "memory"
    rate_limit_window_seconds: int = 3600
    rate_limit_max_attempts: int = 5
    free_hourly_quota: int = 100
    pro_hourly_quota: int = 1000
    elite_hourly_quota: int = 0

    # Feature gating - routeKey -> tier name, merged over the default table
    capability_overrides: dict[str, str] = {}

    # Lineup Configuration - DraftKings classic format defaults
    salary_cap: int = 50000
    flex_positions: list[str] = ["RB", "WR", "TE"]
    max_players_per_team: int | None = None

    # Optimizer Configuration
    optimizer_time_limit_seconds: int = 10
    optimizer_points_tolerance: float = 0.0

    def quota_for(self, tier: "SubscriptionTier") -> int:
        """Hourly ceiling for a tier (0 is the unlimited sentinel)."""
        return {
            "FREE": self.free_hourly_quota,
            "PRO": self.pro_hourly_quota,
            "ELITE": self.elite_hourly_quota,
        }[tier.value]

    @property
    def project_root(self) -> Path:
        """Project root: fantasy_core/config/settings.py -> fantasy_core/config -> fantasy_core -> root."""
        return Path(__file__).parent.parent.parent

    @property
    def data_dir(self) -> Path:
        """Directory for the SQLite database file and logs."""
        return self.project_root / "data"


# Global settings instance - imported throughout the app
# Example: from fantasy_core.config.settings import settings; print(settings.salary_cap)
settings = Settings()
