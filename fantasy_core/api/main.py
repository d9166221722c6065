"""
Main FastAPI application for the fantasy core service.

The API exposes the lineup constraint engine behind the subscription feature
gate. Every gated route resolves the caller's tier from the subscriptions
table and asks the gate before doing any work, so denied requests never
reach the optimizer or the database writes.

Route groups:
- /api/lineups: validation and saving (FREE, metered)
- /api/optimize: lineup optimization (PRO, metered)
- /api/subscriptions: plan comparison and the caller's access (not gated)
- /health and /api/config: service status and public configuration
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config.settings import Settings, settings
from .dependencies import build_gate
from .routers import lineups, optimization, subscriptions

logger = logging.getLogger(__name__)


def create_app(config: Settings | None = None) -> FastAPI:
    """Build the application with a feature gate configured from `config`."""
    config = config or settings

    app = FastAPI(
        title="Fantasy Core API",
        description="Subscription feature gating and DFS lineup constraint engine",
        version=__version__,
    )

    # SECURITY NOTE: restrict allow_origins in production
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One gate per app; the in-memory store lives as long as the process
    app.state.gate = build_gate(config)

    @app.get("/")
    async def root():
        """Basic API information and documentation link."""
        return {
            "message": "Fantasy Core API",
            "version": __version__,
            "docs": f"http://{config.api_host}:{config.api_port}/docs",
        }

    @app.get("/health")
    async def health_check():
        """Health check for load balancers and monitoring."""
        return {
            "status": "healthy",
            "service": "Fantasy Core",
            "rate_limit_backend": config.rate_limit_backend,
        }

    @app.get("/api/config")
    async def get_config():
        """
        Public configuration (non-sensitive values only).

        The database URL is never included.
        """
        return {
            "salary_cap": config.salary_cap,
            "flex_positions": config.flex_positions,
            "max_players_per_team": config.max_players_per_team,
            "rate_limit_window_seconds": config.rate_limit_window_seconds,
            "hourly_quotas": {
                "FREE": config.free_hourly_quota,
                "PRO": config.pro_hourly_quota,
                "ELITE": config.elite_hourly_quota,
            },
        }

    app.include_router(lineups.router, prefix="/api")
    app.include_router(optimization.router, prefix="/api")
    app.include_router(subscriptions.router, prefix="/api")

    logger.info("Fantasy Core API configured")
    return app


app = create_app()
