"""API routers for lineups, optimization and subscriptions."""
