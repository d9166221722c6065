"""Subscription feature gating and DFS lineup constraint engine."""

__version__ = "0.1.0"
