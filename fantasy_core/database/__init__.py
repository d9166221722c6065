"""Database package initialization."""

from .connection import SessionLocal, engine, get_db, get_session
from .models import Base, RateLimitWindowRecord, SavedLineup, SlatePlayer, UserSubscription

__all__ = [
    "Base",
    "RateLimitWindowRecord",
    "SavedLineup",
    "SessionLocal",
    "SlatePlayer",
    "UserSubscription",
    "engine",
    "get_db",
    "get_session",
]
