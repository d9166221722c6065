"""Database initialization helpers.

Database Lifecycle Operations:
- create_database(): Initialize schema from SQLAlchemy models
- drop_database(): Remove all tables (destructive operation)
- reset_database(): Complete refresh (drop + create)

create_all() safely handles existing tables and drop_all() safely handles
missing ones, so every operation here is idempotent.
"""

import logging
from pathlib import Path

from sqlalchemy.engine import Engine

from .connection import engine as default_engine
from .models import Base

logger = logging.getLogger(__name__)


def _ensure_sqlite_directory(bind: Engine) -> None:
    # SQLite will not create missing parent directories for its file
    database = bind.url.database
    if bind.url.get_backend_name() == "sqlite" and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


def create_database(bind: Engine | None = None) -> None:
    """Create all tables defined in models.py."""
    bind = bind or default_engine
    try:
        _ensure_sqlite_directory(bind)
        Base.metadata.create_all(bind=bind)
        logger.info("Database tables created successfully")
    except Exception:
        logger.exception("Failed to create database")
        raise


def drop_database(bind: Engine | None = None) -> None:
    """Drop all tables - DESTRUCTIVE OPERATION, all data is lost."""
    bind = bind or default_engine
    try:
        Base.metadata.drop_all(bind=bind)
        logger.info("Database tables dropped successfully")
    except Exception:
        logger.exception("Failed to drop database")
        raise


def reset_database(bind: Engine | None = None) -> None:
    """Drop and recreate every table."""
    logger.info("Resetting database...")
    drop_database(bind)
    create_database(bind)
    logger.info("Database reset complete")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_database()
