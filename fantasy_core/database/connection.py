"""Database connection and session management using SQLAlchemy.

This module implements the core database connectivity patterns for the application.
It handles:
1. Database engine creation with connection pooling
2. Session factory configuration for ORM operations
3. Session management patterns for scripts and for FastAPI handlers

Key Concepts for Beginners:

Database Engine: The core interface to the database. Think of it as the
"connection factory" that manages the actual database connections.

Session: A workspace for ORM operations. All database operations (queries,
inserts, updates) happen within a session context.

Session Patterns Provided:
1. get_session(): Context manager with automatic commit/rollback
2. get_db(): FastAPI dependency injection pattern
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..config.settings import settings


def create_db_engine(database_url: str, echo: bool = False, pool_size: int = 5) -> Engine:
    """Create an engine, passing pool sizing only where the dialect pools.

    SQLite connections are file handles, so the pool arguments are skipped
    and connections may be shared across threads (FastAPI runs sync
    dependencies in a thread pool).
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        pool_pre_ping=True,  # Test connections before use (handles disconnects)
    )


# Created once at module load and reused throughout the application
engine = create_db_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=settings.database_pool_size,
)

# autocommit=False: Gives us explicit control over transactions
# autoflush=False: Prevents unexpected database hits during complex operations
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Database session with automatic commit/rollback and cleanup.

    Usage:
        with get_session() as session:
            session.add(lineup)
            # Automatically committed and closed when exiting 'with' block

    If any exception occurs, the transaction is rolled back and the
    exception is re-raised.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency for database sessions.

    Unlike get_session(), this does NOT commit automatically. Route handlers
    (or the repositories they call) commit explicitly; this only guarantees
    the session is closed after the request completes.

    Usage in FastAPI routes:
        @router.get("/plans")
        def list_plans(db: Session = Depends(get_db)):
            ...
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
