"""Rate-limit counter stores.

A RateLimitWindow counts metered calls per user for one window (an hour by
default). The only mutation a store exposes is `increment_with_ceiling`,
which performs check-then-increment as one atomic step so two racing
requests cannot both take the last unit of quota.

Two backends are provided:

- InMemoryRateLimitStore: striped locks, correct within a single process.
- SqlAlchemyRateLimitStore: conditional UPDATE statements against the
  `rate_limit_windows` table, correct across processes sharing a database.

Window rules (identical for both backends):
- No window yet: create it with count=1 and reset_at=now+window.
- now > reset_at: start a fresh window with count=1 (this call is counted).
- count >= ceiling: reject without touching the counter.
- otherwise: count += 1.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..database.models import RateLimitWindowRecord
from ..exceptions import RateLimitStoreError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    """Per-user counter for the current window."""

    count: int
    reset_at: datetime


@dataclass(frozen=True)
class WindowOutcome:
    """Result of one increment_with_ceiling call."""

    admitted: bool
    count: int
    reset_at: datetime


class RateLimitStore(ABC):
    """Storage for RateLimitWindow counters."""

    @abstractmethod
    def increment_with_ceiling(
        self, user_id: str, ceiling: int, now: datetime, window: timedelta
    ) -> WindowOutcome:
        """Atomically count one call unless the window is already at `ceiling`."""

    @abstractmethod
    def get_window(self, user_id: str) -> RateLimitWindow | None:
        """Snapshot of the user's window, or None if none was created yet."""


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store.

    Users are spread over a fixed number of lock stripes, each guarding its
    own dict of windows, so memory for locks does not grow with the user
    count. Expired windows are swept every `sweep_every` increments; a
    missing window and an expired one behave the same.
    """

    def __init__(self, stripes: int = 64, sweep_every: int = 1024):
        self._stripes: list[tuple[threading.Lock, dict[str, RateLimitWindow]]] = [
            (threading.Lock(), {}) for _ in range(stripes)
        ]
        self._sweep_every = sweep_every
        self._calls = itertools.count(1)

    def _stripe(self, user_id: str) -> tuple[threading.Lock, dict[str, RateLimitWindow]]:
        return self._stripes[hash(user_id) % len(self._stripes)]

    def increment_with_ceiling(
        self, user_id: str, ceiling: int, now: datetime, window: timedelta
    ) -> WindowOutcome:
        lock, windows = self._stripe(user_id)
        with lock:
            current = windows.get(user_id)

            if current is None or now > current.reset_at:
                current = windows[user_id] = RateLimitWindow(count=1, reset_at=now + window)
                outcome = WindowOutcome(True, current.count, current.reset_at)
            elif current.count >= ceiling:
                outcome = WindowOutcome(False, current.count, current.reset_at)
            else:
                current.count += 1
                outcome = WindowOutcome(True, current.count, current.reset_at)

        if next(self._calls) % self._sweep_every == 0:
            self.prune(now)
        return outcome

    def get_window(self, user_id: str) -> RateLimitWindow | None:
        lock, windows = self._stripe(user_id)
        with lock:
            current = windows.get(user_id)
            return replace(current) if current else None

    def prune(self, now: datetime) -> int:
        """Drop windows that expired before `now`. Returns how many were dropped."""
        dropped = 0
        for lock, windows in self._stripes:
            with lock:
                expired = [user_id for user_id, w in windows.items() if now > w.reset_at]
                for user_id in expired:
                    del windows[user_id]
                dropped += len(expired)
        if dropped:
            logger.debug(f"Pruned {dropped} expired rate limit windows")
        return dropped

    def clear(self) -> None:
        for lock, windows in self._stripes:
            with lock:
                windows.clear()


def to_naive_utc(moment: datetime) -> datetime:
    """Normalize to naive UTC, the representation stored in the database."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class SqlAlchemyRateLimitStore(RateLimitStore):
    """Database-backed store using conditional UPDATEs as the atomic primitive.

    Each step is a single statement whose WHERE clause carries the check, so
    the database serializes racing writers. If a concurrent writer changes
    the row between steps the loop starts over, up to `max_attempts` times.
    """

    def __init__(self, session_factory: sessionmaker, max_attempts: int = 5):
        self.session_factory = session_factory
        self.max_attempts = max_attempts

    def increment_with_ceiling(
        self, user_id: str, ceiling: int, now: datetime, window: timedelta
    ) -> WindowOutcome:
        stamp = to_naive_utc(now)
        fresh_reset = stamp + window

        for attempt in range(1, self.max_attempts + 1):
            with self.session_factory() as session:
                outcome = self._attempt(session, user_id, ceiling, stamp, fresh_reset)
            if outcome is not None:
                return self._localize(outcome, now)
            logger.debug(f"Rate limit window for {user_id} changed concurrently (attempt {attempt})")

        raise RateLimitStoreError(
            f"Could not update rate limit window for user {user_id} "
            f"after {self.max_attempts} attempts"
        )

    def _attempt(
        self,
        session: Session,
        user_id: str,
        ceiling: int,
        stamp: datetime,
        fresh_reset: datetime,
    ) -> WindowOutcome | None:
        record_cls = RateLimitWindowRecord

        # Open window with quota left
        result = session.execute(
            update(record_cls)
            .where(
                record_cls.user_id == user_id,
                record_cls.reset_at >= stamp,
                record_cls.count < ceiling,
            )
            .values(count=record_cls.count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            record = session.get(record_cls, user_id)
            outcome = WindowOutcome(True, record.count, record.reset_at)
            session.commit()
            return outcome

        # Expired window: start over, counting this call
        result = session.execute(
            update(record_cls)
            .where(record_cls.user_id == user_id, record_cls.reset_at < stamp)
            .values(count=1, reset_at=fresh_reset)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            session.commit()
            return WindowOutcome(True, 1, fresh_reset)

        record = session.get(record_cls, user_id)
        if record is None:
            session.add(record_cls(user_id=user_id, count=1, reset_at=fresh_reset))
            try:
                session.commit()
            except IntegrityError:
                # Another request created the window first
                session.rollback()
                return None
            return WindowOutcome(True, 1, fresh_reset)

        if record.reset_at >= stamp and record.count >= ceiling:
            outcome = WindowOutcome(False, record.count, record.reset_at)
            session.rollback()
            return outcome

        session.rollback()
        return None

    def get_window(self, user_id: str) -> RateLimitWindow | None:
        with self.session_factory() as session:
            record = session.get(RateLimitWindowRecord, user_id)
            if record is None:
                return None
            return RateLimitWindow(count=record.count, reset_at=record.reset_at)

    @staticmethod
    def _localize(outcome: WindowOutcome, now: datetime) -> WindowOutcome:
        # Hand back the caller's timezone convention
        if now.tzinfo is None:
            return outcome
        return replace(outcome, reset_at=outcome.reset_at.replace(tzinfo=timezone.utc))
