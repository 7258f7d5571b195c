"""
utils/rate_limit.py — Fixed-window, per-key request limiters.

Two backends share one contract, `hit(key, max_requests, window_seconds)`:

  MemoryRateLimiter    counters live in this process. Cheap, but each server
                       instance counts on its own, so it is a best-effort
                       abuse guard rather than a quota.
  DatabaseRateLimiter  counters live in the rate_limit_windows table, so every
                       instance pointed at the same database sees one count
                       per key.

Window semantics (both backends):
  - The first hit for a key opens a window ending `window_seconds` later,
    with count = 1.
  - Hits inside an open window increment the count until it reaches
    `max_requests`; further hits are refused without incrementing.
  - The first hit after the window's reset time opens a fresh window.

RateLimiter is the Flask extension wrapper: it picks a backend from
RATE_LIMIT_BACKEND at init_app and exposes `check()`, which raises
RateLimitExceeded instead of returning False.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from roomledger.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


class MemoryRateLimiter:
    """
    Process-local fixed-window counter keyed by an arbitrary string.

    Expired windows are dropped at most once every `sweep_seconds`, on the
    next hit for any key.
    """

    def __init__(
            self,
            clock: Callable[[], float] = time.monotonic,
            sweep_seconds: float = 60,
    ) -> None:
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._sweep_seconds = sweep_seconds
        self._next_sweep = clock() + sweep_seconds

    def hit(self, key: str, max_requests: int, window_seconds: float) -> bool:
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)

            window = self._windows.get(key)

            if window is None or now > window.reset_at:
                self._windows[key] = _Window(count=1, reset_at=now + window_seconds)
                return True

            if window.count >= max_requests:
                return False

            window.count += 1
            return True

    def _sweep(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self._sweep_seconds
        if expired:
            logger.debug("Dropped %d expired rate-limit windows", len(expired))

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class DatabaseRateLimiter:
    """
    Fixed-window counter shared through the rate_limit_windows table.

    Runs on its own connection (engine.begin()) so a hit is recorded even
    when the request that made it later rolls back its session.

    Args:
        engine_getter: zero-argument callable returning the SQLAlchemy Engine.
                       Resolved lazily so the limiter can be built before the
                       Flask-SQLAlchemy engine exists.
        clock:         wall-clock seconds. Must agree across instances, hence
                       time.time rather than time.monotonic.
    """

    def __init__(
            self,
            engine_getter: Callable,
            clock: Callable[[], float] = time.time,
    ) -> None:
        self._engine_getter = engine_getter
        self._clock = clock

    def hit(self, key: str, max_requests: int, window_seconds: float) -> bool:
        try:
            return self._hit_once(key, max_requests, window_seconds)
        except IntegrityError:
            # Another instance opened the window between our SELECT and INSERT.
            return self._hit_once(key, max_requests, window_seconds)

    def _hit_once(self, key: str, max_requests: int, window_seconds: float) -> bool:
        from roomledger.models.rate_limit_window import RateLimitWindow  # avoid circular import

        table = RateLimitWindow.__table__
        now = self._clock()

        with self._engine_getter().begin() as conn:
            row = conn.execute(
                select(table.c.count, table.c.reset_at)
                .where(table.c.key == key)
                .with_for_update()
            ).first()

            if row is None:
                conn.execute(
                    insert(table).values(key=key, count=1, reset_at=now + window_seconds)
                )
                return True

            if now > row.reset_at:
                conn.execute(
                    update(table)
                    .where(table.c.key == key)
                    .values(count=1, reset_at=now + window_seconds)
                )
                return True

            if row.count >= max_requests:
                return False

            conn.execute(
                update(table)
                .where(table.c.key == key)
                .values(count=table.c.count + 1)
            )
            return True

    def reset(self) -> None:
        from roomledger.models.rate_limit_window import RateLimitWindow  # avoid circular import

        with self._engine_getter().begin() as conn:
            conn.execute(RateLimitWindow.__table__.delete())


class RateLimiter:
    """
    Flask extension facade over one of the backends above.

    Usage:
        limiter = RateLimiter()
        limiter.init_app(app)
        limiter.check(f"settlement_create:{user_id}", 5, 60, "Too many ...")
    """

    def __init__(self, backend=None) -> None:
        self.backend = backend if backend is not None else MemoryRateLimiter()

    def init_app(self, app) -> None:
        kind = app.config.get("RATE_LIMIT_BACKEND", "memory")

        if kind == "database":
            from roomledger.extensions import db  # avoid circular import

            # db.engine needs an app context; every caller runs inside a request.
            self.backend = DatabaseRateLimiter(lambda: db.engine)
        else:
            self.backend = MemoryRateLimiter()

        app.extensions["roomledger_limiter"] = self

    def hit(self, key: str, max_requests: int, window_seconds: float) -> bool:
        return self.backend.hit(key, max_requests, window_seconds)

    def check(
            self,
            key: str,
            max_requests: int,
            window_seconds: float,
            message: str = "Too many attempts. Please wait.",
    ) -> None:
        """Records a hit for `key`; raises RateLimitExceeded when refused."""
        if not self.hit(key, max_requests, window_seconds):
            logger.info("Rate limit refused key=%s (max %d per %ss)", key, max_requests, window_seconds)
            raise RateLimitExceeded(message)

    def reset(self) -> None:
        self.backend.reset()
