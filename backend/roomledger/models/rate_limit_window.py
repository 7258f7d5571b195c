"""
models/rate_limit_window.py — Shared fixed-window counters.

Backs DatabaseRateLimiter so that every server instance pointed at the same
database counts against one window per key. `reset_at` is epoch seconds
(wall clock) rather than a timestamp column so comparisons behave the same
on PostgreSQL and SQLite.
"""

from __future__ import annotations

from sqlalchemy import Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from roomledger.extensions import db


class RateLimitWindow(db.Model):
    __tablename__ = "rate_limit_windows"

    # "<operation>:<actor>", e.g. "settlement_create:<user id>"
    key: Mapped[str] = mapped_column(String(120), primary_key=True)

    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    reset_at: Mapped[float] = mapped_column(Float, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<RateLimitWindow key={self.key!r} count={self.count} reset_at={self.reset_at}>"
