"""
models/roommate.py — Roommate table definition.

A roommate is an entry on one user's roster: the people an expense can be
shared with. Email is the identity key and is unique per owner
(case-insensitive; stored lower-cased). A roommate does not need an account;
when they have one, their Profile shares the same email.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomledger.extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Roommate(db.Model):
    __tablename__ = "roommates"

    __table_args__ = (
        UniqueConstraint("user_id", "email", name="uq_roommates_owner_email"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # ON DELETE CASCADE — the roster belongs to its owner.
    user_id: Mapped[str] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    upi_id: Mapped[str] = mapped_column(String(50), nullable=False)

    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    owner: Mapped["Profile"] = relationship(  # noqa: F821
        "Profile",
        back_populates="roommates",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Roommate id={self.id!r} name={self.name!r} email={self.email!r}>"
