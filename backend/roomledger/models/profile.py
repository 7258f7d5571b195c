"""
models/profile.py — Profile table definition.

One row per registered account. The primary key is the `sub` claim of the
access token issued by the hosted identity provider, so it is a string
(UUID), not an autoincrement integer.

Settlement creation looks counterparties up here by lower-cased email.
No business logic. No imports from services or routes.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomledger.extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(db.Model):
    __tablename__ = "profiles"

    __table_args__ = (
        CheckConstraint("email LIKE '%@%'", name="ck_profiles_email_format"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Stored lower-cased; the service normalises before writing.
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    upi_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    roommates: Mapped[list["Roommate"]] = relationship(  # noqa: F821
        "Roommate",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Roommate.created_at",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Profile id={self.id!r} email={self.email!r}>"
