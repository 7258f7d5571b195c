"""
models/expense.py — Expense table definition.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - `paid_by` is a free-text name as typed on the expense form (the current
    user's display name or a roommate's name), not a foreign key. Resolving
    it to a party is the identity service's job.
  - `sharers` is an ordered JSON list of names or emails. Empty means the
    expense is shared by the creator plus their whole roster. Order and
    duplicates are preserved exactly as submitted.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from roomledger.extensions import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # The account that recorded the expense.
    user_id: Mapped[str] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    description: Mapped[str] = mapped_column(String(200), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    paid_by: Mapped[str] = mapped_column(String(255), nullable=False)

    # Column is named "date"; the attribute avoids shadowing datetime.date.
    expense_date: Mapped[date] = mapped_column("date", Date, nullable=False)

    category: Mapped[str] = mapped_column(String(50), nullable=False)

    sharers: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id!r} "
            f"amount={self.amount} "
            f"paid_by={self.paid_by!r}>"
        )
