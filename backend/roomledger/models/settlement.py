"""
models/settlement.py — Settlement table definition.

A debt between two people is stored as a PAIR of rows sharing one
transaction_group_id:

  debtor's row    user_id = debtor,   type = "owes", name/email = creditor
  creditor's row  user_id = creditor, type = "owed", name/email = debtor

Each party owns and reads only their own row. Both rows carry the
creditor's UPI id. When the counterparty has no account, only the
requester's row exists.

Rows are linked by transaction_group_id only, not by a foreign key: status
changes and deletions are applied with a single statement filtered on the
group id, which moves both rows at once.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float.
  - UNIQUE(transaction_group_id, user_id): one row per party per group. This
    is what turns a repeated creation for the same expense into a no-op.
  - debtor_user_id / creditor_user_id are filled for whichever parties have
    accounts; status updates are permitted to either of them.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from roomledger.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────
# Stored as plain strings; these enums exist so services and schemas share
# one list of literals.

class SettlementType(str, enum.Enum):
    OWES = "owes"
    OWED = "owed"

    def opposite(self) -> "SettlementType":
        return SettlementType.OWED if self is SettlementType.OWES else SettlementType.OWES


class SettlementStatus(str, enum.Enum):
    PENDING     = "pending"
    DEBTOR_PAID = "debtor_paid"
    SETTLED     = "settled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Model ──────────────────────────────────────────────────────────────────

class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint(
            "type IN ('owes', 'owed')",
            name="ck_settlements_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'debtor_paid', 'settled')",
            name="ck_settlements_status",
        ),
        UniqueConstraint(
            "transaction_group_id",
            "user_id",
            name="uq_settlements_group_user",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Owner of this row — one of the two parties.
    user_id: Mapped[str] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Counterparty display name and lower-cased email.
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Always the creditor's UPI id — where the money should go.
    upi_id: Mapped[str] = mapped_column(String(50), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    type: Mapped[str] = mapped_column(String(10), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SettlementStatus.PENDING.value,
    )

    settled_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    transaction_group_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        index=True,
    )

    # The expense this debt came from; NULL for manually recorded debts.
    expense_id: Mapped[str | None] = mapped_column(
        ForeignKey("expenses.id", ondelete="SET NULL"),
        nullable=True,
    )

    debtor_user_id: Mapped[str | None] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )

    creditor_user_id: Mapped[str | None] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
    )

    marked_by_debtor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    marked_by_creditor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

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

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id!r} "
            f"group={self.transaction_group_id!r} "
            f"user={self.user_id!r} "
            f"type={self.type} "
            f"status={self.status} "
            f"amount={self.amount}>"
        )
