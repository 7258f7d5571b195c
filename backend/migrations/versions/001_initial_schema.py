"""Initial schema — profiles, roster, expenses, paired settlements, rate limits.

Revision: 001_initial_schema
Created:  2026-10-17

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order (FK dependency order):
  profiles → roommates → expenses → settlements, then rate_limit_windows.

ON DELETE policies:
  roommates.user_id                  → CASCADE   (roster owned by its profile)
  expenses.user_id                   → CASCADE
  settlements.user_id                → CASCADE   (each row owned by one party)
  settlements.expense_id             → SET NULL  (the debt outlives the expense)
  settlements.debtor/creditor_user_id → SET NULL

Settlement status and type are plain VARCHAR columns guarded by CHECK
constraints rather than PostgreSQL enum types, so the same schema also runs
on SQLite in tests.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── Step 1: profiles ───────────────────────────────────────────────────
    # id is the identity provider's user id (the token's `sub`).

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("upi_id", sa.String(50), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_profiles"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_profiles_email_format"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)

    # ── Step 2: roommates ──────────────────────────────────────────────────

    op.create_table(
        "roommates",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE", name="fk_roommates_owner"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("upi_id", sa.String(50), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_roommates"),
        sa.UniqueConstraint("user_id", "email", name="uq_roommates_owner_email"),
    )
    op.create_index("ix_roommates_user_id", "roommates", ["user_id"])

    # ── Step 3: expenses ───────────────────────────────────────────────────
    # paid_by and sharers hold names exactly as entered; they are resolved
    # against the roster when settlements are generated.

    op.create_table(
        "expenses",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE", name="fk_expenses_owner"),
            nullable=False,
        ),
        sa.Column("description", sa.String(200), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_by", sa.String(255), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("sharers", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
    )
    op.create_index("ix_expenses_user_id", "expenses", ["user_id"])

    # ── Step 4: settlements ────────────────────────────────────────────────
    # UNIQUE(transaction_group_id, user_id): one row per party per debt.

    op.create_table(
        "settlements",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE", name="fk_settlements_owner"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("upi_id", sa.String(50), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("settled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transaction_group_id", sa.String(36), nullable=False),
        sa.Column(
            "expense_id",
            sa.String(36),
            sa.ForeignKey("expenses.id", ondelete="SET NULL", name="fk_settlements_expense"),
            nullable=True,
        ),
        sa.Column(
            "debtor_user_id",
            sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="SET NULL", name="fk_settlements_debtor"),
            nullable=True,
        ),
        sa.Column(
            "creditor_user_id",
            sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="SET NULL", name="fk_settlements_creditor"),
            nullable=True,
        ),
        sa.Column(
            "marked_by_debtor",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "marked_by_creditor",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.UniqueConstraint(
            "transaction_group_id",
            "user_id",
            name="uq_settlements_group_user",
        ),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint("type IN ('owes', 'owed')", name="ck_settlements_type"),
        sa.CheckConstraint(
            "status IN ('pending', 'debtor_paid', 'settled')",
            name="ck_settlements_status",
        ),
    )
    op.create_index("ix_settlements_user_id", "settlements", ["user_id"])
    op.create_index(
        "ix_settlements_transaction_group_id",
        "settlements",
        ["transaction_group_id"],
    )

    # ── Step 5: rate_limit_windows ─────────────────────────────────────────
    # Shared fixed-window counters for RATE_LIMIT_BACKEND=database.

    op.create_table(
        "rate_limit_windows",
        sa.Column("key", sa.String(120), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reset_at", sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint("key", name="pk_rate_limit_windows"),
    )


def downgrade() -> None:
    """Drop everything created in upgrade(), in reverse dependency order."""

    op.drop_table("rate_limit_windows")

    op.drop_index("ix_settlements_transaction_group_id", table_name="settlements")
    op.drop_index("ix_settlements_user_id",              table_name="settlements")
    op.drop_table("settlements")

    op.drop_index("ix_expenses_user_id", table_name="expenses")
    op.drop_table("expenses")

    op.drop_index("ix_roommates_user_id", table_name="roommates")
    op.drop_table("roommates")

    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")
