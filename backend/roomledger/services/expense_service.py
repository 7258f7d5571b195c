"""
services/expense_service.py — Recording expenses and the debts they create.

record_expense is the "expense added" event handler:

  1. store the expense exactly as submitted
  2. plan settlement pairs for it (pairing_service)
  3. merge pairs with the same debtor and creditor (a sharer listed twice)
  4. write each debt to the ledger (settlement_service), keyed by the
     expense id so a retry never duplicates a debt

A payer or sharer that cannot be matched to the caller or a roommate is
not an error: no settlement is written for them and a UNRESOLVED_PARTY
warning is returned alongside the 201.

One expense counts as ONE settlement creation against the caller's rate
limit, however many debts it produces.

Layer rules:
  - No Flask imports. Receives plain values and a session.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from roomledger.errors import WarningCode
from roomledger.models.expense import Expense
from roomledger.models.settlement import Settlement
from roomledger.services import profile_service, roommate_service, settlement_service
from roomledger.services.identity_service import build_current_user
from roomledger.services.pairing_service import SettlementPair, plan_settlement_pairs

logger = logging.getLogger(__name__)


def merge_pairs(pairs: list[SettlementPair]) -> list[SettlementPair]:
    """
    One debt per (debtor, creditor). A sharer listed twice produces two
    pairs; their amounts are summed so the ledger key stays unique.
    """
    merged: dict[tuple[str, str], SettlementPair] = {}
    for pair in pairs:
        key = (pair.debtor.email.lower(), pair.creditor.email.lower())
        if key in merged:
            previous = merged[key]
            merged[key] = SettlementPair(previous.debtor, previous.creditor, previous.amount + pair.amount)
        else:
            merged[key] = pair
    return list(merged.values())


def record_expense(
        caller_id: str,
        data: dict,
        session: Session,
        limiter=None,
        dedupe_sharers: bool = False,
) -> tuple[Expense, list[Settlement], list[dict]]:
    """
    Stores an expense and creates the caller's settlements for it.

    Args:
        caller_id: The authenticated user (from flask.g).
        data:      Validated dict from CreateExpenseSchema.

    Raises:
        USER_NOT_FOUND (404) when the caller has no profile,
        RateLimitExceeded (429) when the expense produces debts and the
        caller is over the creation limit, ValidationError (400) when a
        generated debt fails settlement validation (e.g. the creditor has no
        valid UPI id).

    Returns:
        (expense, settlements, warnings). `settlements` are the caller's own
        rows; counterparties' rows are written alongside but not returned.
    """
    profile = profile_service.get_profile(caller_id, session)

    expense = Expense(
        user_id=caller_id,
        description=data["description"].strip(),
        amount=data["amount"],
        paid_by=data["paid_by"].strip(),
        expense_date=data["date"],
        category=data["category"].strip(),
        sharers=list(data.get("sharers") or []),
    )
    session.add(expense)
    session.flush()

    roommates = roommate_service.list_roommates(caller_id, session)
    current_user = build_current_user(profile)

    plan = plan_settlement_pairs(expense, current_user, roommates, dedupe=dedupe_sharers)

    warnings: list[dict] = [
        {
            "code": WarningCode.UNRESOLVED_PARTY,
            "message": f"Could not find details for '{name}'; no settlement was created for them.",
        }
        for name in dict.fromkeys(plan.unresolved)
    ]

    debts = merge_pairs(plan.pairs)

    settlements: list[Settlement] = []
    if debts:
        settlement_service.check_create_limit(caller_id, limiter)

    for pair in debts:
        settlements.append(settlement_service.create_settlement_pair(
            debtor=pair.debtor,
            creditor=pair.creditor,
            amount=pair.amount,
            requesting_user_id=caller_id,
            session=session,
            expense_id=expense.id,
            rate_limited=False,
        ))

    logger.debug(
        "Expense %s by %s split %d ways; %d settlements recorded",
        expense.id, caller_id, len(plan.sharers), len(settlements),
    )
    return expense, settlements, warnings


def list_expenses(caller_id: str, session: Session) -> list[Expense]:
    """Returns the caller's expenses, newest first."""
    stmt = (
        select(Expense)
        .where(Expense.user_id == caller_id)
        .order_by(Expense.expense_date.desc(), Expense.created_at.desc())
    )
    return list(session.execute(stmt).scalars().all())
