"""
services/balance_service.py — Net balances from the caller's point of view.

compute_balances() is the pure algorithm; get_balances() loads the caller's
data and calls it.

Algorithm:
  1. Participants: the caller, then every roommate, then anyone else named
     as a payer or sharer on an expense (each once, in that order).
  2. Credit each payer with the full amount they fronted.
  3. Debit each effective sharer with the per-sharer amount (same sharer
     rules as settlement generation).
  4. Net the caller's SETTLED settlements: the debtor gains the amount, the
     creditor gives it up. Pending and debtor_paid debts are still owed.
  5. Round each balance to 2 dp at the end, never in between.

Alongside the balances: the total spent, the total per category and the
total per calendar month of the expense date ("YYYY-MM", oldest first).

A positive balance means the participant is owed money overall.

Layer rules:
  - No Flask imports. compute_balances() needs no session at all.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from roomledger.models.settlement import SettlementStatus, SettlementType
from roomledger.services import expense_service, profile_service, roommate_service, settlement_service
from roomledger.services.identity_service import CurrentUser, build_current_user, canonical_name
from roomledger.services.share_service import amount_per_sharer, effective_sharers

CENTS = Decimal("0.01")


def participant_names(expenses: Iterable, current_user: CurrentUser, roommates: Iterable) -> list[str]:
    """The caller, the roster, then any other payer or sharer seen on an expense."""
    names = [current_user.display_name, *(r.name for r in roommates)]
    for expense in expenses:
        names.append(canonical_name(expense.paid_by, current_user))
        names.extend(canonical_name(s, current_user) for s in (expense.sharers or []))
    return list(dict.fromkeys(names))


def compute_balances(
        expenses: list,
        settlements: list,
        current_user: CurrentUser,
        roommates: list,
        dedupe: bool = False,
) -> dict:
    """
    Returns:
        {
          "total_expenses": Decimal,
          "balances":   [{"name": str, "balance": Decimal}, ...]  participant order,
          "categories": [{"name": str, "total": Decimal}, ...]    first-seen order,
          "months":     [{"month": "YYYY-MM", "total": Decimal}, ...]  oldest first,
        }
    """
    names = participant_names(expenses, current_user, roommates)
    balance: dict[str, Decimal] = {name: Decimal("0") for name in names}
    category_totals: dict[str, Decimal] = defaultdict(Decimal)
    month_totals: dict[str, Decimal] = defaultdict(Decimal)
    total = Decimal("0")

    for expense in expenses:
        amount = Decimal(expense.amount)
        total += amount
        category_totals[expense.category] += amount
        month_totals[expense.expense_date.strftime("%Y-%m")] += amount

        payer = canonical_name(expense.paid_by, current_user)
        balance[payer] += amount

        sharers = effective_sharers(expense, current_user, roommates, dedupe=dedupe)
        share = amount_per_sharer(amount, sharers)
        for sharer in sharers:
            balance[sharer] -= share

    for s in settlements:
        if s.status != SettlementStatus.SETTLED.value:
            continue

        if s.type == SettlementType.OWES.value:
            debtor, creditor = current_user.display_name, s.name
        else:
            debtor, creditor = s.name, current_user.display_name

        amount = Decimal(s.amount)
        if debtor in balance:
            balance[debtor] += amount
        if creditor in balance:
            balance[creditor] -= amount

    return {
        "total_expenses": total,
        "balances": [
            {"name": name, "balance": balance[name].quantize(CENTS, rounding=ROUND_HALF_UP)}
            for name in names
        ],
        "categories": [
            {"name": name, "total": value} for name, value in category_totals.items()
        ],
        "months": [
            {"month": month, "total": month_totals[month]} for month in sorted(month_totals)
        ],
    }


def get_balances(caller_id: str, session: Session, dedupe: bool = False) -> dict:
    """Loads the caller's expenses, roster and settlements and computes balances."""
    profile = profile_service.get_profile(caller_id, session)
    return compute_balances(
        expenses=expense_service.list_expenses(caller_id, session),
        settlements=settlement_service.fetch_settlements(caller_id, session),
        current_user=build_current_user(profile),
        roommates=roommate_service.list_roommates(caller_id, session),
        dedupe=dedupe,
    )
