"""
services/share_service.py — Who shares an expense, and for how much.

Sharer rules:
  - An expense that lists sharers is split among exactly those entries, in
    order. Each entry that names the current user (by any alias) becomes
    the current user's display name. A name listed twice counts twice
    unless deduplication is switched on (DEDUPLICATE_SHARERS).
  - An expense with no sharers is split among the current user and every
    roommate on their roster, each once.

The per-sharer amount is exact Decimal division. Settlements are stored in
paise, so allocate_debts turns the debtors' share into paise amounts that
sum to their rounded total.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Iterable

from roomledger.errors import AppError, ErrorCode
from roomledger.services.identity_service import CurrentUser, canonical_name


PAISE = Decimal("0.01")


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so floats keep their printed value, not their binary one.
    return Decimal(str(value))


def effective_sharers(
        expense,
        current_user: CurrentUser,
        roommates: Iterable,
        dedupe: bool = False,
) -> list[str]:
    """Returns the ordered list of sharer names for `expense`."""
    listed = list(getattr(expense, "sharers", None) or [])

    if listed:
        sharers = [canonical_name(s, current_user) for s in listed]
        if dedupe:
            sharers = list(dict.fromkeys(sharers))
        return sharers

    everyone = [current_user.display_name, *(r.name for r in roommates)]
    return list(dict.fromkeys(everyone))


def amount_per_sharer(amount, sharers: list[str]) -> Decimal:
    """amount / len(sharers), exact. Raises NO_SHARERS (422) for an empty list."""
    if not sharers:
        raise AppError(
            ErrorCode.NO_SHARERS,
            "Cannot split an expense with no one to share it.",
            422,
            field="sharers",
        )
    return _to_decimal(amount) / Decimal(len(sharers))


def allocate_debts(amount, sharer_count: int, debtor_count: int) -> list[Decimal]:
    """
    Splits what `debtor_count` of `sharer_count` sharers owe into paise.

    The combined total, amount × debtors / sharers, is rounded half-up once.
    Each debtor gets the share rounded down to the paise; the leftover paise
    go one each to the last debtors.

    Example: 100 among 3 sharers, 2 of them owing → [33.33, 33.34].
    """
    if debtor_count <= 0:
        return []
    total = (_to_decimal(amount) * debtor_count / Decimal(sharer_count)).quantize(PAISE, rounding=ROUND_HALF_UP)
    base = (total / debtor_count).quantize(PAISE, rounding=ROUND_DOWN)
    leftover = int((total - base * debtor_count) / PAISE)
    return [base] * (debtor_count - leftover) + [base + PAISE] * leftover
