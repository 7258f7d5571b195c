"""
services/pairing_service.py — From one expense to (debtor, creditor, amount) pairs.

Algorithm:
  1. Resolve the payer. An alias of the current user is the current user;
     otherwise the roommate named by `paid_by`. No payer, no pairs.
  2. Walk the effective sharers. A sharer whose canonical name is the
     payer's is skipped: paying for yourself creates no debt.
  3. Resolve each remaining sharer to an Identity (the debtor) and pair it
     with the payer (the creditor). The debtors' combined share is rounded
     to paise once and spread over them in order (share_service.allocate_debts),
     so an uneven split such as 100/3 comes out as 33.33 + 33.34.
  4. Drop any pair the current user is not part of. Each client writes only
     the debts it is a party to; the counterpart row is written alongside by
     the ledger when the counterparty has an account.

A sharer that cannot be resolved, or that turns out to be the payer under
another name, is dropped. A pair is never half-built.

Layer rules:
  - No Flask imports, no session. Returns plain dataclasses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from roomledger.services.identity_service import (
    CurrentUser,
    Identity,
    canonical_name,
    resolve_party,
)
from roomledger.services.share_service import allocate_debts, amount_per_sharer, effective_sharers

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementPair:
    debtor: Identity
    creditor: Identity
    amount: Decimal


@dataclass
class PairingPlan:
    """Pairs to write, plus the names that could not be turned into a party."""

    pairs: list[SettlementPair] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    sharers: list[str] = field(default_factory=list)
    amount_per_sharer: Decimal | None = None


def plan_settlement_pairs(
        expense,
        current_user: CurrentUser,
        roommates: Iterable,
        dedupe: bool = False,
) -> PairingPlan:
    roommates = list(roommates)
    plan = PairingPlan()

    creditor = resolve_party(expense.paid_by, current_user, roommates)
    if creditor is None:
        logger.warning("Could not resolve payer %r for expense %s", expense.paid_by, getattr(expense, "id", None))
        plan.unresolved.append(expense.paid_by)
        return plan

    payer_name = canonical_name(expense.paid_by, current_user)

    plan.sharers = effective_sharers(expense, current_user, roommates, dedupe=dedupe)
    plan.amount_per_sharer = amount_per_sharer(expense.amount, plan.sharers)

    # Every entry that owes the payer, resolved or not, in sharer order.
    owing: list[tuple[str, Identity | None]] = []
    for sharer in plan.sharers:
        if sharer == payer_name:
            continue
        debtor = resolve_party(sharer, current_user, roommates)
        # Same person as the payer under a different name (e.g. listed by email).
        if debtor is not None and debtor.same_party(creditor):
            continue
        owing.append((sharer, debtor))

    amounts = allocate_debts(expense.amount, len(plan.sharers), len(owing))
    me = current_user.identity

    for (sharer, debtor), amount in zip(owing, amounts):
        if debtor is None:
            logger.warning("Could not resolve sharer %r; no settlement created for them", sharer)
            plan.unresolved.append(sharer)
            continue

        if amount <= 0:
            logger.debug("Share of %r rounds to zero for expense %s", sharer, getattr(expense, "id", None))
            continue

        if not (me.same_party(debtor) or me.same_party(creditor)):
            continue

        plan.pairs.append(SettlementPair(debtor=debtor, creditor=creditor, amount=amount))

    return plan


def generate_settlement_pairs(
        expense,
        current_user: CurrentUser,
        roommates: Iterable,
        dedupe: bool = False,
) -> list[SettlementPair]:
    """Returns the (debtor, creditor, amount) pairs the current user is party to."""
    return plan_settlement_pairs(expense, current_user, roommates, dedupe=dedupe).pairs
