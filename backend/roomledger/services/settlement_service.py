"""
services/settlement_service.py — The settlement ledger.

A debt is stored as two rows sharing a transaction_group_id, one owned by
each party (see models/settlement.py). This module is the only code that
writes those rows.

Operations:
  create_settlement_pair   write the requester's row, then best-effort the
                           counterparty's row
  update_status            move every row of a group to a new status at once
  delete_settlement_group  remove every row of a group at once
  fetch_settlements        the requester's own rows, newest first

Paired creation:
  Both rows are written inside the caller's transaction, each in its own
  SAVEPOINT. The requester's row must succeed. The counterparty's row is
  best-effort: no profile for their email, or any store error while looking
  them up or inserting, is logged and swallowed, and the requester's row is
  still returned. Both rows commit together when the route commits.

Idempotent creation:
  When the debt comes from an expense, the group id is a UUIDv5 of
  (expense id, debtor email, creditor email), so creating the same debt
  twice (a retry, or two clients racing) lands on the same group id. The
  UNIQUE(transaction_group_id, user_id) constraint turns the second insert
  into a conflict, and the existing row is returned instead.

Status transitions:
  pending, debtor_paid and settled are all directly reachable; the UI only
  offers the valid next action. A single UPDATE filtered on the group id
  moves both rows together, so either party sees the other's change.

Rate limits (per requester, per 60 s):
  create 5, update 10, delete 5.

Layer rules:
  - No Flask imports. Receives plain values and a SQLAlchemy session.
  - Commits are the route's responsibility — only flush here.
  - Store errors (SQLAlchemyError) propagate unchanged, except on the
    counterparty's best-effort row.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from roomledger.errors import (
    AppError,
    ErrorCode,
    NotFoundOrUnauthorized,
    Unauthorized,
)
from roomledger.models.profile import Profile
from roomledger.models.settlement import Settlement, SettlementStatus, SettlementType
from roomledger.schemas.settlement_schema import SettlementPartySchema
from roomledger.services.identity_service import Identity, build_current_user

logger = logging.getLogger(__name__)


CREATE_LIMIT = 5
UPDATE_LIMIT = 10
DELETE_LIMIT = 5
WINDOW_SECONDS = 60

# Namespace for deterministic group ids derived from an expense.
_GROUP_NAMESPACE = uuid.UUID("6f1c2a9e-3b7d-4c1e-9a55-2d0f8e4b7c31")


# ── Private helpers ────────────────────────────────────────────────────────

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _resolve_limiter(limiter):
    if limiter is None:
        from roomledger.extensions import limiter as default_limiter  # avoid circular import
        return default_limiter
    return limiter


def _get_requester(user_id: str, session: Session) -> Profile:
    """Returns the requester's Profile or raises USER_NOT_FOUND (404)."""
    profile = session.get(Profile, user_id)
    if profile is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "Create your profile before recording settlements.",
            404,
        )
    return profile


def _find_profile_id_by_email(email: str, session: Session) -> str | None:
    return session.execute(
        select(Profile.id).where(Profile.email == email.lower())
    ).scalar_one_or_none()


def _find_row(transaction_group_id: str, user_id: str, session: Session) -> Settlement | None:
    return session.execute(
        select(Settlement).where(
            Settlement.transaction_group_id == transaction_group_id,
            Settlement.user_id == user_id,
        )
    ).scalar_one_or_none()


def check_create_limit(user_id: str, limiter=None) -> None:
    """Charges one settlement creation to `user_id`; raises RateLimitExceeded (429) past the limit."""
    _resolve_limiter(limiter).check(
        f"settlement_create:{user_id}",
        CREATE_LIMIT,
        WINDOW_SECONDS,
        "Too many settlements created. Please wait a minute.",
    )


def transaction_group_id_for(expense_id: str, debtor_email: str, creditor_email: str) -> str:
    """Deterministic group id for the debt `debtor → creditor` on one expense."""
    key = f"{expense_id}:{debtor_email.lower()}:{creditor_email.lower()}"
    return str(uuid.uuid5(_GROUP_NAMESPACE, key))


def _insert_counterpart_row(
        primary: Settlement,
        counterparty_email: str,
        requester_identity: Identity,
        session: Session,
) -> Settlement | None:
    """
    Writes the counterparty's mirror of `primary`.

    Every statement runs inside the caller's savepoint, so a failure here
    leaves the requester's row in a usable transaction. Returns None when
    there is no one to mirror to or the mirror already exists.
    """
    counterpart_id = _find_profile_id_by_email(counterparty_email, session)
    if counterpart_id is None:
        logger.warning(
            "No profile for %s; settlement group %s stays single-sided",
            counterparty_email, primary.transaction_group_id,
        )
        return None
    if counterpart_id == primary.user_id:
        logger.warning("Skipped paired entry: both parties are user %s", primary.user_id)
        return None
    if _find_row(primary.transaction_group_id, counterpart_id, session) is not None:
        return None

    role = SettlementType(primary.type)
    mirror = Settlement(
        user_id=counterpart_id,
        name=requester_identity.name,
        email=requester_identity.email.lower(),
        upi_id=primary.upi_id,
        amount=primary.amount,
        type=role.opposite().value,
        status=primary.status,
        settled_date=primary.settled_date,
        transaction_group_id=primary.transaction_group_id,
        expense_id=primary.expense_id,
        debtor_user_id=primary.user_id if role is SettlementType.OWES else counterpart_id,
        creditor_user_id=counterpart_id if role is SettlementType.OWES else primary.user_id,
        marked_by_debtor=primary.marked_by_debtor,
        marked_by_creditor=primary.marked_by_creditor,
    )

    session.add(mirror)
    if role is SettlementType.OWES:
        primary.creditor_user_id = counterpart_id
    else:
        primary.debtor_user_id = counterpart_id
    session.flush()

    return mirror


# ── Public service functions ───────────────────────────────────────────────

def create_settlement_pair(
        debtor: Identity,
        creditor: Identity,
        amount: Decimal,
        requesting_user_id: str,
        session: Session,
        limiter=None,
        expense_id: str | None = None,
        initial_status: SettlementStatus | str = SettlementStatus.PENDING,
        rate_limited: bool = True,
) -> Settlement:
    """
    Records the debt `debtor owes creditor amount`.

    Args:
        debtor, creditor:   the two parties. The requester must be one of them
                            (matched by the email on their profile).
        amount:             positive Decimal, at most 2 dp.
        requesting_user_id: the authenticated caller.
        expense_id:         the expense the debt came from, if any. Makes the
                            group id deterministic and the call idempotent.
        initial_status:     "pending", or "settled" to record a payment that
                            already happened. A settled record always makes
                            the requester the creditor.
        rate_limited:       False when the caller has already charged one
                            creation against the limiter for a batch (one
                            expense producing several debts).

    Raises:
        RateLimitExceeded (429), ValidationError (400), USER_NOT_FOUND (404),
        Unauthorized (403) when the requester is neither party.

    Returns:
        The requester's row. The counterparty's row, if any, is not returned.
    """
    if rate_limited:
        check_create_limit(requesting_user_id, limiter)

    status = SettlementStatus(initial_status)
    requester = _get_requester(requesting_user_id, session)
    me = build_current_user(requester).identity

    if status is SettlementStatus.SETTLED and me.same_party(debtor):
        # A payment already made is recorded from the receiving side.
        logger.info("Recording settled debt with requester %s as creditor", requesting_user_id)
        debtor, creditor = creditor, debtor

    if me.same_party(debtor):
        role, counterparty = SettlementType.OWES, creditor
    elif me.same_party(creditor):
        role, counterparty = SettlementType.OWED, debtor
    else:
        logger.info("User %s tried to record a debt they are not party to", requesting_user_id)
        raise Unauthorized("You can only record settlements you are a party to.")

    data = SettlementPartySchema().load({
        "amount": amount,
        "name": counterparty.name,
        "email": counterparty.email,
        "upi_id": creditor.upi_id,
        "type": role.value,
    })

    if expense_id is not None:
        group_id = transaction_group_id_for(expense_id, debtor.email, creditor.email)
    else:
        group_id = str(uuid.uuid4())

    existing = _find_row(group_id, requesting_user_id, session)
    if existing is not None:
        logger.info("Settlement group %s already recorded for user %s", group_id, requesting_user_id)
        return existing

    settled_date = _now() if status is SettlementStatus.SETTLED else None
    row = Settlement(
        user_id=requesting_user_id,
        name=data["name"],
        email=data["email"].lower(),
        upi_id=data["upi_id"],
        amount=data["amount"],
        type=role.value,
        status=status.value,
        settled_date=settled_date,
        transaction_group_id=group_id,
        expense_id=expense_id,
        debtor_user_id=requesting_user_id if role is SettlementType.OWES else None,
        creditor_user_id=requesting_user_id if role is SettlementType.OWED else None,
        marked_by_creditor=status is SettlementStatus.SETTLED,
    )

    try:
        with session.begin_nested():
            session.add(row)
    except IntegrityError:
        # Lost a race with an identical creation; theirs stands.
        existing = _find_row(group_id, requesting_user_id, session)
        if existing is None:
            raise
        logger.info("Concurrent creation of settlement group %s resolved to existing row", group_id)
        return existing

    logger.debug("Created settlement %s (group %s) for user %s", row.id, group_id, requesting_user_id)

    counterparty_email = data["email"].lower()
    try:
        with session.begin_nested():
            _insert_counterpart_row(row, counterparty_email, me, session)
    except SQLAlchemyError:
        logger.warning(
            "Could not create paired settlement for %s in group %s",
            counterparty_email, group_id,
            exc_info=True,
        )

    return row


def update_status(
        transaction_group_id: str,
        new_status: SettlementStatus | str,
        requesting_user_id: str,
        session: Session,
        limiter=None,
) -> list[Settlement]:
    """
    Moves every row of the group to `new_status` in one UPDATE.

    `settled` stamps settled_date; any other status clears it.

    Raises:
        RateLimitExceeded (429), INVALID_STATUS (400),
        NotFoundOrUnauthorized (404) when the group has no rows,
        Unauthorized (403) when the requester is not the owner, debtor or
        creditor of any row in the group.

    Returns:
        All rows of the group after the update.
    """
    _resolve_limiter(limiter).check(
        f"settlement_update:{requesting_user_id}",
        UPDATE_LIMIT,
        WINDOW_SECONDS,
        "Too many update attempts. Please wait.",
    )

    try:
        status = SettlementStatus(new_status)
    except ValueError:
        raise AppError(
            ErrorCode.INVALID_STATUS,
            f"Invalid status value: {new_status}. Must be one of: pending, debtor_paid, settled.",
            400,
            field="status",
        )

    rows = list(session.execute(
        select(Settlement).where(Settlement.transaction_group_id == transaction_group_id)
    ).scalars().all())

    if not rows:
        raise NotFoundOrUnauthorized()

    allowed = any(
        requesting_user_id in (r.user_id, r.debtor_user_id, r.creditor_user_id)
        for r in rows
    )
    if not allowed:
        logger.info(
            "User %s denied status update on settlement group %s",
            requesting_user_id, transaction_group_id,
        )
        raise Unauthorized("You can only update your own settlements.")

    now = _now()
    session.execute(
        update(Settlement)
        .where(Settlement.transaction_group_id == transaction_group_id)
        .values(
            status=status.value,
            settled_date=now if status is SettlementStatus.SETTLED else None,
            marked_by_debtor=status is not SettlementStatus.PENDING,
            marked_by_creditor=status is SettlementStatus.SETTLED,
            updated_at=now,
        )
        .execution_options(synchronize_session="fetch")
    )
    session.flush()

    logger.debug(
        "User %s moved settlement group %s to %s",
        requesting_user_id, transaction_group_id, status.value,
    )

    return list(session.execute(
        select(Settlement)
        .where(Settlement.transaction_group_id == transaction_group_id)
        .execution_options(populate_existing=True)
    ).scalars().all())


def delete_settlement_group(
        transaction_group_id: str,
        requesting_user_id: str,
        session: Session,
        limiter=None,
) -> int:
    """
    Deletes every row sharing `transaction_group_id`, both sides at once.

    The requester must own one of the rows. A missing group and a group the
    requester has no row in are reported the same way.

    Raises:
        RateLimitExceeded (429), NotFoundOrUnauthorized (404).

    Returns:
        The number of rows removed.
    """
    _resolve_limiter(limiter).check(
        f"settlement_delete:{requesting_user_id}",
        DELETE_LIMIT,
        WINDOW_SECONDS,
        "Too many delete attempts. Please wait.",
    )

    owned = session.execute(
        select(Settlement.id)
        .where(
            Settlement.transaction_group_id == transaction_group_id,
            Settlement.user_id == requesting_user_id,
        )
        .limit(1)
    ).first()

    if owned is None:
        raise NotFoundOrUnauthorized()

    result = session.execute(
        delete(Settlement)
        .where(Settlement.transaction_group_id == transaction_group_id)
        .execution_options(synchronize_session="fetch")
    )
    session.flush()

    logger.debug(
        "User %s deleted settlement group %s (%d rows)",
        requesting_user_id, transaction_group_id, result.rowcount,
    )
    return result.rowcount


def fetch_settlements(user_id: str, session: Session) -> list[Settlement]:
    """Returns the user's own rows, newest first. Unpaginated."""
    stmt = (
        select(Settlement)
        .where(Settlement.user_id == user_id)
        .order_by(Settlement.created_at.desc())
    )
    return list(session.execute(stmt).scalars().all())
