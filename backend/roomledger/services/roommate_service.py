"""
services/roommate_service.py — The caller's roommate roster.

The roster is what an expense with no explicit sharers is split among, and
what sharer and payer names are resolved against.

Rules:
  - Email is the identity key: unique per owner, case-insensitive.
  - A roster only ever contains the owner's own entries.

Layer rules:
  - No Flask imports. Commits are the route's responsibility.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from roomledger.errors import AppError, ErrorCode
from roomledger.models.roommate import Roommate
from roomledger.services import profile_service


def list_roommates(owner_id: str, session: Session) -> list[Roommate]:
    """Returns the owner's roster in the order it was built."""
    stmt = (
        select(Roommate)
        .where(Roommate.user_id == owner_id)
        .order_by(Roommate.created_at.asc())
    )
    return list(session.execute(stmt).scalars().all())


def add_roommate(owner_id: str, data: dict, session: Session) -> Roommate:
    """
    Adds a roommate to the owner's roster.

    Args:
        data: Validated dict from CreateRoommateSchema.

    Raises:
        USER_NOT_FOUND (404) if the owner has not created a profile yet.
        DUPLICATE_ROOMMATE (409) if the email is already on the roster.
    """
    profile_service.get_profile(owner_id, session)
    email = data["email"].strip().lower()

    duplicate = session.execute(
        select(Roommate.id).where(
            Roommate.user_id == owner_id,
            func.lower(Roommate.email) == email,
        )
    ).scalar_one_or_none()

    if duplicate is not None:
        raise AppError(
            ErrorCode.DUPLICATE_ROOMMATE,
            f"A roommate with email '{email}' is already on your roster.",
            409,
            field="email",
        )

    roommate = Roommate(
        user_id=owner_id,
        name=data["name"].strip(),
        email=email,
        upi_id=data["upi_id"],
        phone=data.get("phone"),
    )
    session.add(roommate)
    session.flush()
    return roommate


def remove_roommate(owner_id: str, roommate_id: str, session: Session) -> None:
    """
    Removes a roommate from the owner's roster.

    Someone else's roommate is reported as not found.
    """
    roommate = session.get(Roommate, roommate_id)
    if roommate is None or roommate.user_id != owner_id:
        raise AppError(
            ErrorCode.ROOMMATE_NOT_FOUND,
            f"Roommate {roommate_id} does not exist.",
            404,
        )
    session.delete(roommate)
    session.flush()
