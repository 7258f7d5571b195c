"""
services/profile_service.py — The caller's own profile.

The account itself lives with the hosted identity provider; this table only
holds what settlements need: a display name, the email counterparties are
looked up by, and a UPI id to be paid at.

Layer rules:
  - No Flask imports. Commits are the route's responsibility.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from roomledger.errors import AppError, ErrorCode
from roomledger.models.profile import Profile

logger = logging.getLogger(__name__)


def get_profile(user_id: str, session: Session) -> Profile:
    """Returns the Profile or raises USER_NOT_FOUND (404)."""
    profile = session.get(Profile, user_id)
    if profile is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "No profile exists for this account yet.",
            404,
        )
    return profile


def upsert_profile(user_id: str, data: dict, session: Session) -> tuple[Profile, bool]:
    """
    Creates or updates the caller's profile.

    Args:
        data: Validated dict from UpsertProfileSchema.
              Keys: name (str | None), email (str), upi_id (str | None).

    Raises:
        DUPLICATE_EMAIL (409) if another profile already uses the email.

    Returns:
        (profile, created)
    """
    email = data["email"].strip().lower()

    taken_by = session.execute(
        select(Profile.id).where(Profile.email == email, Profile.id != user_id)
    ).scalar_one_or_none()
    if taken_by is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"Email '{email}' is already registered to another account.",
            409,
            field="email",
        )

    profile = session.get(Profile, user_id)
    created = profile is None
    if created:
        profile = Profile(id=user_id, email=email)
        session.add(profile)

    profile.email = email
    profile.name = data.get("name")
    profile.upi_id = data.get("upi_id")
    session.flush()

    logger.debug("%s profile %s", "Created" if created else "Updated", user_id)
    return profile, created
