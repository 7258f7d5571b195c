"""
services/identity_service.py — Who is "Priya"? Who is "You"?

Expenses name people the way the form showed them: the current user's
display name (or their email, or their email's local part), a roommate's
name, sometimes a roommate's email. Everything that turns those strings into
a party to a debt goes through this module, so the rest of the code compares
Identity values rather than raw strings.

Layer rules:
  - No Flask imports, no session. Pure functions over plain objects.
  - Anything with `name`, `email`, `upi_id` attributes works as a profile or
    roommate (ORM rows in the app, SimpleNamespace in tests).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable


FALLBACK_DISPLAY_NAME = "You"


@dataclass(frozen=True)
class Identity:
    """The minimal data needed to address a party in a settlement."""

    name: str
    email: str
    upi_id: str = ""

    def same_party(self, other: "Identity | None") -> bool:
        """Two identities are the same person when their emails match."""
        if other is None or not self.email or not other.email:
            return False
        return self.email.lower() == other.email.lower()


@dataclass(frozen=True)
class CurrentUser:
    """The requesting user: their Identity plus every string that denotes them."""

    identity: Identity
    aliases: frozenset[str] = field(default_factory=frozenset)
    user_id: str | None = None

    @property
    def display_name(self) -> str:
        return self.identity.name

    def is_alias(self, candidate: str | None) -> bool:
        return candidate is not None and candidate in self.aliases


def _email_local_part(email: str | None) -> str:
    if not email:
        return ""
    return email.split("@")[0]


def resolve_display_name(profile, user=None) -> str:
    """
    Returns profile.name if present, else the local part of the account
    email, else the literal "You".
    """
    name = getattr(profile, "name", None) if profile is not None else None
    if name:
        return name

    email = getattr(user, "email", None) if user is not None else None
    if not email and profile is not None:
        email = getattr(profile, "email", None)

    local = _email_local_part(email)
    return local or FALLBACK_DISPLAY_NAME


def current_user_aliases(display_name: str, profile, user=None) -> frozenset[str]:
    """Display name, raw email, email local part and profile name."""
    aliases = {display_name}

    for source in (user, profile):
        email = getattr(source, "email", None) if source is not None else None
        if email:
            aliases.add(email)
            aliases.add(_email_local_part(email))

    profile_name = getattr(profile, "name", None) if profile is not None else None
    if profile_name:
        aliases.add(profile_name)

    aliases.discard("")
    return frozenset(aliases)


def build_current_user(profile, user=None) -> CurrentUser:
    """
    Bundles the requester's canonical identity and aliases.

    `user` is the authenticated account (anything with `email`/`id`); when it
    is omitted the profile stands in for it.
    """
    display_name = resolve_display_name(profile, user)

    email = getattr(user, "email", None) if user is not None else None
    if not email and profile is not None:
        email = getattr(profile, "email", None)

    upi_id = getattr(profile, "upi_id", None) if profile is not None else None

    user_id = getattr(user, "id", None) if user is not None else None
    if user_id is None and profile is not None:
        user_id = getattr(profile, "id", None)

    return CurrentUser(
        identity=Identity(name=display_name, email=(email or "").lower(), upi_id=upi_id or ""),
        aliases=current_user_aliases(display_name, profile, user),
        user_id=user_id,
    )


def canonical_name(candidate: str, current_user: CurrentUser) -> str:
    """Collapses any alias of the current user to their display name."""
    if current_user.is_alias(candidate):
        return current_user.display_name
    return candidate


def roommate_identity(roommate) -> Identity:
    return Identity(
        name=roommate.name,
        email=(roommate.email or "").lower(),
        upi_id=getattr(roommate, "upi_id", None) or "",
    )


def resolve_party(
        candidate_name: str,
        current_user: CurrentUser,
        roommates: Iterable,
) -> Identity | None:
    """
    Maps a free-text name from an expense to a party.

    Order of precedence:
      1. any alias of the current user → the current user's identity
      2. a roommate whose name equals the candidate exactly
      3. a roommate whose email equals the candidate (case-insensitive)

    Returns None when nothing matches, or when the match has no email to
    address a settlement to. Callers skip that party.
    """
    if not candidate_name:
        return None

    if current_user.is_alias(candidate_name):
        return current_user.identity if current_user.identity.email else None

    roommates = list(roommates)

    for roommate in roommates:
        if roommate.name == candidate_name:
            return roommate_identity(roommate) if roommate.email else None

    if "@" in candidate_name:
        wanted = candidate_name.lower()
        for roommate in roommates:
            if roommate.email and roommate.email.lower() == wanted:
                return roommate_identity(roommate)

    return None
