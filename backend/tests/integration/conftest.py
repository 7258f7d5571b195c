"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at an in-memory SQLite database unless TEST_DATABASE_URL is set.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order and the rate
    limiter is reset, so tests are isolated.
  - Access tokens are minted here with the testing secret, the way the
    hosted identity provider would issue them.

Helper functions (not fixtures) are provided for common operations:
  - make_token(user_id, email)     → signed access token
  - auth_headers(token)            → {"Authorization": "Bearer <token>"}
  - new_user(client, name, ...)    → dict with id, token, email, name, upi_id
  - add_roommate(client, ...)      → roommate dict
  - make_expense(client, ...)      → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from roomledger import create_app
from roomledger.extensions import db as _db
from roomledger.extensions import limiter


TEST_SECRET = "roomledger-testing-secret-0123456789abcdef"
TEST_AUDIENCE = "authenticated"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    limiter.reset()
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM settlements"))
            conn.execute(text("DELETE FROM expenses"))
            conn.execute(text("DELETE FROM roommates"))
            conn.execute(text("DELETE FROM profiles"))
            conn.execute(text("DELETE FROM rate_limit_windows"))
            conn.commit()

    limiter.reset()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_token(
    user_id: str,
    email: str | None = None,
    expires_in: timedelta = timedelta(hours=1),
    audience: str = TEST_AUDIENCE,
    secret: str = TEST_SECRET,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
    }
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def new_user(
    client,
    name: str = "Alice",
    email: str | None = None,
    upi_id: str | None = None,
) -> dict:
    """
    Signs a token for a fresh account and saves its profile.
    Returns: {"id", "token", "name", "email", "upi_id"}
    """
    if email is None:
        email = f"{name.lower()}@test.com"
    if upi_id is None:
        upi_id = f"{name.lower()}@upi"

    user_id = str(uuid.uuid4())
    token = make_token(user_id, email)
    resp = client.put(
        "/api/v1/profile/",
        json={"name": name, "email": email, "upi_id": upi_id},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"new_user failed: {resp.get_json()}"
    return {"id": user_id, "token": token, "name": name, "email": email, "upi_id": upi_id}


def add_roommate(
    client,
    token: str,
    name: str,
    email: str | None = None,
    upi_id: str | None = None,
) -> dict:
    """Adds a roommate to the token owner's roster and returns it."""
    resp = client.post(
        "/api/v1/roommates/",
        json={
            "name": name,
            "email": email or f"{name.lower()}@test.com",
            "upi_id": upi_id or f"{name.lower()}@upi",
        },
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"add_roommate failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_expense(
    client,
    token: str,
    paid_by: str,
    amount: str,
    sharers: list[str] | None = None,
    description: str = "Groceries",
    category: str = "food",
    date: str | None = None,
):
    """Creates an expense and returns the HTTP response."""
    payload: dict = {
        "description": description,
        "amount": amount,
        "paid_by": paid_by,
        "category": category,
    }
    if sharers is not None:
        payload["sharers"] = sharers
    if date is not None:
        payload["date"] = date

    return client.post("/api/v1/expenses/", json=payload, headers=auth_headers(token))


def list_settlements(client, token: str) -> list[dict]:
    resp = client.get("/api/v1/settlements/", headers=auth_headers(token))
    assert resp.status_code == 200
    return resp.get_json()["data"]
