"""
tests/integration/test_auth.py — Bearer-token verification on protected routes.

Accounts live with the identity provider; these tests mint tokens the way
it does and check every rejection path of @require_auth.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from conftest import auth_headers, make_token, new_user

PROTECTED = [
    ("get", "/api/v1/profile/"),
    ("get", "/api/v1/roommates/"),
    ("get", "/api/v1/expenses/"),
    ("get", "/api/v1/settlements/"),
    ("get", "/api/v1/balances/"),
]


@pytest.mark.parametrize("method,path", PROTECTED)
def test_missing_header_is_401(client, method, path):
    resp = getattr(client, method)(path)
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"


def test_non_bearer_scheme_is_401(client):
    resp = client.get("/api/v1/profile/", headers={"Authorization": "Basic abc"})
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"


def test_garbage_token_is_401(client):
    resp = client.get("/api/v1/profile/", headers=auth_headers("not.a.jwt"))
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"


def test_wrong_secret_is_401(client):
    token = make_token(str(uuid.uuid4()), "a@test.com", secret="someone-elses-secret-0123456789abcdef0123")
    resp = client.get("/api/v1/profile/", headers=auth_headers(token))
    assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"


def test_wrong_audience_is_401(client):
    token = make_token(str(uuid.uuid4()), "a@test.com", audience="service_role")
    resp = client.get("/api/v1/profile/", headers=auth_headers(token))
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"


def test_expired_token_is_401(client):
    token = make_token(str(uuid.uuid4()), "a@test.com", expires_in=timedelta(seconds=-30))
    resp = client.get("/api/v1/profile/", headers=auth_headers(token))
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"


def test_valid_token_reaches_route(client):
    alice = new_user(client, "Alice")
    resp = client.get("/api/v1/profile/", headers=auth_headers(alice["token"]))
    assert resp.status_code == 200


def test_error_responses_carry_no_traceback(client):
    resp = client.get("/api/v1/profile/")
    body = resp.get_json()
    assert set(body) == {"error"}
    assert "Traceback" not in resp.get_data(as_text=True)
