"""
tests/integration/test_settlements.py — Integration tests for the settlement ledger.

Endpoints covered:
  GET    /settlements                         → 200
  POST   /settlements                         → 201 (manual debt)
  PATCH  /settlements/:group_id/status        → 200
  DELETE /settlements/:group_id               → 200

Behaviour verified:
  - Every debt is written as a pair of rows sharing one transaction_group_id
    when the counterparty has a profile; a single row otherwise.
  - A failure while writing the counterparty's row never fails the request.
  - Recording the same expense debt twice returns the existing row.
  - A status change moves both rows at once; delete removes both rows.
  - Permission and rate-limit failures.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from conftest import (
    add_roommate,
    auth_headers,
    list_settlements,
    make_expense,
    make_token,
    new_user,
)
from roomledger.extensions import db
from roomledger.models.settlement import Settlement
from roomledger.services import settlement_service
from roomledger.services.identity_service import Identity


# ═══════════════════════════════════════════════════════════════════════════
# Setup helpers
# ═══════════════════════════════════════════════════════════════════════════

def _setup(client):
    """Alice and Bob both have accounts; Bob is on Alice's roster."""
    alice = new_user(client, "Alice")
    bob = new_user(client, "Bob")
    add_roommate(client, alice["token"], "Bob")
    return alice, bob


def _create_debt(client, alice, amount="100.00"):
    """Alice pays, split with Bob. Returns Alice's row for the debt."""
    resp = make_expense(client, alice["token"], paid_by="Alice", amount=amount, sharers=["Alice", "Bob"])
    assert resp.status_code == 201, resp.get_json()
    settlements = resp.get_json()["data"]["settlements"]
    assert len(settlements) == 1
    return settlements[0]


def _manual(client, token, **overrides):
    payload = {
        "name": "Carol",
        "email": "carol@test.com",
        "upi_id": "carol@upi",
        "amount": "40.00",
        "type": "owes",
    }
    payload.update(overrides)
    return client.post("/api/v1/settlements/", json=payload, headers=auth_headers(token))


def _patch_status(client, token, group_id, status):
    return client.patch(
        f"/api/v1/settlements/{group_id}/status",
        json={"status": status},
        headers=auth_headers(token),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Paired creation
# ═══════════════════════════════════════════════════════════════════════════

class TestPairedCreation:

    def test_expense_debt_creates_one_row_per_party(self, client):
        alice, bob = _setup(client)
        row = _create_debt(client, alice, "100.00")

        assert row["type"] == "owed"
        assert row["name"] == "Bob"
        assert row["email"] == "bob@test.com"
        assert row["amount"] == "50.00"
        assert row["status"] == "pending"

        bob_rows = list_settlements(client, bob["token"])
        assert len(bob_rows) == 1
        mirror = bob_rows[0]
        assert mirror["transaction_group_id"] == row["transaction_group_id"]
        assert mirror["type"] == "owes"
        assert mirror["name"] == "Alice"
        assert mirror["email"] == "alice@test.com"
        assert mirror["amount"] == "50.00"

    def test_both_rows_carry_the_creditors_upi_id(self, client):
        alice, bob = _setup(client)
        row = _create_debt(client, alice)

        assert row["upi_id"] == "alice@upi"
        assert list_settlements(client, bob["token"])[0]["upi_id"] == "alice@upi"

    def test_counterparty_without_account_leaves_single_row(self, client, app):
        alice = new_user(client, "Alice")

        resp = _manual(client, alice["token"])
        assert resp.status_code == 201
        group_id = resp.get_json()["data"]["transaction_group_id"]

        with app.app_context():
            count = db.session.execute(
                select(func.count()).select_from(Settlement)
                .where(Settlement.transaction_group_id == group_id)
            ).scalar_one()
        assert count == 1

    def test_counterpart_lookup_failure_is_swallowed(self, client, monkeypatch):
        alice, bob = _setup(client)

        def _boom(email, session):
            raise SQLAlchemyError("lookup failed")

        monkeypatch.setattr(settlement_service, "_find_profile_id_by_email", _boom)

        resp = _manual(client, alice["token"], name="Bob", email="bob@test.com", upi_id="bob@upi")
        assert resp.status_code == 201
        assert resp.get_json()["data"]["type"] == "owes"

        assert len(list_settlements(client, alice["token"])) == 1
        assert list_settlements(client, bob["token"]) == []

    def test_counterpart_insert_failure_keeps_primary_row(self, client, monkeypatch):
        """The counterpart row points at a profile that does not exist; the FK rejects it."""
        alice = new_user(client, "Alice")
        monkeypatch.setattr(
            settlement_service,
            "_find_profile_id_by_email",
            lambda email, session: "00000000-0000-0000-0000-000000000000",
        )

        resp = _manual(client, alice["token"])
        assert resp.status_code == 201

        rows = list_settlements(client, alice["token"])
        assert len(rows) == 1
        assert rows[0]["name"] == "Carol"

    def test_failed_lookup_statement_keeps_primary_row(self, client, monkeypatch):
        """The lookup reaches the database and the statement itself fails."""
        alice, bob = _setup(client)

        def _broken_lookup(email, session):
            session.execute(text("SELECT id FROM no_such_table WHERE email = :email"), {"email": email})

        monkeypatch.setattr(settlement_service, "_find_profile_id_by_email", _broken_lookup)

        resp = _manual(client, alice["token"], name="Bob", email="bob@test.com", upi_id="bob@upi")
        assert resp.status_code == 201
        group_id = resp.get_json()["data"]["transaction_group_id"]

        rows = list_settlements(client, alice["token"])
        assert [r["transaction_group_id"] for r in rows] == [group_id]
        assert list_settlements(client, bob["token"]) == []

    def test_failed_mirror_check_keeps_primary_row(self, client, app, monkeypatch):
        """The lookup succeeds; the next statement in the pairing step fails."""
        alice, bob = _setup(client)
        real_find_row = settlement_service._find_row

        def _find_row(group_id, user_id, session):
            if user_id == bob["id"]:
                session.execute(text("SELECT * FROM no_such_table"))
            return real_find_row(group_id, user_id, session)

        monkeypatch.setattr(settlement_service, "_find_row", _find_row)

        resp = _manual(client, alice["token"], name="Bob", email="bob@test.com", upi_id="bob@upi")
        assert resp.status_code == 201
        group_id = resp.get_json()["data"]["transaction_group_id"]

        with app.app_context():
            rows = db.session.execute(
                select(Settlement).where(Settlement.transaction_group_id == group_id)
            ).scalars().all()
            assert [r.user_id for r in rows] == [alice["id"]]
            assert rows[0].creditor_user_id is None

    def test_repeated_creation_for_same_expense_returns_existing_row(self, client, app):
        alice, bob = _setup(client)
        first = _create_debt(client, alice)

        with app.app_context():
            row = settlement_service.create_settlement_pair(
                debtor=Identity("Bob", "bob@test.com", "bob@upi"),
                creditor=Identity("Alice", "alice@test.com", "alice@upi"),
                amount=Decimal("50.00"),
                requesting_user_id=alice["id"],
                session=db.session,
                expense_id=first["expense_id"],
            )
            db.session.commit()
            assert row.id == first["id"]

            count = db.session.execute(
                select(func.count()).select_from(Settlement)
                .where(Settlement.transaction_group_id == first["transaction_group_id"])
            ).scalar_one()
        assert count == 2

    def test_counterparty_recording_same_debt_lands_on_same_group(self, client, app):
        """Bob writes the debt from his side after Alice did; no duplicate rows appear."""
        alice, bob = _setup(client)
        first = _create_debt(client, alice)

        with app.app_context():
            row = settlement_service.create_settlement_pair(
                debtor=Identity("Bob", "bob@test.com", "bob@upi"),
                creditor=Identity("Alice", "alice@test.com", "alice@upi"),
                amount=Decimal("50.00"),
                requesting_user_id=bob["id"],
                session=db.session,
                expense_id=first["expense_id"],
            )
            db.session.commit()
            assert row.transaction_group_id == first["transaction_group_id"]
            assert row.type == "owes"

        assert len(list_settlements(client, bob["token"])) == 1


# ═══════════════════════════════════════════════════════════════════════════
# POST /settlements
# ═══════════════════════════════════════════════════════════════════════════

class TestManualSettlement:

    def test_owes_makes_caller_the_debtor(self, client):
        alice = new_user(client, "Alice")
        resp = _manual(client, alice["token"], type="owes")

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["type"] == "owes"
        assert data["upi_id"] == "carol@upi"
        assert data["amount"] == "40.00"
        assert isinstance(data["amount"], str)

    def test_owed_uses_callers_upi_id(self, client):
        alice = new_user(client, "Alice")
        resp = _manual(client, alice["token"], type="owed", upi_id=None)

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["type"] == "owed"
        assert data["upi_id"] == "alice@upi"

    def test_settled_record_makes_caller_the_creditor(self, client):
        alice = new_user(client, "Alice")
        resp = _manual(client, alice["token"], type="owes", status="settled")

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["type"] == "owed"
        assert data["status"] == "settled"
        assert data["settled_date"] is not None

    def test_email_is_lower_cased(self, client):
        alice = new_user(client, "Alice")
        resp = _manual(client, alice["token"], email="Carol@Test.COM")
        assert resp.get_json()["data"]["email"] == "carol@test.com"

    def test_zero_amount_rejected(self, client):
        alice = new_user(client, "Alice")
        resp = _manual(client, alice["token"], amount="0")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "amount"

    def test_three_decimal_places_rejected(self, client):
        alice = new_user(client, "Alice")
        resp = _manual(client, alice["token"], amount="10.555")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT_PRECISION"

    def test_malformed_upi_id_rejected(self, client):
        alice = new_user(client, "Alice")
        resp = _manual(client, alice["token"], upi_id="bad upi!")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_UPI_ID"

    def test_malformed_email_rejected(self, client):
        alice = new_user(client, "Alice")
        resp = _manual(client, alice["token"], email="not-an-email")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "email"

    def test_initial_debtor_paid_rejected(self, client):
        alice = new_user(client, "Alice")
        resp = _manual(client, alice["token"], status="debtor_paid")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "status"

    def test_sixth_creation_in_a_minute_is_rate_limited(self, client):
        alice = new_user(client, "Alice")
        for _ in range(5):
            assert _manual(client, alice["token"]).status_code == 201

        resp = _manual(client, alice["token"])
        assert resp.status_code == 429
        assert resp.get_json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert len(list_settlements(client, alice["token"])) == 5

    def test_rate_limit_is_per_user(self, client):
        alice = new_user(client, "Alice")
        bob = new_user(client, "Bob")
        for _ in range(5):
            _manual(client, alice["token"])

        assert _manual(client, bob["token"]).status_code == 201

    def test_without_profile_returns_404(self, client):
        resp = _manual(client, make_token("5d1c3a70-0000-4000-8000-000000000001", "x@test.com"))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# GET /settlements
# ═══════════════════════════════════════════════════════════════════════════

class TestListSettlements:

    def test_newest_first(self, client):
        alice = new_user(client, "Alice")
        _manual(client, alice["token"], name="Carol", email="carol@test.com")
        _manual(client, alice["token"], name="Dave", email="dave@test.com", upi_id="dave@upi")

        names = [s["name"] for s in list_settlements(client, alice["token"])]
        assert names == ["Dave", "Carol"]

    def test_only_own_rows(self, client):
        alice, bob = _setup(client)
        _create_debt(client, alice)
        _manual(client, alice["token"])

        assert len(list_settlements(client, alice["token"])) == 2
        assert len(list_settlements(client, bob["token"])) == 1

    def test_requires_auth(self, client):
        resp = client.get("/api/v1/settlements/")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"


# ═══════════════════════════════════════════════════════════════════════════
# PATCH /settlements/:group_id/status
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdateStatus:

    def test_debtor_paid_moves_both_rows(self, client):
        alice, bob = _setup(client)
        row = _create_debt(client, alice)

        resp = _patch_status(client, bob["token"], row["transaction_group_id"], "debtor_paid")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "debtor_paid"
        assert [s["status"] for s in data["settlements"]] == ["debtor_paid"]

        assert list_settlements(client, alice["token"])[0]["status"] == "debtor_paid"
        assert list_settlements(client, bob["token"])[0]["status"] == "debtor_paid"

    def test_settled_stamps_settled_date_on_both_rows(self, client):
        alice, bob = _setup(client)
        row = _create_debt(client, alice)

        resp = _patch_status(client, alice["token"], row["transaction_group_id"], "settled")
        assert resp.status_code == 200

        for token in (alice["token"], bob["token"]):
            mine = list_settlements(client, token)[0]
            assert mine["status"] == "settled"
            assert mine["settled_date"] is not None

    def test_back_to_pending_clears_settled_date(self, client):
        alice, bob = _setup(client)
        row = _create_debt(client, alice)
        group_id = row["transaction_group_id"]

        _patch_status(client, alice["token"], group_id, "settled")
        resp = _patch_status(client, alice["token"], group_id, "pending")
        assert resp.status_code == 200

        for token in (alice["token"], bob["token"]):
            mine = list_settlements(client, token)[0]
            assert mine["status"] == "pending"
            assert mine["settled_date"] is None

    def test_does_not_touch_other_groups(self, client):
        alice, bob = _setup(client)
        row = _create_debt(client, alice)
        _manual(client, alice["token"])

        _patch_status(client, alice["token"], row["transaction_group_id"], "settled")

        statuses = {s["name"]: s["status"] for s in list_settlements(client, alice["token"])}
        assert statuses == {"Bob": "settled", "Carol": "pending"}

    def test_invalid_status_rejected(self, client):
        alice, bob = _setup(client)
        row = _create_debt(client, alice)

        resp = _patch_status(client, alice["token"], row["transaction_group_id"], "archived")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_STATUS"

    def test_non_party_gets_403(self, client):
        alice, bob = _setup(client)
        eve = new_user(client, "Eve")
        row = _create_debt(client, alice)

        resp = _patch_status(client, eve["token"], row["transaction_group_id"], "settled")
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"
        assert list_settlements(client, alice["token"])[0]["status"] == "pending"

    def test_unknown_group_gets_404(self, client):
        alice = new_user(client, "Alice")
        resp = _patch_status(client, alice["token"], "no-such-group", "settled")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "NOT_FOUND_OR_UNAUTHORIZED"

    def test_eleventh_update_in_a_minute_is_rate_limited(self, client):
        alice, bob = _setup(client)
        row = _create_debt(client, alice)
        group_id = row["transaction_group_id"]

        for i in range(10):
            status = "debtor_paid" if i % 2 == 0 else "pending"
            assert _patch_status(client, alice["token"], group_id, status).status_code == 200

        resp = _patch_status(client, alice["token"], group_id, "settled")
        assert resp.status_code == 429


# ═══════════════════════════════════════════════════════════════════════════
# DELETE /settlements/:group_id
# ═══════════════════════════════════════════════════════════════════════════

class TestDeleteSettlementGroup:

    def test_removes_both_rows(self, client):
        alice, bob = _setup(client)
        row = _create_debt(client, alice)

        resp = client.delete(
            f"/api/v1/settlements/{row['transaction_group_id']}",
            headers=auth_headers(bob["token"]),
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["deleted"] is True
        assert data["rows_removed"] == 2

        assert list_settlements(client, alice["token"]) == []
        assert list_settlements(client, bob["token"]) == []

    def test_leaves_other_groups_alone(self, client):
        alice, bob = _setup(client)
        row = _create_debt(client, alice)
        _manual(client, alice["token"])

        client.delete(
            f"/api/v1/settlements/{row['transaction_group_id']}",
            headers=auth_headers(alice["token"]),
        )

        remaining = list_settlements(client, alice["token"])
        assert [s["name"] for s in remaining] == ["Carol"]

    def test_non_owner_gets_404(self, client):
        alice, bob = _setup(client)
        eve = new_user(client, "Eve")
        row = _create_debt(client, alice)

        resp = client.delete(
            f"/api/v1/settlements/{row['transaction_group_id']}",
            headers=auth_headers(eve["token"]),
        )
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "NOT_FOUND_OR_UNAUTHORIZED"
        assert len(list_settlements(client, alice["token"])) == 1

    def test_missing_group_gets_404(self, client):
        alice = new_user(client, "Alice")
        resp = client.delete("/api/v1/settlements/missing", headers=auth_headers(alice["token"]))
        assert resp.status_code == 404
