"""
routes/settlements.py — Settlement route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1/settlements):
  GET    /                                → 200  caller's own rows, newest first
  POST   /                                → 201  record a debt with a named counterparty
  PATCH  /:transaction_group_id/status    → 200  move both rows of a debt to a status
  DELETE /:transaction_group_id           → 200  remove both rows of a debt
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from roomledger.extensions import db
from roomledger.middleware.auth_middleware import require_auth
from roomledger.models.settlement import Settlement, SettlementType
from roomledger.schemas.settlement_schema import (
    CreateSettlementSchema,
    UpdateSettlementStatusSchema,
)
from roomledger.services import profile_service, settlement_service
from roomledger.services.identity_service import Identity, build_current_user

settlements_bp = Blueprint("settlements", __name__)


# ── Serialization helper ───────────────────────────────────────────────────

def serialize_settlement(s: Settlement) -> dict:
    """Converts a Settlement ORM object to a plain dict for JSON output."""
    return {
        "id": s.id,
        "user_id": s.user_id,
        "name": s.name,
        "email": s.email,
        "upi_id": s.upi_id,
        "amount": str(s.amount),  # Decimal → string
        "type": s.type,
        "status": s.status,
        "settled_date": s.settled_date.isoformat() if s.settled_date else None,
        "transaction_group_id": s.transaction_group_id,
        "expense_id": s.expense_id,
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }


# ── Route handlers ─────────────────────────────────────────────────────────

@settlements_bp.route("/", methods=["GET"])
@require_auth
def list_settlements():
    """GET /settlements — The caller's own settlement rows."""
    settlements = settlement_service.fetch_settlements(g.user_id, db.session)
    return jsonify({
        "data": [serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/", methods=["POST"])
@require_auth
def create_settlement():
    """
    POST /settlements — Record a debt directly.

    Body: name, email, upi_id (counterparty), amount, type (the caller's
    role: "owes" or "owed"), status ("pending" or "settled").
    """
    data = CreateSettlementSchema().load(request.get_json(force=True) or {})

    me = build_current_user(profile_service.get_profile(g.user_id, db.session)).identity
    other = Identity(name=data["name"], email=data["email"], upi_id=data["upi_id"] or "")

    if data["type"] is SettlementType.OWES:
        debtor, creditor = me, other
    else:
        debtor, creditor = other, me

    settlement = settlement_service.create_settlement_pair(
        debtor=debtor,
        creditor=creditor,
        amount=data["amount"],
        requesting_user_id=g.user_id,
        session=db.session,
        initial_status=data["status"],
    )
    db.session.commit()
    return jsonify({"data": serialize_settlement(settlement), "warnings": []}), 201


@settlements_bp.route("/<string:transaction_group_id>/status", methods=["PATCH"])
@require_auth
def update_settlement_status(transaction_group_id: str):
    """PATCH /settlements/:transaction_group_id/status — Body: {"status": ...}."""
    data = UpdateSettlementStatusSchema().load(request.get_json(force=True) or {})
    rows = settlement_service.update_status(
        transaction_group_id=transaction_group_id,
        new_status=data["status"],
        requesting_user_id=g.user_id,
        session=db.session,
    )
    db.session.commit()

    own = [serialize_settlement(s) for s in rows if s.user_id == g.user_id]
    return jsonify({
        "data": {
            "transaction_group_id": transaction_group_id,
            "status": data["status"].value,
            "settlements": own,
        },
        "warnings": [],
    }), 200


@settlements_bp.route("/<string:transaction_group_id>", methods=["DELETE"])
@require_auth
def delete_settlement(transaction_group_id: str):
    """DELETE /settlements/:transaction_group_id — Removes both sides of a debt."""
    removed = settlement_service.delete_settlement_group(
        transaction_group_id=transaction_group_id,
        requesting_user_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "deleted": True,
            "transaction_group_id": transaction_group_id,
            "rows_removed": removed,
        },
        "warnings": [],
    }), 200
