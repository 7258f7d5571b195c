"""
routes/balances.py — Balance route handler.

Endpoints (url_prefix=/api/v1/balances):
  GET / → 200  net balance per participant, total spent, totals per category
             and per month
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from roomledger.extensions import db
from roomledger.middleware.auth_middleware import require_auth
from roomledger.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/", methods=["GET"])
@require_auth
def get_balances():
    """GET /balances — Balances from the caller's point of view."""
    result = balance_service.get_balances(
        caller_id=g.user_id,
        session=db.session,
        dedupe=current_app.config.get("DEDUPLICATE_SHARERS", False),
    )
    return jsonify({
        "data": {
            "total_expenses": str(result["total_expenses"]),
            "balances": [
                {"name": b["name"], "balance": str(b["balance"])}
                for b in result["balances"]
            ],
            "categories": [
                {"name": c["name"], "total": str(c["total"])}
                for c in result["categories"]
            ],
            "months": [
                {"month": m["month"], "total": str(m["total"])}
                for m in result["months"]
            ],
        },
        "warnings": [],
    }), 200
