"""
routes/expenses.py — Expense route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1/expenses):
  POST /   → 201  record an expense and the caller's settlements for it
  GET  /   → 200  list the caller's expenses, newest first
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from roomledger.extensions import db
from roomledger.middleware.auth_middleware import require_auth
from roomledger.models.expense import Expense
from roomledger.routes.settlements import serialize_settlement
from roomledger.schemas.expense_schema import CreateExpenseSchema
from roomledger.services import expense_service

expenses_bp = Blueprint("expenses", __name__)


def _serialize_expense(expense: Expense) -> dict:
    """Converts an Expense ORM object to a plain dict for JSON output."""
    return {
        "id": expense.id,
        "description": expense.description,
        "amount": str(expense.amount),  # Decimal → string
        "paid_by": expense.paid_by,
        "date": expense.expense_date.isoformat(),
        "category": expense.category,
        "sharers": list(expense.sharers or []),
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
    }


@expenses_bp.route("/", methods=["POST"])
@require_auth
def create_expense():
    """
    POST /expenses — Record an expense.

    The response carries the expense plus the caller's settlement rows it
    produced. Sharers that could not be matched come back as warnings.
    """
    data = CreateExpenseSchema().load(request.get_json(force=True) or {})
    expense, settlements, warnings = expense_service.record_expense(
        caller_id=g.user_id,
        data=data,
        session=db.session,
        dedupe_sharers=current_app.config.get("DEDUPLICATE_SHARERS", False),
    )
    db.session.commit()
    return jsonify({
        "data": {
            **_serialize_expense(expense),
            "settlements": [serialize_settlement(s) for s in settlements],
        },
        "warnings": warnings,
    }), 201


@expenses_bp.route("/", methods=["GET"])
@require_auth
def list_expenses():
    """GET /expenses — The caller's expenses."""
    expenses = expense_service.list_expenses(g.user_id, db.session)
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200
