"""
routes/roommates.py — Roster route handlers.

Endpoints (url_prefix=/api/v1/roommates):
  GET    /              → 200  the caller's roster
  POST   /              → 201  add a roommate
  DELETE /:roommate_id  → 200  remove a roommate
"""

from flask import Blueprint, g, jsonify, request

from roomledger.extensions import db
from roomledger.middleware.auth_middleware import require_auth
from roomledger.models.roommate import Roommate
from roomledger.schemas.roommate_schema import CreateRoommateSchema
from roomledger.services import roommate_service

roommates_bp = Blueprint("roommates", __name__)


def _serialize_roommate(roommate: Roommate) -> dict:
    return {
        "id": roommate.id,
        "name": roommate.name,
        "email": roommate.email,
        "upi_id": roommate.upi_id,
        "phone": roommate.phone,
        "created_at": roommate.created_at.isoformat() if roommate.created_at else None,
    }


@roommates_bp.route("/", methods=["GET"])
@require_auth
def list_roommates():
    roommates = roommate_service.list_roommates(g.user_id, db.session)
    return jsonify({
        "data": [_serialize_roommate(r) for r in roommates],
        "warnings": [],
    }), 200


@roommates_bp.route("/", methods=["POST"])
@require_auth
def add_roommate():
    """POST /roommates — Body: name, email, upi_id, phone (optional)."""
    data = CreateRoommateSchema().load(request.get_json(force=True) or {})
    roommate = roommate_service.add_roommate(g.user_id, data, db.session)
    db.session.commit()
    return jsonify({"data": _serialize_roommate(roommate), "warnings": []}), 201


@roommates_bp.route("/<string:roommate_id>", methods=["DELETE"])
@require_auth
def remove_roommate(roommate_id: str):
    roommate_service.remove_roommate(g.user_id, roommate_id, db.session)
    db.session.commit()
    return jsonify({"data": {"deleted": True, "id": roommate_id}, "warnings": []}), 200
