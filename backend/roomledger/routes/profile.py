"""
routes/profile.py — The caller's own profile.

Endpoints (url_prefix=/api/v1/profile):
  GET /  → 200  the caller's profile
  PUT /  → 201 on first save, 200 afterwards
"""

from flask import Blueprint, g, jsonify, request

from roomledger.extensions import db
from roomledger.middleware.auth_middleware import require_auth
from roomledger.models.profile import Profile
from roomledger.schemas.roommate_schema import UpsertProfileSchema
from roomledger.services import profile_service

profile_bp = Blueprint("profile", __name__)


def _serialize_profile(profile: Profile) -> dict:
    return {
        "id": profile.id,
        "name": profile.name,
        "email": profile.email,
        "upi_id": profile.upi_id,
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
    }


@profile_bp.route("/", methods=["GET"])
@require_auth
def get_profile():
    profile = profile_service.get_profile(g.user_id, db.session)
    return jsonify({"data": _serialize_profile(profile), "warnings": []}), 200


@profile_bp.route("/", methods=["PUT"])
@require_auth
def put_profile():
    """PUT /profile — Body: name, email (defaults to the token's), upi_id."""
    body = request.get_json(force=True) or {}
    if not body.get("email") and g.user_email:
        body["email"] = g.user_email

    data = UpsertProfileSchema().load(body)
    profile, created = profile_service.upsert_profile(g.user_id, data, db.session)
    db.session.commit()
    return jsonify({"data": _serialize_profile(profile), "warnings": []}), 201 if created else 200
