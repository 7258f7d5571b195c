"""
schemas/roommate_schema.py — Marshmallow schemas for the roster and profile.

Uniqueness of a roommate's email on the caller's roster needs a DB look-up
and is checked in roommate_service.py (DUPLICATE_ROOMMATE, 409).

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from roomledger.errors import ErrorCode


UPI_ID_PATTERN = r"^[\w.\-@]+$"
PHONE_PATTERN = r"^\+?[\d\s\-()]{10,15}$"

_name_validator = validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters.")

_upi_id_validators = [
    validate.Length(min=3, max=50, error="UPI ID must be between 3 and 50 characters."),
    validate.Regexp(UPI_ID_PATTERN, error=ErrorCode.INVALID_UPI_ID),
]


class CreateRoommateSchema(Schema):
    """POST /roommates"""

    name = fields.Str(required=True, validate=_name_validator)
    email = fields.Email(required=True, validate=validate.Length(max=255))
    upi_id = fields.Str(required=True, validate=_upi_id_validators)
    phone = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Regexp(PHONE_PATTERN, error="Invalid phone number."),
    )


class UpsertProfileSchema(Schema):
    """
    PUT /profile

    The email defaults to the one carried by the access token; the route
    fills it in before loading when the body omits it.
    """

    name = fields.Str(load_default=None, allow_none=True, validate=_name_validator)
    email = fields.Email(required=True, validate=validate.Length(max=255))
    upi_id = fields.Str(load_default=None, allow_none=True, validate=_upi_id_validators)
