"""
schemas/settlement_schema.py — Marshmallow schemas for settlements.

Validation responsibility:
  - This file: field types, amount range and precision, email format,
    UPI id format, status/type literals.
  - services/settlement_service.py: rate limits, whether the requester is a
    party to the debt, permission on an existing group, counterpart look-up.

SettlementPartySchema is loaded by the settlement service itself, not only
by routes: every settlement write is validated even when it was generated
from an expense rather than typed in by a person.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate

from roomledger.errors import ErrorCode
from roomledger.models.settlement import SettlementStatus, SettlementType


MAX_AMOUNT = Decimal("1000000")

# Letters, digits, underscore, dot, hyphen and "@" (e.g. "priya.s@okbank").
UPI_ID_PATTERN = r"^[\w.\-@]+$"


# ── Shared validators ──────────────────────────────────────────────────────
#
# Same rules as expense_schema.py. Defined here rather than imported from a
# sibling schema to keep each schema file self-contained.
# ──────────────────────────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    """
    Validates a monetary Decimal value:
      - Must be strictly greater than zero.
      - Must not exceed MAX_AMOUNT.
      - Must have at most 2 decimal places (rejected, never rounded).
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value > MAX_AMOUNT:
        raise ValidationError("Amount too large.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


_upi_id_validators = [
    validate.Length(min=3, max=50, error="UPI ID must be between 3 and 50 characters."),
    validate.Regexp(UPI_ID_PATTERN, error=ErrorCode.INVALID_UPI_ID),
]


# ── Schemas ────────────────────────────────────────────────────────────────

class SettlementPartySchema(Schema):
    """
    One settlement row as the requester sees it: the counterparty's name and
    email, the creditor's UPI id, the amount, and the requester's role.
    """

    amount = fields.Decimal(required=True, validate=_validate_monetary_amount)

    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
    )

    email = fields.Email(required=True, validate=validate.Length(max=255))

    upi_id = fields.Str(required=True, validate=_upi_id_validators)

    type = fields.Enum(SettlementType, by_value=True, required=True)


class CreateSettlementSchema(Schema):
    """
    POST /settlements — record a debt with a named counterparty directly.

    `type` is the CALLER's role: "owes" when the caller is the debtor,
    "owed" when the caller is the creditor. `upi_id` is the counterparty's
    and is only used when the counterparty is the creditor.

    `status` may be "pending" (default) or "settled" for a payment that has
    already happened. A settled record always makes the caller the creditor.
    """

    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
    )
    email = fields.Email(required=True, validate=validate.Length(max=255))
    upi_id = fields.Str(load_default=None, validate=_upi_id_validators, allow_none=True)
    amount = fields.Decimal(required=True, validate=_validate_monetary_amount)
    type = fields.Enum(SettlementType, by_value=True, load_default=SettlementType.OWES)
    status = fields.Enum(
        SettlementStatus,
        by_value=True,
        load_default=SettlementStatus.PENDING,
        validate=validate.OneOf(
            [SettlementStatus.PENDING, SettlementStatus.SETTLED],
            error="A new settlement must be 'pending' or 'settled'.",
        ),
    )


class UpdateSettlementStatusSchema(Schema):
    """PATCH /settlements/:transaction_group_id/status"""

    status = fields.Enum(
        SettlementStatus,
        by_value=True,
        required=True,
        error_messages={"unknown": ErrorCode.INVALID_STATUS},
    )
