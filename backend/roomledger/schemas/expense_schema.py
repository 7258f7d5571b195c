"""
schemas/expense_schema.py — Marshmallow schema for recording an expense.

Validation responsibility:
  - This file: field types, lengths, amount precision and range, sharer
    list size.
  - services/: resolving paid_by and sharers to known people (unresolvable
    names are skipped with a warning, not rejected).

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate

from roomledger.errors import ErrorCode


MAX_AMOUNT = Decimal("1000000")
MAX_SHARERS = 20


def _validate_monetary_amount(value: Decimal) -> None:
    """Strictly positive, at most MAX_AMOUNT, at most 2 decimal places."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value > MAX_AMOUNT:
        raise ValidationError("Amount too large.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_non_empty_after_trim(value: str) -> None:
    """
    validate.Length(min=1) alone allows whitespace-only strings like "   ".
    Mirrors the DB CHECK(LENGTH(TRIM(...)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateExpenseSchema(Schema):
    """
    POST /expenses

    Field rules:
      description : required, 1–200 chars, non-blank
      amount      : required, positive Decimal, max 2 dp, at most 1,000,000
      paid_by     : required, the payer's name as shown on the form
                    (the caller's display name or a roommate's name)
      date        : ISO date, defaults to today
      category    : required, 1–50 chars
      sharers     : optional ordered list of names or emails, at most 20.
                    Empty or absent means "everyone": the caller plus every
                    roommate. Duplicates are kept as sent.
    """

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=200, error="Description must be between 1 and 200 characters."),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(required=True, validate=_validate_monetary_amount)

    paid_by = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=100, error="paid_by must be between 1 and 100 characters."),
            _validate_non_empty_after_trim,
        ],
    )

    date = fields.Date(load_default=lambda: dt.date.today())

    category = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=50, error="Category must be between 1 and 50 characters."),
            _validate_non_empty_after_trim,
        ],
    )

    sharers = fields.List(
        fields.Str(validate=validate.Length(min=1, max=255)),
        load_default=list,
        validate=validate.Length(max=MAX_SHARERS, error=f"At most {MAX_SHARERS} sharers are allowed."),
    )
