"""
errors.py — AppError base class, the error taxonomy, and the code registry.

Every error returned by the RoomLedger API uses a code defined here.
Do not raise strings or generic exceptions from service or route code.

Taxonomy:
  ValidationError         malformed amount / email / UPI id. This is
                          marshmallow's ValidationError, raised by the
                          schemas in app/schemas/ (400).
  RateLimitExceeded       the per-actor abuse guard tripped (429).
  Unauthorized            the actor is not a party to the settlement group (403).
  NotFoundOrUnauthorized  the target group is absent or inaccessible. The two
                          cases share one error so existence is not leaked (404).
  StoreError              underlying persistence failure. SQLAlchemy's own
                          exception, passed through unmodified (500).

None of these are retried by the services. The caller decides whether to
prompt the human to try again.
"""

from __future__ import annotations

from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_UPI_ID             = "INVALID_UPI_ID"
    INVALID_STATUS             = "INVALID_STATUS"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_ROOMMATE         = "DUPLICATE_ROOMMATE"
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    ROOMMATE_NOT_FOUND         = "ROOMMATE_NOT_FOUND"
    NOT_FOUND_OR_UNAUTHORIZED  = "NOT_FOUND_OR_UNAUTHORIZED"

    # ── Business Rule Violations (422) ────────────────────────────────────
    NO_SHARERS                 = "NO_SHARERS"

    # ── Rate limiting (429) ────────────────────────────────────────────────
    RATE_LIMIT_EXCEEDED        = "RATE_LIMIT_EXCEEDED"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not a party to this record
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # An expense sharer or the payer could not be matched to a known party,
    # so no settlement was written for them.
    UNRESOLVED_PARTY = "UNRESOLVED_PARTY"


# ── Taxonomy ───────────────────────────────────────────────────────────────

class RateLimitExceeded(AppError):

    def __init__(self, message: str = "Too many attempts. Please wait.") -> None:
        super().__init__(ErrorCode.RATE_LIMIT_EXCEEDED, message, 429)


class Unauthorized(AppError):

    def __init__(self, message: str = "You are not a party to this settlement.") -> None:
        super().__init__(ErrorCode.FORBIDDEN, message, 403)


class NotFoundOrUnauthorized(AppError):

    def __init__(self, message: str = "Settlement not found or unauthorized.") -> None:
        super().__init__(ErrorCode.NOT_FOUND_OR_UNAUTHORIZED, message, 404)


# Persistence failures are SQLAlchemy's exceptions, re-exported under the
# taxonomy name so callers can catch them without importing sqlalchemy.
StoreError = SQLAlchemyError

__all__ = [
    "AppError",
    "ErrorCode",
    "NotFoundOrUnauthorized",
    "RateLimitExceeded",
    "StoreError",
    "Unauthorized",
    "ValidationError",
    "WarningCode",
]
