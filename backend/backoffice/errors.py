# Overview: Typed error taxonomy shared by services and the mutation gateway.

"""
Back-office error taxonomy.

Services raise BackOfficeError subclasses. The gateway is the only place that
catches them; it converts each into a Result carrying the ErrorCode so the
presentation layer can render a specific message. Apart from optimistic
write conflicts (services/concurrency.py) nothing is retried.
"""

from __future__ import annotations

from .enums import StrEnum


class ErrorCode(StrEnum):
    INVALID_CREDENTIALS = "InvalidCredentials"
    INVALID_CODE = "InvalidCode"
    SESSION_EXPIRED = "SessionExpired"
    INVALID_OR_EXPIRED_TOKEN = "InvalidOrExpiredToken"
    FORBIDDEN_SCOPE = "ForbiddenScope"
    ACCOUNT_NOT_FOUND = "AccountNotFound"
    ITEM_NOT_FOUND = "ItemNotFound"
    INVALID_AMOUNT = "InvalidAmount"
    INVALID_QUANTITY = "InvalidQuantity"
    OVER_PAYMENT = "OverPayment"
    INVALID_TRANSITION = "InvalidTransition"
    ACCOUNT_LOCKED = "AccountLocked"
    PERMISSION_DENIED = "PermissionDenied"
    NOT_FOUND = "NotFound"
    VALIDATION_FAILED = "ValidationFailed"
    CONFLICT = "Conflict"
    INTERNAL_ERROR = "InternalError"


class BackOfficeError(Exception):
    """Base class for every expected, user-actionable failure."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message = "Internal error"

    def __init__(self, message: str | None = None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details


class InvalidCredentials(BackOfficeError):
    code = ErrorCode.INVALID_CREDENTIALS
    default_message = "Invalid email or password"


class InvalidCode(BackOfficeError):
    code = ErrorCode.INVALID_CODE
    default_message = "Invalid verification code"


class SessionExpired(BackOfficeError):
    code = ErrorCode.SESSION_EXPIRED
    default_message = "Session expired. Please login again."


class InvalidOrExpiredToken(BackOfficeError):
    code = ErrorCode.INVALID_OR_EXPIRED_TOKEN
    default_message = "Invalid or expired reset link"


class ForbiddenScope(BackOfficeError):
    code = ErrorCode.FORBIDDEN_SCOPE
    default_message = "Branch is outside the session scope"


class AccountNotFound(BackOfficeError):
    code = ErrorCode.ACCOUNT_NOT_FOUND
    default_message = "Finance account not found"


class ItemNotFound(BackOfficeError):
    code = ErrorCode.ITEM_NOT_FOUND
    default_message = "Inventory item not found"


class InvalidAmount(BackOfficeError):
    code = ErrorCode.INVALID_AMOUNT
    default_message = "Amount must be a positive integer"


class InvalidQuantity(BackOfficeError):
    code = ErrorCode.INVALID_QUANTITY
    default_message = "Quantity must be a positive integer"


class OverPayment(BackOfficeError):
    code = ErrorCode.OVER_PAYMENT
    default_message = "Payment exceeds the remaining amount"


class InvalidTransition(BackOfficeError):
    code = ErrorCode.INVALID_TRANSITION
    default_message = "Transition not allowed"


class AccountLocked(BackOfficeError):
    code = ErrorCode.ACCOUNT_LOCKED
    default_message = "Account temporarily locked due to too many failed login attempts"


class PermissionDenied(BackOfficeError):
    code = ErrorCode.PERMISSION_DENIED
    default_message = "Permission denied"


class NotFound(BackOfficeError):
    code = ErrorCode.NOT_FOUND
    default_message = "Not found"


class ValidationFailed(BackOfficeError):
    code = ErrorCode.VALIDATION_FAILED
    default_message = "Invalid input"


class Conflict(BackOfficeError):
    code = ErrorCode.CONFLICT
    default_message = "Conflicts with current state"


ERRORS_BY_CODE: dict[ErrorCode, type[BackOfficeError]] = {
    cls.code: cls for cls in BackOfficeError.__subclasses__()
}


def error_for_code(code: ErrorCode | str, message: str | None = None, **details) -> BackOfficeError:
    """Rebuild the typed exception for an ErrorCode (InternalError maps to the base class)."""
    cls = ERRORS_BY_CODE.get(ErrorCode(code), BackOfficeError)
    return cls(message, **details)
