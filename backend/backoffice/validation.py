from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase

from .enums import DiscountType, EntityType
from .errors import ValidationFailed
from .time_utils import parse_iso_datetime


# Largest amount accepted for any money column (minor units)
MAX_AMOUNT = 999_999_999_999

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6

# Ledger-derived columns: only the ledger services write these
DERIVED_FIELDS = frozenset({
    "balance",
    "quantity",
    "paid_amount",
    "remaining_amount",
    "net_pay",
    "resulting_quantity",
    "version_id",
})


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what callers are allowed to set (security boundary)
    - required_on_create: fields required on add
    - derived_fields: fields the caller may never set (clearer error than "not allowed")
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()
    derived_fields: frozenset[str] = DERIVED_FIELDS


def _columns_by_key(model: type[DeclarativeBase]) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Enums before strings (sa.Enum is a String subclass)
    if isinstance(coltype, Enum):
        enum_cls = coltype.enum_class
        try:
            return enum_cls(value)
        except ValueError:
            allowed = ", ".join(m.value for m in enum_cls)
            raise ValidationFailed(f"{col.key} must be one of: {allowed}")

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationFailed(f"{col.key} must be an integer")
            if "e" in stripped.lower():
                raise ValidationFailed(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if "." in stripped:
                raise ValidationFailed(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationFailed(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationFailed(f"{col.key} must be an integer, not a decimal")
        raise ValidationFailed(f"{col.key} must be an integer")

    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationFailed(f"{col.key} must be a number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationFailed(f"{col.key} must be a number")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationFailed(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationFailed(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationFailed(f"{col.key} must be a datetime")

    if isinstance(coltype, JSON):
        if not isinstance(value, (list, dict)):
            raise ValidationFailed(f"{col.key} must be a list or object")
        return value

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: type[DeclarativeBase],
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes an incoming field mapping against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationFailed("Invalid payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k in policy.derived_fields:
            raise ValidationFailed(f"Field is derived and cannot be written: {k}")
        if k not in policy.writable_fields:
            raise ValidationFailed(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationFailed(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationFailed(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not isinstance(col.type, Enum) and not col.nullable:
            if isinstance(val, str) and val == "" and k in policy.required_on_create:
                raise ValidationFailed(f"{k} cannot be blank")

        if isinstance(col.type, String) and not isinstance(col.type, Enum) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationFailed(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


# =============================================================================
# BUSINESS RULES NOT CAPTURED BY COLUMN METADATA
# =============================================================================

def validate_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationFailed("Invalid email address")
    return email


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def enforce_non_negative(patch: dict, *fields: str) -> None:
    for name in fields:
        value = patch.get(name)
        if value is None:
            continue
        if value < 0:
            raise ValidationFailed(f"{name} must be >= 0")
        if value > MAX_AMOUNT:
            raise ValidationFailed(f"{name} cannot exceed {MAX_AMOUNT}")


def enforce_rules(entity_type: EntityType, patch: dict) -> None:
    """Per-entity rules applied after validate_payload."""
    if entity_type == EntityType.MENU_ITEM:
        enforce_non_negative(patch, "price")
    elif entity_type == EntityType.ORDER:
        enforce_non_negative(patch, "subtotal", "tax", "discount", "total")
    elif entity_type == EntityType.STAFF:
        enforce_non_negative(patch, "salary")
    elif entity_type == EntityType.INVENTORY_ITEM:
        enforce_non_negative(patch, "min_stock", "reorder_level", "cost_per_unit")
    elif entity_type == EntityType.TABLE:
        if patch.get("seats") is not None and patch["seats"] <= 0:
            raise ValidationFailed("seats must be > 0")
        if patch.get("number") is not None and patch["number"] <= 0:
            raise ValidationFailed("number must be > 0")
    elif entity_type == EntityType.RESERVATION:
        if patch.get("guests") is not None and patch["guests"] <= 0:
            raise ValidationFailed("guests must be > 0")
    elif entity_type == EntityType.SUPPLIER:
        rating = patch.get("rating")
        if rating is not None and not 0 <= rating <= 5:
            raise ValidationFailed("rating must be between 0 and 5")
    elif entity_type == EntityType.ATTENDANCE:
        hours = patch.get("hours_worked")
        if hours is not None and not 0 <= hours <= 24:
            raise ValidationFailed("hours_worked must be between 0 and 24")
    elif entity_type == EntityType.FEEDBACK:
        rating = patch.get("rating")
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationFailed("rating must be between 1 and 5")
    elif entity_type == EntityType.LOYALTY_TRANSACTION:
        if patch.get("points") is not None and patch["points"] <= 0:
            raise ValidationFailed("points must be > 0")
    elif entity_type == EntityType.PROMOTION:
        enforce_non_negative(patch, "discount_value", "usage_count", "max_usage")
        if patch.get("discount_type") == DiscountType.PERCENTAGE and (patch.get("discount_value") or 0) > 100:
            raise ValidationFailed("percentage discount cannot exceed 100")
        start, end = patch.get("start_date"), patch.get("end_date")
        if start is not None and end is not None and end < start:
            raise ValidationFailed("end_date must not be before start_date")
    elif entity_type == EntityType.BRANCH:
        lat, lng = patch.get("latitude"), patch.get("longitude")
        if lat is not None and not -90 <= lat <= 90:
            raise ValidationFailed("latitude must be between -90 and 90")
        if lng is not None and not -180 <= lng <= 180:
            raise ValidationFailed("longitude must be between -180 and 180")

    if patch.get("email"):
        patch["email"] = validate_email(patch["email"])


# =============================================================================
# LEDGER POSTINGS
# =============================================================================

# Keyword fields accepted by the ledger posting operations
LEDGER_FIELDS: dict[EntityType, frozenset[str]] = {
    EntityType.FINANCE_TRANSACTION: frozenset({
        "account_id", "type", "amount", "category", "branch_id", "description",
        "payment_method", "reference_number", "notes", "date",
    }),
    EntityType.STOCK_MOVEMENT: frozenset({
        "item_id", "type", "quantity", "branch_id", "reason", "notes",
        "unit_cost", "supplier_id", "order_id", "date",
    }),
    EntityType.DEBT: frozenset({
        "branch_id", "type", "entity_name", "amount", "due_date", "paid_amount",
        "description", "entity_id", "invoice_number", "notes",
    }),
    EntityType.PAYROLL_RECORD: frozenset({
        "staff_id", "base_salary", "payment_period", "bonuses", "deductions",
        "payment_method", "branch_id", "notes",
    }),
}


# Keywords each posting must pass; values are checked by the service
LEDGER_REQUIRED: dict[EntityType, frozenset[str]] = {
    EntityType.FINANCE_TRANSACTION: frozenset({"account_id", "type", "amount", "category"}),
    EntityType.STOCK_MOVEMENT: frozenset({"item_id", "type", "quantity"}),
    EntityType.DEBT: frozenset({"type", "entity_name", "amount", "due_date"}),
    EntityType.PAYROLL_RECORD: frozenset({"staff_id", "base_salary", "payment_period"}),
}


def _require(required: frozenset[str], payload: dict) -> None:
    missing = sorted(f for f in required if f not in payload)
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")


def check_ledger_fields(entity_type: EntityType, payload: dict) -> None:
    allowed = LEDGER_FIELDS[entity_type]
    for key in payload:
        if key in allowed:
            continue
        if key in DERIVED_FIELDS or key == "status":
            raise ValidationFailed(f"Field is derived and cannot be written: {key}")
        raise ValidationFailed(f"Field not allowed: {key}")
    _require(LEDGER_REQUIRED[entity_type], payload)


REGISTRATION_FIELDS = frozenset({
    "name", "email", "password", "role", "assigned_branch_id", "phone", "two_factor_enabled",
})
REGISTRATION_REQUIRED = frozenset({"name", "email", "password"})


def check_registration_fields(payload: dict) -> None:
    for key in payload:
        if key not in REGISTRATION_FIELDS:
            raise ValidationFailed(f"Field not allowed: {key}")
    _require(REGISTRATION_REQUIRED, payload)


# =============================================================================
# POLICIES
# =============================================================================

def _policy(writable: set[str], required: set[str] = frozenset()) -> ModelValidationPolicy:
    return ModelValidationPolicy(writable_fields=frozenset(writable), required_on_create=frozenset(required))


# branch_id is writable on create only; the records service strips it from updates
POLICIES: dict[EntityType, ModelValidationPolicy] = {
    EntityType.SUBJECT: _policy({"name", "phone", "role", "assigned_branch_id", "two_factor_enabled", "is_active"}),
    EntityType.BRANCH: _policy(
        {"name", "code", "location", "phone", "email", "operating_hours", "manager_id",
         "latitude", "longitude", "is_main"},
        {"name"},
    ),
    EntityType.SUPPLIER: _policy(
        {"branch_id", "name", "contact_person", "email", "phone", "address", "payment_terms", "rating"},
        {"branch_id", "name"},
    ),
    EntityType.MENU_ITEM: _policy(
        {"branch_id", "name", "category", "description", "price", "available"},
        {"branch_id", "name", "category", "price"},
    ),
    EntityType.ORDER: _policy(
        {"branch_id", "order_number", "type", "status", "items", "table_number", "customer_id",
         "customer_name", "subtotal", "tax", "discount", "total", "payment_method", "notes", "completed_at"},
        {"branch_id", "order_number"},
    ),
    EntityType.STAFF: _policy(
        {"branch_id", "name", "position", "email", "phone", "salary", "shift_start", "shift_end",
         "is_active", "date_joined"},
        {"branch_id", "name"},
    ),
    EntityType.CUSTOMER: _policy(
        {"branch_id", "name", "email", "phone", "segment", "loyalty_points", "total_orders",
         "total_spent", "last_visit"},
        {"branch_id", "name", "phone"},
    ),
    EntityType.TABLE: _policy(
        {"branch_id", "number", "seats", "status", "shape", "location", "current_order_id"},
        {"branch_id", "number"},
    ),
    EntityType.RESERVATION: _policy(
        {"branch_id", "table_id", "customer_name", "customer_phone", "customer_email", "date",
         "guests", "source", "notes"},
        {"branch_id", "customer_name", "customer_phone", "date"},
    ),
    EntityType.INVENTORY_ITEM: _policy(
        {"branch_id", "name", "category", "unit", "min_stock", "reorder_level", "cost_per_unit",
         "supplier_id", "expiry_date"},
        {"branch_id", "name"},
    ),
    EntityType.FINANCE_ACCOUNT: _policy(
        {"branch_id", "name", "type", "currency", "account_number", "bank_name", "is_active"},
        {"branch_id", "name", "type"},
    ),
    # Posted transactions: only free-text fields are editable
    EntityType.FINANCE_TRANSACTION: _policy({"description", "notes", "reference_number"}),
    EntityType.DEBT: _policy({"entity_name", "description", "due_date", "invoice_number", "notes"}),
    EntityType.PAYROLL_RECORD: _policy({"payment_period", "payment_method", "notes"}),
    EntityType.ATTENDANCE: _policy(
        {"branch_id", "staff_id", "date", "check_in_time", "check_out_time", "hours_worked",
         "status", "notes"},
        {"branch_id", "staff_id", "date"},
    ),
    EntityType.SHIFT: _policy(
        {"branch_id", "staff_id", "date", "start_time", "end_time", "role", "status", "notes"},
        {"branch_id", "staff_id", "date", "start_time", "end_time"},
    ),
    EntityType.ANNOUNCEMENT: _policy(
        {"branch_id", "title", "content", "type", "author_name", "date", "attachments"},
        {"branch_id", "title", "content"},
    ),
    EntityType.FEEDBACK: _policy(
        {"branch_id", "customer_id", "order_id", "rating", "category", "message", "date",
         "status", "response", "response_date"},
        {"branch_id", "customer_id", "rating"},
    ),
    # Loyalty entries are append-only
    EntityType.LOYALTY_TRANSACTION: _policy(
        {"branch_id", "customer_id", "order_id", "type", "points", "description", "date"},
        {"branch_id", "customer_id", "type", "points"},
    ),
    EntityType.PROMOTION: _policy(
        {"branch_id", "name", "description", "discount_type", "discount_value",
         "applicable_segments", "applicable_products", "start_date", "end_date", "status",
         "usage_count", "max_usage"},
        {"branch_id", "name", "discount_type", "discount_value", "start_date", "end_date"},
    ),
}
