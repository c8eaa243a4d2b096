from __future__ import annotations
from datetime import datetime
from haven.time_utils import parse_iso_datetime

import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .permissions import Role
from .models.auth import USER_STATUSES
from .models.notifications import NOTIFICATION_TYPES, NOTIFICATION_PRIORITIES, SUMMARY_FREQUENCIES


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Units per item or per sale; keeps quantity within a 32-bit column
MAX_QUANTITY = 1_000_000

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = {"error": str(self)}
        if self.field:
            data["field"] = self.field
        return data


class NotFoundError(LookupError):
    """404-level: the referenced entity does not exist."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate username)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - min_lengths: minimum stripped length for string fields
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    min_lengths: dict[str, int] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer", col.key)
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)", col.key)
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)", col.key)
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer", col.key)
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal", col.key)
        raise ValidationError(f"{col.key} must be an integer", col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", col.key)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string", col.key)
        return str(value).strip()

    # Default: leave as-is (JSON columns are checked by the enforce_rules_* functions)
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
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
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing[0])

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", k)

        min_len = policy.min_lengths.get(k)
        if min_len and isinstance(val, str) and len(val) < min_len:
            raise ValidationError(f"{k} must be at least {min_len} characters", k)

        patch[k] = val

    return patch


def _check_cents(patch: dict, key: str, *, allow_zero: bool) -> None:
    if key not in patch or patch[key] is None:
        return
    value = patch[key]
    if allow_zero and value < 0:
        raise ValidationError(f"{key} must be >= 0", key)
    if not allow_zero and value <= 0:
        raise ValidationError(f"{key} must be > 0", key)
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}", key)


def _check_url(patch: dict, key: str) -> None:
    value = patch.get(key)
    if not value:
        return
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{key} must be an http(s) URL", key)


def enforce_rules_inventory(patch: dict) -> None:
    _check_cents(patch, "buying_price_cents", allow_zero=True)
    _check_cents(patch, "selling_price_cents", allow_zero=True)
    quantity = patch.get("quantity")
    if quantity is not None and quantity < 0:
        raise ValidationError("quantity must be >= 0", "quantity")
    if quantity is not None and quantity > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}", "quantity")
    _check_url(patch, "image_url")


def enforce_rules_sale(quantity: Any, selling_price_cents: Any) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", "quantity")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}", "quantity")
    if not isinstance(selling_price_cents, int) or isinstance(selling_price_cents, bool):
        raise ValidationError("selling_price_cents must be an integer", "selling_price_cents")
    _check_cents({"selling_price_cents": selling_price_cents}, "selling_price_cents", allow_zero=False)


def enforce_rules_expense(patch: dict) -> None:
    _check_cents(patch, "amount_cents", allow_zero=False)


def enforce_rules_user(patch: dict) -> None:
    if "email" in patch and not EMAIL_RE.match(patch["email"] or ""):
        raise ValidationError("Invalid email address", "email")
    if "role" in patch:
        role = Role.parse(patch["role"])
        if role is None:
            raise ValidationError("role must be one of ADMIN, OWNER, ATTENDANT", "role")
        patch["role"] = role.value
    if "status" in patch and patch["status"] not in USER_STATUSES:
        raise ValidationError("status must be ACTIVE or INACTIVE", "status")


def enforce_rules_notification(patch: dict) -> None:
    if "type" in patch:
        patch["type"] = str(patch["type"]).upper()
        if patch["type"] not in NOTIFICATION_TYPES:
            raise ValidationError(f"type must be one of {', '.join(NOTIFICATION_TYPES)}", "type")
    if "priority" in patch:
        patch["priority"] = str(patch["priority"]).upper()
        if patch["priority"] not in NOTIFICATION_PRIORITIES:
            raise ValidationError(f"priority must be one of {', '.join(NOTIFICATION_PRIORITIES)}", "priority")
    if "role_access" in patch:
        access = patch["role_access"]
        if access is None:
            access = []
        if not isinstance(access, list):
            raise ValidationError("role_access must be a list of roles", "role_access")
        roles = []
        for value in access:
            role = Role.parse(value)
            if role is None:
                raise ValidationError(f"Unknown role in role_access: {value}", "role_access")
            if role.value not in roles:
                roles.append(role.value)
        patch["role_access"] = roles


def enforce_rules_preferences(patch: dict) -> None:
    if "summary_frequency" in patch and patch["summary_frequency"] not in SUMMARY_FREQUENCIES:
        raise ValidationError("summary_frequency must be daily, weekly, or never", "summary_frequency")
    if "notification_types" in patch:
        types = patch["notification_types"]
        if not isinstance(types, dict):
            raise ValidationError("notification_types must be an object", "notification_types")
        for key, enabled in types.items():
            if key not in NOTIFICATION_TYPES:
                raise ValidationError(f"Unknown notification type: {key}", "notification_types")
            if not isinstance(enabled, bool):
                raise ValidationError(f"notification_types.{key} must be a boolean", "notification_types")
