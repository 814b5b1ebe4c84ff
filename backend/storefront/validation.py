from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Maximum money amount: 999,999,999 minor units
# This prevents database overflow issues and nonsensical totals
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""
    kind = "client_input"
    http_status = 400


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate username)."""
    kind = "conflict"
    http_status = 409


class NotFoundError(LookupError):
    """404-level: the referenced record does not exist (or is not visible to the caller)."""
    kind = "not_found"
    http_status = 404


class AuthorizationError(PermissionError):
    """403-level: caller is authenticated but lacks the required role."""
    kind = "authorization"
    http_status = 403


class InfrastructureError(RuntimeError):
    """503-level: storage or another collaborator failed or timed out; caller may retry."""
    kind = "infrastructure"
    http_status = 503


DOMAIN_ERRORS = (ValidationError, ConflictError, NotFoundError, AuthorizationError, InfrastructureError)


def error_body(exc: Exception) -> dict:
    """JSON body for a domain error: message plus machine-readable kind."""
    return {"error": str(exc), "kind": getattr(exc, "kind", "internal")}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - field_prefix: payload keys map to columns named prefix + key
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    field_prefix: str = ""


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any, label: str):
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
                raise ValidationError(f"{label} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{label} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{label} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{label} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{label} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{label} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{label} must be a string")
        return str(value).strip()

    # Default: leave as-is
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
    Returns a cleaned dict keyed by column name with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if policy.field_prefix + k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        column_key = policy.field_prefix + k
        col = cols[column_key]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[column_key] = None
            continue

        val = _coerce_value(col, raw, k)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[column_key] = val

    return patch


def enforce_rules_order_line(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("quantity") is None or patch["quantity"] < 1:
        raise ValidationError("quantity must be >= 1")

    price = patch.get("unit_price_cents")
    if price is None or price < 0:
        raise ValidationError("unit_price_cents must be >= 0")
    if price > MAX_AMOUNT_CENTS:
        raise ValidationError(f"unit_price_cents cannot exceed {MAX_AMOUNT_CENTS}")


def enforce_rules_order_total(total_cents: Any) -> int:
    """Validate a caller-supplied order total (integer minor units, non-negative)."""
    if isinstance(total_cents, bool) or not isinstance(total_cents, int):
        raise ValidationError("total_cents must be an integer")
    if total_cents < 0:
        raise ValidationError("total_cents must be >= 0")
    if total_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"total_cents cannot exceed {MAX_AMOUNT_CENTS}")
    return total_cents
