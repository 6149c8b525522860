# Overview: Input validation for cash amounts, free text and register payloads.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text


# Largest single cash amount accepted: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may write, and which of them a create must carry.
    Everything else in a payload is rejected, never silently dropped.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion: rejects floats, bools, decimals and scientific
    notation so "12.5" or 1e3 never silently become cents.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_column(col, key: str, value: Any):
    """Coerce one non-null value to the column's type, then enforce its length."""
    if isinstance(col.type, Boolean):
        # "false" must never become True
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean")
        return value

    if isinstance(col.type, Integer):
        return coerce_int(key, value)

    if isinstance(col.type, (String, Text)):
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValidationError(f"{key} must be a string")
        text = str(value).strip()
        if text == "" and not col.nullable:
            raise ValidationError(f"{key} cannot be blank")
        limit = getattr(col.type, "length", None)
        if limit and len(text) > limit:
            raise ValidationError(f"{key} exceeds max length {limit}")
        return text

    return value


def validate_payload(*, model, payload: Any, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Check a JSON body against the model's columns and the policy.

    partial=False is a create: every required_on_create field must be present.
    partial=True is a PATCH: only the keys sent are checked.

    Returns only the validated keys, ready to pass to the service layer.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned: dict = {}
    for key, raw in payload.items():
        col = columns.get(key) if key in policy.writable_fields else None
        if col is None:
            raise ValidationError(f"Field not allowed: {key}")
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
        else:
            cleaned[key] = _coerce_column(col, key, raw)
    return cleaned


def require_amount_cents(key: str, value: Any, *, allow_zero: bool = True) -> int:
    """
    Validate a cash amount in cents.

    Opening floats and counted cash may be zero; deposits and withdrawals
    must move some money.
    """
    if value is None:
        raise ValidationError(f"{key} is required")
    amount = coerce_int(key, value)
    if amount < 0:
        raise ValidationError(f"{key} cannot be negative")
    if amount == 0 and not allow_zero:
        raise ValidationError(f"{key} must be positive")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS} (${MAX_AMOUNT_CENTS / 100:,.2f})")
    return amount


def optional_text(key: str, value: Any, *, max_length: int = 255) -> str | None:
    """Free-text fields (reasons, authorizer names) are stored verbatim, not stripped."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value
