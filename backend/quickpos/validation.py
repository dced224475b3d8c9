# Overview: Input checks for catalog payloads and order-line quantities.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text


# Highest menu price accepted: 99,999.99
MAX_PRICE_CENTS = 9_999_999


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Which keys a client may send for a catalog row.

    - fields: keys a client may set
    - required: keys a create request must carry
    """
    fields: frozenset[str]
    required: frozenset[str] = field(default_factory=frozenset)


def _as_int(name: str, value: Any) -> int:
    # JSON numbers only; "12" and 12.0 are rejected like any other non-integer
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={"field": name})
    return value


def _as_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be true or false", details={"field": name})
    return value


def _as_text(name: str, value: Any, column) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", details={"field": name})
    text = value.strip()
    if not text and not column.nullable:
        raise ValidationError(f"{name} cannot be blank", details={"field": name})
    limit = getattr(column.type, "length", None)
    if limit and len(text) > limit:
        raise ValidationError(f"{name} is longer than {limit} characters", details={"field": name})
    return text


def clean_payload(model, payload: Any, policy: PayloadPolicy, *, creating: bool) -> dict:
    """
    Check a JSON body against `policy` and the model's columns.

    Returns only the keys the client sent, coerced to column types. On create,
    every required key must be present.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    unknown = sorted(k for k in payload if k not in policy.fields)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}", details={"fields": unknown})

    if creating:
        missing = sorted(policy.required - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned: dict = {}
    for name, value in payload.items():
        column = columns[name]
        if value is None:
            if not column.nullable:
                raise ValidationError(f"{name} cannot be null", details={"field": name})
            cleaned[name] = None
        elif isinstance(column.type, Boolean):
            cleaned[name] = _as_bool(name, value)
        elif isinstance(column.type, Integer):
            cleaned[name] = _as_int(name, value)
        elif isinstance(column.type, (String, Text)):
            cleaned[name] = _as_text(name, value, column)
        else:
            cleaned[name] = value
    return cleaned


def check_price(cleaned: dict) -> None:
    price = cleaned.get("price_cents")
    if price is None:
        return
    if price < 0:
        raise ValidationError("price_cents must be >= 0", details={"field": "price_cents"})
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}", details={"field": "price_cents"})


def check_sort_order(cleaned: dict) -> None:
    if (cleaned.get("sort_order") or 0) < 0:
        raise ValidationError("sort_order must be >= 0", details={"field": "sort_order"})


def parse_quantity(value: Any, field_name: str = "quantity") -> int:
    """Strict integer parsing for line quantities coming from JSON."""
    return _as_int(field_name, value)
