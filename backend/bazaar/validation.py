from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from bazaar.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 99,999,999.99 (Numeric(10, 2))
MAX_PRICE = Decimal("99999999.99")
CENTS = Decimal("0.01")


class BazaarError(ValueError):
    """Base class for user-visible domain failures."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(BazaarError):
    """400-level input problem."""


class NotFoundError(BazaarError):
    """404-level: referenced product/order/manufacturer/account is absent."""


class ConflictError(BazaarError):
    """409-level business rule conflict (e.g., duplicate email or SKU)."""


class InvalidStateError(BazaarError):
    """Action not allowed in the entity's current status."""


class InvalidTransitionError(InvalidStateError):
    """Order status change rejected by the state machine."""


class InsufficientStockError(InvalidStateError):
    """Requested quantity exceeds available stock."""


ERROR_STATUS_CODES = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidStateError, 409),
)


def http_status_for(exc: BazaarError) -> int:
    for exc_type, status in ERROR_STATUS_CODES:
        if isinstance(exc, exc_type):
            return status
    return 400


def error_body(exc: BazaarError) -> dict:
    body = {"error": str(exc)}
    if exc.details:
        body["details"] = exc.details
    return body


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Decimals: accept strings and numbers, never floats' binary noise
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a decimal number")
        try:
            dec = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{col.key} must be a decimal number")
        if not dec.is_finite():
            raise ValidationError(f"{col.key} must be a decimal number")
        return dec

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

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
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict, existing=None) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    `existing` is the product being patched, if any.
    """
    if "price" in patch:
        price = patch["price"]
        if price is None or price <= 0:
            raise ValidationError("price must be > 0")
        if price > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE}")

    if "stock_quantity" in patch:
        stock = patch["stock_quantity"]
        if stock is None or stock < 0:
            raise ValidationError("stock_quantity must be >= 0")

    def _current(key):
        if key in patch:
            return patch[key]
        return getattr(existing, key, None) if existing is not None else None

    min_qty = _current("min_order_quantity")
    max_qty = _current("max_order_quantity")
    if min_qty is not None and min_qty < 1:
        raise ValidationError("min_order_quantity must be >= 1")
    if max_qty is not None and max_qty < (min_qty or 1):
        raise ValidationError("max_order_quantity must be >= min_order_quantity")


def parse_money(value: Any, field: str) -> Decimal:
    """Parse an optional non-negative monetary input, rounded to cents; None means zero."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a decimal number")
    try:
        dec = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a decimal number")
    if not dec.is_finite() or dec < 0:
        raise ValidationError(f"{field} must be >= 0")
    if dec > MAX_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")
    return dec.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{field} must be a positive integer")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be a positive integer")
    if number < 1:
        raise ValidationError(f"{field} must be a positive integer")
    return number
