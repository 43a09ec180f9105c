from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from erp.errors import BusinessValidationError, ValidationError
from erp.models.catalog import PRODUCT_STATUSES
from erp.time_utils import parse_iso_date, parse_iso_datetime

# Bounds of a signed 32-bit counter column
INT32_MAX = 2**31 - 1

# Numeric(18, 4): 14 integer digits, 4 fractional
MONEY_QUANTUM = Decimal("0.0001")
MAX_MONEY = Decimal("99999999999999.9999")


def parse_int(value: Any, field: str, *, minimum: int | None = None, maximum: int = INT32_MAX) -> int:
    """
    Strict integer parsing: rejects bools, floats, decimals and
    scientific notation ("1e3").
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer", details={"field": field})
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
    else:
        raise ValidationError(f"{field} must be an integer", details={"field": field})

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={"field": field, "value": result})
    if result > maximum or result < -maximum:
        raise ValidationError(f"{field} is out of range", details={"field": field, "value": result})
    return result


def parse_money(value: Any, field: str) -> Decimal:
    """Non-negative fixed-point amount, rounded half-up to 4 places."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    try:
        # floats go through str() so 0.1 stays 0.1
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a decimal amount", details={"field": field})
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a decimal amount", details={"field": field})

    amount = amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0", details={"field": field, "value": str(amount)})
    if amount > MAX_MONEY:
        raise ValidationError(f"{field} exceeds {MAX_MONEY}", details={"field": field})
    return amount


@dataclass(frozen=True)
class OrderLineInput:
    product_id: int
    quantity: int
    amount: Decimal
    notes: str | None = None


def parse_order_lines(lines: Any, *, amount_field: str) -> list[OrderLineInput]:
    """
    Validate raw order lines.

    Each line is a mapping with product_id, quantity, `amount_field`
    (unit_price for sales, unit_cost for purchases) and optional notes.

    - empty list -> BusinessValidationError
    - quantity < 1, negative amount, repeated product -> ValidationError
    """
    if lines is None or (isinstance(lines, (list, tuple)) and not lines):
        raise BusinessValidationError("Order must contain at least one line")
    if not isinstance(lines, (list, tuple)):
        raise ValidationError("lines must be a list")

    parsed: list[OrderLineInput] = []
    seen: set[int] = set()
    for index, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object")

        product_id = parse_int(raw.get("product_id"), f"lines[{index}].product_id", minimum=1)
        quantity = parse_int(raw.get("quantity"), f"lines[{index}].quantity", minimum=1)
        amount = parse_money(raw.get(amount_field), f"lines[{index}].{amount_field}")

        if product_id in seen:
            raise ValidationError(
                f"Product {product_id} appears on more than one line",
                details={"field": f"lines[{index}].product_id", "product_id": product_id},
            )
        seen.add(product_id)

        notes = raw.get("notes")
        parsed.append(
            OrderLineInput(
                product_id=product_id,
                quantity=quantity,
                amount=amount,
                notes=str(notes).strip() if notes else None,
            )
        )
    return parsed


# =============================================================================
# Model patch validation
# =============================================================================

@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Numeric):
        return parse_money(value, col.key)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        try:
            dt = parse_iso_datetime(str(value))
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        return dt

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        try:
            return parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 date")

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
        missing = sorted(f for f in required if f not in payload)
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


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    for field in ("reorder_level", "reorder_quantity"):
        if field in patch and patch[field] is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")

    if "status" in patch and patch["status"] not in PRODUCT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(PRODUCT_STATUSES))}"
        )
