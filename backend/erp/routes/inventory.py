# backend/erp/routes/inventory.py
"""
Inventory routes.

Thin marshalling over stock_service and audit_service; domain errors are
rendered by the app-level ERPError handler.

Time semantics:
- since/until accept ISO-8601 datetimes with Z/offsets and are normalized to
  UTC-naive. Both bounds are inclusive.
"""
from flask import Blueprint, current_app, request

from ..errors import ValidationError
from ..services import audit_service, stock_service
from ..validation import parse_int
from erp.time_utils import parse_iso_datetime

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _stock_payload(row) -> dict:
    data = row.to_dict()
    data["stock_status"] = stock_service.stock_status(row)
    return data


def _datetime_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", details={"field": name})


@inventory_bp.get("")
def list_inventory_route():
    rows = stock_service.list_stock(
        product_id=request.args.get("product_id", type=int),
        warehouse_id=request.args.get("warehouse_id", type=int),
    )
    return {"items": [_stock_payload(r) for r in rows], "count": len(rows)}


@inventory_bp.get("/low-stock")
def low_stock_route():
    rows = stock_service.list_low_stock()
    return {"items": [_stock_payload(r) for r in rows], "count": len(rows)}


@inventory_bp.get("/out-of-stock")
def out_of_stock_route():
    rows = stock_service.list_out_of_stock()
    return {"items": [_stock_payload(r) for r in rows], "count": len(rows)}


@inventory_bp.post("/adjust")
def adjust_inventory_route():
    """
    Manual stock correction.

    Body: {"product_id", "warehouse_id", "quantity_delta", "notes"?}
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    product_id = parse_int(payload.get("product_id"), "product_id", minimum=1)
    warehouse_id = parse_int(payload.get("warehouse_id"), "warehouse_id", minimum=1)
    delta = parse_int(payload.get("quantity_delta"), "quantity_delta")
    notes = payload.get("notes")

    row = stock_service.adjust_stock(
        product_id=product_id,
        warehouse_id=warehouse_id,
        delta=delta,
        notes=str(notes).strip() if notes else None,
    )
    current_app.logger.info("Inventory adjusted via API: product %s, delta %s", product_id, delta)
    return _stock_payload(row), 200


@inventory_bp.get("/movements")
def list_movements_route():
    product_id = request.args.get("product_id", type=int)
    if product_id is None:
        raise ValidationError("product_id is required", details={"field": "product_id"})

    result = audit_service.list_by_product(
        product_id,
        warehouse_id=request.args.get("warehouse_id", type=int),
        since=_datetime_arg("since"),
        until=_datetime_arg("until"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 50, type=int),
    )
    result["items"] = [entry.to_dict() for entry in result["items"]]
    return result
