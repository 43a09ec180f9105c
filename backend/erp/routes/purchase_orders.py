# backend/erp/routes/purchase_orders.py
from flask import Blueprint, request

from ..errors import ValidationError
from ..services import purchase_order_service
from ..validation import parse_int

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


def _receipt_quantities(payload: dict) -> dict | None:
    """
    Optional partial receipt: {"lines": [{"product_id", "quantity"}]}.

    Missing or null "lines" means receive everything pending.
    """
    lines = payload.get("lines")
    if lines is None:
        return None
    if not isinstance(lines, list):
        raise ValidationError("lines must be a list", details={"field": "lines"})

    quantities: dict[int, int] = {}
    for index, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        product_id = parse_int(raw.get("product_id"), f"lines[{index}].product_id", minimum=1)
        if product_id in quantities:
            raise ValidationError(
                f"Product {product_id} appears on more than one line",
                details={"field": f"lines[{index}].product_id"},
            )
        quantities[product_id] = parse_int(raw.get("quantity"), f"lines[{index}].quantity", minimum=1)
    return quantities


@purchase_orders_bp.post("")
def create_purchase_order_route():
    """
    Body: {"supplier_id", "warehouse_id", "lines": [{"product_id",
    "quantity", "unit_cost", "notes"?}], "expected_date"?, "notes"?}
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    order = purchase_order_service.create_purchase_order(
        supplier_id=parse_int(payload.get("supplier_id"), "supplier_id", minimum=1),
        warehouse_id=parse_int(payload.get("warehouse_id"), "warehouse_id", minimum=1),
        lines=payload.get("lines"),
        expected_date=payload.get("expected_date"),
        notes=payload.get("notes"),
    )
    return order.to_dict(), 201


@purchase_orders_bp.get("")
def list_purchase_orders_route():
    result = purchase_order_service.list_purchase_orders(
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )
    result["items"] = [order.to_dict() for order in result["items"]]
    return result


@purchase_orders_bp.get("/<int:order_id>")
def get_purchase_order_route(order_id: int):
    return purchase_order_service.get_purchase_order(order_id).to_dict()


@purchase_orders_bp.post("/<int:order_id>/approve")
def approve_purchase_order_route(order_id: int):
    return purchase_order_service.approve_purchase_order(order_id).to_dict()


@purchase_orders_bp.post("/<int:order_id>/receive")
def receive_purchase_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    order = purchase_order_service.receive_purchase_order(order_id, _receipt_quantities(payload))
    return order.to_dict()


@purchase_orders_bp.post("/<int:order_id>/cancel")
def cancel_purchase_order_route(order_id: int):
    return purchase_order_service.cancel_purchase_order(order_id).to_dict()
