# backend/erp/routes/sales_orders.py
from flask import Blueprint, request

from ..errors import ValidationError
from ..services import sales_order_service
from ..validation import parse_int

sales_orders_bp = Blueprint("sales_orders", __name__, url_prefix="/api/sales-orders")


@sales_orders_bp.post("")
def create_sales_order_route():
    """
    Create a sales order in CREATED.

    Body: {"customer_id", "warehouse_id", "lines": [{"product_id",
    "quantity", "unit_price", "notes"?}], "requested_date"?, "notes"?}
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    order = sales_order_service.create_sales_order(
        customer_id=parse_int(payload.get("customer_id"), "customer_id", minimum=1),
        warehouse_id=parse_int(payload.get("warehouse_id"), "warehouse_id", minimum=1),
        lines=payload.get("lines"),
        requested_date=payload.get("requested_date"),
        notes=payload.get("notes"),
    )
    return order.to_dict(), 201


@sales_orders_bp.get("")
def list_sales_orders_route():
    result = sales_order_service.list_sales_orders(
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id", type=int),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )
    result["items"] = [order.to_dict() for order in result["items"]]
    return result


@sales_orders_bp.get("/<int:order_id>")
def get_sales_order_route(order_id: int):
    return sales_order_service.get_sales_order(order_id).to_dict()


@sales_orders_bp.post("/<int:order_id>/confirm")
def confirm_sales_order_route(order_id: int):
    return sales_order_service.confirm_sales_order(order_id).to_dict()


@sales_orders_bp.post("/<int:order_id>/pick")
def pick_sales_order_route(order_id: int):
    return sales_order_service.start_picking(order_id).to_dict()


@sales_orders_bp.post("/<int:order_id>/ship")
def ship_sales_order_route(order_id: int):
    return sales_order_service.ship_sales_order(order_id).to_dict()


@sales_orders_bp.post("/<int:order_id>/deliver")
def deliver_sales_order_route(order_id: int):
    return sales_order_service.deliver_sales_order(order_id).to_dict()


@sales_orders_bp.post("/<int:order_id>/cancel")
def cancel_sales_order_route(order_id: int):
    return sales_order_service.cancel_sales_order(order_id).to_dict()
