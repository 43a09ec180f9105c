# Overview: Service-layer operations for sales orders; lifecycle transitions paired with stock reservations.

"""
Sales Order Engine

================================================================================
INVARIANTS
================================================================================

1. One transaction per operation. The order row is locked FOR UPDATE first,
   its status is checked after the lock, then stock rows are locked in
   ascending (product_id, warehouse_id) order.
2. confirm reserves every line or none: the first failing line aborts the
   whole transaction and leaves every counter as it was.
3. ship deducts every line and discharges its reservation.
4. cancel from CONFIRMED or PICKING releases every line's reservation.
   SHIPPED, DELIVERED and CANCELLED orders cannot be cancelled.
5. total_amount = SUM(quantity * unit_price) over the lines, computed once
   at create time.
================================================================================
"""

from __future__ import annotations

import logging
import math
from datetime import date

from ..errors import ResourceNotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Product, SalesOrder, SalesOrderLine, Warehouse
from ..validation import parse_order_lines
from . import stock_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .lifecycle_service import (
    SALES_ORDER_STATUSES,
    SALES_ORDER_TRANSITIONS,
    SO_CANCELLED,
    SO_CONFIRMED,
    SO_CREATED,
    SO_DELIVERED,
    SO_PICKING,
    SO_SHIPPED,
    require_transition,
)
from .order_number_service import SALES_ORDER_PREFIX, assign_order_number
from erp.time_utils import parse_iso_date, utcnow

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100

# Statuses holding a live reservation
RESERVED_STATUSES = {SO_CONFIRMED, SO_PICKING}


def _lock_order(order_id: int) -> SalesOrder:
    begin_write_transaction()
    query = db.session.query(SalesOrder).filter_by(id=order_id).populate_existing()
    order = lock_for_update(query).first()
    if order is None:
        raise ResourceNotFoundError.for_entity("Sales order", order_id)
    return order


def _lock_order_stock(order: SalesOrder) -> None:
    stock_service.lock_stock_rows((line.product_id, order.warehouse_id) for line in order.lines)


def _sorted_lines(order: SalesOrder) -> list[SalesOrderLine]:
    return sorted(order.lines, key=lambda line: line.product_id)


def _coerce_requested_date(value) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError("requested_date must be an ISO-8601 date", details={"field": "requested_date"})


def create_sales_order(
    *,
    customer_id: int,
    warehouse_id: int,
    lines,
    requested_date=None,
    notes: str | None = None,
) -> SalesOrder:
    """
    Create a sales order in CREATED. No stock is touched.

    Raises ResourceNotFoundError for an unknown customer, warehouse or
    product, BusinessValidationError for an empty order and ValidationError
    for malformed lines.
    """
    parsed = parse_order_lines(lines, amount_field="unit_price")
    requested = _coerce_requested_date(requested_date)

    def _op() -> SalesOrder:
        begin_write_transaction()

        if db.session.get(Customer, customer_id) is None:
            raise ResourceNotFoundError.for_entity("Customer", customer_id)
        if db.session.get(Warehouse, warehouse_id) is None:
            raise ResourceNotFoundError.for_entity("Warehouse", warehouse_id)

        product_ids = [line.product_id for line in parsed]
        found = {
            p.id for p in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()
        }
        for product_id in product_ids:
            if product_id not in found:
                raise ResourceNotFoundError.for_entity("Product", product_id)

        order = SalesOrder(
            customer_id=customer_id,
            warehouse_id=warehouse_id,
            status=SO_CREATED,
            notes=notes,
            requested_date=requested,
        )
        for line in parsed:
            order.lines.append(
                SalesOrderLine(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.amount,
                    notes=line.notes,
                )
            )
        order.calculate_total()

        assign_order_number(order, SALES_ORDER_PREFIX)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Created sales order: %s", order.order_number)
    return order


def confirm_sales_order(order_id: int, *, actor: str | None = None) -> SalesOrder:
    """CREATED -> CONFIRMED; reserves stock for every line atomically."""
    def _op() -> SalesOrder:
        order = _lock_order(order_id)
        require_transition(SALES_ORDER_TRANSITIONS, order.status, SO_CONFIRMED, order_number=order.order_number)

        _lock_order_stock(order)
        for line in _sorted_lines(order):
            stock_service.reserve(
                line.product_id,
                order.warehouse_id,
                line.quantity,
                sales_order_id=order.id,
                actor=actor,
            )

        order.status = SO_CONFIRMED
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Confirmed sales order: %s", order.order_number)
    return order


def start_picking(order_id: int) -> SalesOrder:
    """CONFIRMED -> PICKING; the reservation stays in place."""
    def _op() -> SalesOrder:
        order = _lock_order(order_id)
        require_transition(SALES_ORDER_TRANSITIONS, order.status, SO_PICKING, order_number=order.order_number)
        order.status = SO_PICKING
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Picking started for sales order: %s", order.order_number)
    return order


def ship_sales_order(order_id: int, *, actor: str | None = None) -> SalesOrder:
    """CONFIRMED|PICKING -> SHIPPED; deducts on-hand for every line."""
    def _op() -> SalesOrder:
        order = _lock_order(order_id)
        require_transition(SALES_ORDER_TRANSITIONS, order.status, SO_SHIPPED, order_number=order.order_number)

        _lock_order_stock(order)
        for line in _sorted_lines(order):
            stock_service.ship(
                line.product_id,
                order.warehouse_id,
                line.quantity,
                order.id,
                actor=actor,
            )

        order.status = SO_SHIPPED
        order.shipped_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Shipped sales order: %s", order.order_number)
    return order


def deliver_sales_order(order_id: int) -> SalesOrder:
    def _op() -> SalesOrder:
        order = _lock_order(order_id)
        require_transition(SALES_ORDER_TRANSITIONS, order.status, SO_DELIVERED, order_number=order.order_number)
        order.status = SO_DELIVERED
        order.delivered_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Delivered sales order: %s", order.order_number)
    return order


def cancel_sales_order(order_id: int) -> SalesOrder:
    """
    Cancel an order that has not shipped.

    Releases reservations when the order was CONFIRMED or PICKING. A
    CREATED order holds no reservation, so nothing is released.
    """
    def _op() -> SalesOrder:
        order = _lock_order(order_id)
        require_transition(SALES_ORDER_TRANSITIONS, order.status, SO_CANCELLED, order_number=order.order_number)

        if order.status in RESERVED_STATUSES:
            _lock_order_stock(order)
            for line in _sorted_lines(order):
                stock_service.release(line.product_id, order.warehouse_id, line.quantity)

        order.status = SO_CANCELLED
        order.cancelled_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Cancelled sales order: %s", order.order_number)
    return order


def get_sales_order(order_id: int) -> SalesOrder:
    order = db.session.get(SalesOrder, order_id)
    if order is None:
        raise ResourceNotFoundError.for_entity("Sales order", order_id)
    return order


def list_sales_orders(
    status: str | None = None,
    customer_id: int | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Newest-first page of sales orders, optionally filtered."""
    if status is not None and status not in SALES_ORDER_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(SALES_ORDER_STATUSES))}",
            details={"field": "status"},
        )
    page = max(1, page)
    per_page = min(max(1, per_page), MAX_PER_PAGE)

    q = db.session.query(SalesOrder)
    if status is not None:
        q = q.filter(SalesOrder.status == status)
    if customer_id is not None:
        q = q.filter(SalesOrder.customer_id == customer_id)

    total = q.count()
    items = (
        q.order_by(SalesOrder.created_at.desc(), SalesOrder.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": items,
        "count": total,
        "page": page,
        "per_page": per_page,
        "pages": math.ceil(total / per_page) if total else 0,
    }
