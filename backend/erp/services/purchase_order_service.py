# Overview: Service-layer operations for purchase orders; approval and receiving into stock.

"""
Purchase Order Engine

INVARIANTS:
- 0 <= received_quantity <= quantity on every line.
- Receiving adds stock (creating stock rows on first receipt) and writes one
  PURCHASE audit entry per received line, all in one transaction.
- RECEIVED is reached when no line has pending quantity; any earlier
  receipt leaves the order PARTIALLY_RECEIVED.
- Cancelling never reverses stock that was already received.
"""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Mapping

from ..errors import ResourceNotFoundError, ValidationError
from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderLine, Supplier, Warehouse
from ..validation import parse_int, parse_order_lines
from . import stock_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .lifecycle_service import (
    PO_APPROVED,
    PO_CANCELLED,
    PO_CREATED,
    PO_PARTIALLY_RECEIVED,
    PO_RECEIVED,
    PURCHASE_ORDER_STATUSES,
    PURCHASE_ORDER_TRANSITIONS,
    require_transition,
)
from .order_number_service import PURCHASE_ORDER_PREFIX, assign_order_number
from erp.time_utils import parse_iso_date, utcnow

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100


def _lock_order(order_id: int) -> PurchaseOrder:
    begin_write_transaction()
    query = db.session.query(PurchaseOrder).filter_by(id=order_id).populate_existing()
    order = lock_for_update(query).first()
    if order is None:
        raise ResourceNotFoundError.for_entity("Purchase order", order_id)
    return order


def _coerce_expected_date(value) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError("expected_date must be an ISO-8601 date", details={"field": "expected_date"})


def _plan_receipt(order: PurchaseOrder, quantities: Mapping | None) -> dict[int, int]:
    """
    Map product_id -> quantity to receive now.

    Without `quantities` every line with pending stock is received in full.
    """
    lines_by_product = {line.product_id: line for line in order.lines}

    if quantities is None:
        return {
            line.product_id: line.pending_quantity
            for line in order.lines
            if line.pending_quantity > 0
        }

    if not quantities:
        raise ValidationError("At least one line quantity is required", details={"field": "lines"})

    plan: dict[int, int] = {}
    for raw_product_id, raw_qty in quantities.items():
        product_id = parse_int(raw_product_id, "product_id", minimum=1)
        if product_id in plan:
            raise ValidationError(
                f"Duplicate product_id in receipt: {product_id}",
                details={"product_id": product_id},
            )
        line = lines_by_product.get(product_id)
        if line is None:
            raise ValidationError(
                f"Product {product_id} is not on purchase order {order.order_number}",
                details={"product_id": product_id},
            )
        qty = parse_int(raw_qty, "quantity", minimum=1)
        if qty > line.pending_quantity:
            raise ValidationError(
                f"Cannot receive {qty} of product {product_id}; pending is {line.pending_quantity}",
                details={"product_id": product_id, "quantity": qty, "pending": line.pending_quantity},
            )
        plan[product_id] = qty
    return plan


def create_purchase_order(
    *,
    supplier_id: int,
    warehouse_id: int,
    lines,
    expected_date=None,
    notes: str | None = None,
) -> PurchaseOrder:
    parsed = parse_order_lines(lines, amount_field="unit_cost")
    expected = _coerce_expected_date(expected_date)

    def _op() -> PurchaseOrder:
        begin_write_transaction()

        if db.session.get(Supplier, supplier_id) is None:
            raise ResourceNotFoundError.for_entity("Supplier", supplier_id)
        if db.session.get(Warehouse, warehouse_id) is None:
            raise ResourceNotFoundError.for_entity("Warehouse", warehouse_id)

        product_ids = [line.product_id for line in parsed]
        found = {
            p.id for p in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()
        }
        for product_id in product_ids:
            if product_id not in found:
                raise ResourceNotFoundError.for_entity("Product", product_id)

        order = PurchaseOrder(
            supplier_id=supplier_id,
            warehouse_id=warehouse_id,
            status=PO_CREATED,
            notes=notes,
            expected_date=expected,
        )
        for line in parsed:
            order.lines.append(
                PurchaseOrderLine(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    received_quantity=0,
                    unit_cost=line.amount,
                    notes=line.notes,
                )
            )
        order.calculate_total()

        assign_order_number(order, PURCHASE_ORDER_PREFIX)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Created purchase order: %s", order.order_number)
    return order


def approve_purchase_order(order_id: int) -> PurchaseOrder:
    def _op() -> PurchaseOrder:
        order = _lock_order(order_id)
        require_transition(PURCHASE_ORDER_TRANSITIONS, order.status, PO_APPROVED, order_number=order.order_number)
        order.status = PO_APPROVED
        order.approved_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Approved purchase order: %s", order.order_number)
    return order


def receive_purchase_order(
    order_id: int,
    quantities: Mapping | None = None,
    *,
    actor: str | None = None,
) -> PurchaseOrder:
    """
    Receive goods against an APPROVED or PARTIALLY_RECEIVED order.

    Args:
        order_id: purchase order id
        quantities: optional {product_id: qty}; each qty must be between 1
            and the line's pending quantity
        actor: recorded on the audit entries

    Lines are received in ascending product id. The order ends RECEIVED
    when nothing is pending, else PARTIALLY_RECEIVED.
    """
    def _op() -> PurchaseOrder:
        order = _lock_order(order_id)
        if order.status not in (PO_APPROVED, PO_PARTIALLY_RECEIVED):
            require_transition(PURCHASE_ORDER_TRANSITIONS, order.status, PO_RECEIVED, order_number=order.order_number)

        plan = _plan_receipt(order, quantities)
        lines_by_product = {line.product_id: line for line in order.lines}

        stock_service.lock_stock_rows(
            ((product_id, order.warehouse_id) for product_id in plan),
            create_missing=True,
        )
        for product_id in sorted(plan):
            qty = plan[product_id]
            stock_service.receive(product_id, order.warehouse_id, qty, order.id, actor=actor)
            lines_by_product[product_id].received_quantity += qty

        fully_received = all(line.pending_quantity == 0 for line in order.lines)
        target = PO_RECEIVED if fully_received else PO_PARTIALLY_RECEIVED
        require_transition(PURCHASE_ORDER_TRANSITIONS, order.status, target, order_number=order.order_number)

        order.status = target
        if fully_received:
            order.received_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Received purchase order: %s (status %s)", order.order_number, order.status)
    return order


def cancel_purchase_order(order_id: int) -> PurchaseOrder:
    def _op() -> PurchaseOrder:
        order = _lock_order(order_id)
        require_transition(PURCHASE_ORDER_TRANSITIONS, order.status, PO_CANCELLED, order_number=order.order_number)
        order.status = PO_CANCELLED
        order.cancelled_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Cancelled purchase order: %s", order.order_number)
    return order


def get_purchase_order(order_id: int) -> PurchaseOrder:
    order = db.session.get(PurchaseOrder, order_id)
    if order is None:
        raise ResourceNotFoundError.for_entity("Purchase order", order_id)
    return order


def list_purchase_orders(
    status: str | None = None,
    supplier_id: int | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    if status is not None and status not in PURCHASE_ORDER_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(PURCHASE_ORDER_STATUSES))}",
            details={"field": "status"},
        )
    page = max(1, page)
    per_page = min(max(1, per_page), MAX_PER_PAGE)

    q = db.session.query(PurchaseOrder)
    if status is not None:
        q = q.filter(PurchaseOrder.status == status)
    if supplier_id is not None:
        q = q.filter(PurchaseOrder.supplier_id == supplier_id)

    total = q.count()
    items = (
        q.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
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
