from decimal import Decimal

import pytest

from erp.errors import (
    BusinessValidationError,
    InvalidOrderStateError,
    ResourceNotFoundError,
    ValidationError,
)
from erp.models import AuditEntry, PurchaseOrder
from erp.models.inventory import MOVEMENT_PURCHASE, REFERENCE_PURCHASE_ORDER
from erp.services import audit_service, purchase_order_service, stock_service
from erp.services.lifecycle_service import (
    PO_APPROVED,
    PO_CANCELLED,
    PO_CREATED,
    PO_PARTIALLY_RECEIVED,
    PO_RECEIVED,
)


def _line(product, quantity, cost="3.00"):
    return {"product_id": product.id, "quantity": quantity, "unit_cost": cost}


def _create(supplier, warehouse, *lines, **kwargs):
    return purchase_order_service.create_purchase_order(
        supplier_id=supplier.id,
        warehouse_id=warehouse.id,
        lines=list(lines),
        **kwargs,
    )


def _row(db_session, product, warehouse):
    db_session.expire_all()
    return stock_service.get_stock(product.id, warehouse.id)


def test_create_purchase_order(db_session, supplier, warehouse, product, second_product):
    order = _create(
        supplier, warehouse,
        _line(product, 20, "3.00"),
        _line(second_product, 4, "12.25"),
        expected_date="2026-12-01",
    )

    assert order.status == PO_CREATED
    assert order.order_number.startswith("PO-")
    assert order.total_amount == Decimal("109.0000")
    assert all(line.received_quantity == 0 for line in order.lines)
    assert order.expected_date.isoformat() == "2026-12-01"


def test_create_validates_lines(db_session, supplier, warehouse, product):
    with pytest.raises(BusinessValidationError):
        _create(supplier, warehouse)
    with pytest.raises(ValidationError):
        _create(supplier, warehouse, _line(product, 1, "-1"))
    with pytest.raises(ResourceNotFoundError):
        purchase_order_service.create_purchase_order(
            supplier_id=555555, warehouse_id=warehouse.id, lines=[_line(product, 1)]
        )
    assert db_session.query(PurchaseOrder).count() == 0


def test_receive_into_empty_creates_stock_row(db_session, supplier, warehouse, product):
    order = _create(supplier, warehouse, _line(product, 20, "3.00"))
    assert purchase_order_service.approve_purchase_order(order.id).approved_at is not None

    received = purchase_order_service.receive_purchase_order(order.id)

    assert received.status == PO_RECEIVED
    assert received.received_at is not None
    assert received.lines[0].received_quantity == 20

    row = _row(db_session, product, warehouse)
    assert (row.on_hand, row.reserved) == (20, 0)

    trail = audit_service.list_by_reference(REFERENCE_PURCHASE_ORDER, order.id)
    assert [(e.movement_type, e.quantity_delta) for e in trail] == [(MOVEMENT_PURCHASE, 20)]


def test_receive_requires_approval(db_session, supplier, warehouse, product):
    order = _create(supplier, warehouse, _line(product, 5))

    with pytest.raises(InvalidOrderStateError):
        purchase_order_service.receive_purchase_order(order.id)

    assert stock_service.get_stock(product.id, warehouse.id) is None


def test_partial_receipts_accumulate(db_session, supplier, warehouse, product, second_product):
    order = _create(supplier, warehouse, _line(product, 10), _line(second_product, 6))
    purchase_order_service.approve_purchase_order(order.id)

    first = purchase_order_service.receive_purchase_order(order.id, {product.id: 4})
    assert first.status == PO_PARTIALLY_RECEIVED
    assert first.received_at is None
    assert _row(db_session, product, warehouse).on_hand == 4
    assert _row(db_session, second_product, warehouse) is None

    second = purchase_order_service.receive_purchase_order(order.id, {product.id: 6, second_product.id: 2})
    assert second.status == PO_PARTIALLY_RECEIVED

    # no mapping: receive whatever is still pending
    final = purchase_order_service.receive_purchase_order(order.id)
    assert final.status == PO_RECEIVED
    assert {l.product_id: l.received_quantity for l in final.lines} == {product.id: 10, second_product.id: 6}

    assert _row(db_session, product, warehouse).on_hand == 10
    assert _row(db_session, second_product, warehouse).on_hand == 6
    assert db_session.query(AuditEntry).count() == 4


@pytest.mark.parametrize("qty", [0, 11])
def test_partial_receipt_quantity_bounds(db_session, supplier, warehouse, product, qty):
    order = _create(supplier, warehouse, _line(product, 10))
    purchase_order_service.approve_purchase_order(order.id)

    with pytest.raises(ValidationError):
        purchase_order_service.receive_purchase_order(order.id, {product.id: qty})

    assert purchase_order_service.get_purchase_order(order.id).status == PO_APPROVED


def test_partial_receipt_rejects_repeated_product(db_session, supplier, warehouse, product):
    order = _create(supplier, warehouse, _line(product, 10))
    purchase_order_service.approve_purchase_order(order.id)

    # string and int keys resolve to the same product
    with pytest.raises(ValidationError):
        purchase_order_service.receive_purchase_order(order.id, {str(product.id): 2, product.id: 3})

    assert stock_service.get_stock(product.id, warehouse.id) is None
    assert purchase_order_service.get_purchase_order(order.id).status == PO_APPROVED


def test_partial_receipt_rejects_foreign_product(db_session, supplier, warehouse, product, second_product):
    order = _create(supplier, warehouse, _line(product, 10))
    purchase_order_service.approve_purchase_order(order.id)

    with pytest.raises(ValidationError):
        purchase_order_service.receive_purchase_order(order.id, {second_product.id: 1})


def test_received_order_cannot_be_received_or_cancelled(db_session, supplier, warehouse, product):
    order = _create(supplier, warehouse, _line(product, 2))
    purchase_order_service.approve_purchase_order(order.id)
    purchase_order_service.receive_purchase_order(order.id)

    with pytest.raises(InvalidOrderStateError):
        purchase_order_service.receive_purchase_order(order.id)
    with pytest.raises(InvalidOrderStateError):
        purchase_order_service.cancel_purchase_order(order.id)

    assert _row(db_session, product, warehouse).on_hand == 2


def test_cancel_keeps_already_received_stock(db_session, supplier, warehouse, product):
    order = _create(supplier, warehouse, _line(product, 10))
    purchase_order_service.approve_purchase_order(order.id)
    purchase_order_service.receive_purchase_order(order.id, {product.id: 3})

    cancelled = purchase_order_service.cancel_purchase_order(order.id)

    assert cancelled.status == PO_CANCELLED
    assert cancelled.cancelled_at is not None
    assert _row(db_session, product, warehouse).on_hand == 3


def test_approve_twice_is_invalid(db_session, supplier, warehouse, product):
    order = _create(supplier, warehouse, _line(product, 1))
    purchase_order_service.approve_purchase_order(order.id)

    with pytest.raises(InvalidOrderStateError):
        purchase_order_service.approve_purchase_order(order.id)


def test_list_purchase_orders_by_status(db_session, supplier, warehouse, product):
    a = _create(supplier, warehouse, _line(product, 1))
    _create(supplier, warehouse, _line(product, 1))
    purchase_order_service.approve_purchase_order(a.id)

    approved = purchase_order_service.list_purchase_orders(status=PO_APPROVED)
    assert [o.id for o in approved["items"]] == [a.id]
    assert purchase_order_service.list_purchase_orders()["count"] == 2
