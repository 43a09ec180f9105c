import re
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from erp.errors import DuplicateResourceError
from erp.models import SalesOrder, SalesOrderLine
from erp.services import order_number_service, sales_order_service
from erp.services.concurrency import begin_write_transaction

ORDER_NUMBER_RE = re.compile(r"^SO-\d{13}-[A-Z0-9]{6}$")


def _lines(product):
    return [{"product_id": product.id, "quantity": 1, "unit_price": "10.00"}]


def test_generated_numbers_follow_format():
    number = order_number_service.generate_order_number("so")
    assert ORDER_NUMBER_RE.match(number), number
    assert len(number) <= order_number_service.ORDER_NUMBER_MAX_LENGTH


def test_generated_numbers_differ():
    numbers = {order_number_service.generate_order_number("PO") for _ in range(50)}
    assert len(numbers) == 50


def test_generate_requires_prefix():
    with pytest.raises(ValueError):
        order_number_service.generate_order_number("")


def test_collision_is_retried_with_fresh_number(db_session, monkeypatch, customer, warehouse, product):
    first = sales_order_service.create_sales_order(
        customer_id=customer.id, warehouse_id=warehouse.id, lines=_lines(product)
    )
    taken = first.order_number

    candidates = iter([taken, "SO-1700000000000-FRESH1"])
    monkeypatch.setattr(order_number_service, "generate_order_number", lambda prefix: next(candidates))

    second = sales_order_service.create_sales_order(
        customer_id=customer.id, warehouse_id=warehouse.id, lines=_lines(product)
    )

    assert second.order_number == "SO-1700000000000-FRESH1"
    assert len(second.lines) == 1
    assert db_session.query(SalesOrder).count() == 2


def test_collisions_exhaust_attempts(db_session, monkeypatch, customer, warehouse, product):
    first = sales_order_service.create_sales_order(
        customer_id=customer.id, warehouse_id=warehouse.id, lines=_lines(product)
    )
    taken = first.order_number
    monkeypatch.setattr(order_number_service, "generate_order_number", lambda prefix: taken)

    with pytest.raises(DuplicateResourceError) as exc_info:
        sales_order_service.create_sales_order(
            customer_id=customer.id, warehouse_id=warehouse.id, lines=_lines(product)
        )

    assert exc_info.value.code == "DUPLICATE_RESOURCE"
    assert db_session.query(SalesOrder).count() == 1


def test_other_integrity_errors_are_not_retried(db_session, monkeypatch, customer, warehouse, product):
    calls = []

    def _generate(prefix):
        calls.append(prefix)
        return f"SO-1700000000000-LINE0{len(calls)}"

    monkeypatch.setattr(order_number_service, "generate_order_number", _generate)

    begin_write_transaction()
    order = SalesOrder(customer_id=customer.id, warehouse_id=warehouse.id, status="CREATED")
    # violates ck_sales_order_lines_qty_positive
    order.lines.append(SalesOrderLine(product_id=product.id, quantity=0, unit_price=Decimal("1")))

    with pytest.raises(IntegrityError) as exc_info:
        order_number_service.assign_order_number(order, "SO")

    assert calls == ["SO"]
    db_session.rollback()
    assert db_session.query(SalesOrder).count() == 0
