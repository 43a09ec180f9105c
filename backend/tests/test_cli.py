"""
CLI command tests (flask stock ...).
"""

import pytest

from erp.services import stock_service


@pytest.fixture
def runner(app, db_session):
    return app.test_cli_runner()


def test_verify_passes_when_log_matches(runner, db_session, product, warehouse):
    stock_service.adjust_stock(product_id=product.id, warehouse_id=warehouse.id, delta=12)
    stock_service.reserve_stock(product_id=product.id, warehouse_id=warehouse.id, quantity=4)

    result = runner.invoke(args=["stock", "verify"])

    assert result.exit_code == 0, result.output
    assert "PASS 1 stock rows verified." in result.output


def test_verify_flags_drift(runner, db_session, product, second_product, warehouse, make_stock):
    stock_service.adjust_stock(product_id=product.id, warehouse_id=warehouse.id, delta=3)
    # seeded without an audit entry, so the log replays to 0
    make_stock(second_product, warehouse, on_hand=5)

    result = runner.invoke(args=["stock", "verify"])

    assert result.exit_code == 1
    assert f"FAIL product {second_product.id} / warehouse {warehouse.id}" in result.output
    assert "replays to 0" in result.output
    assert "FAIL 1 of 2 stock rows drifted." in result.output


def test_adjust_reports_new_counters(runner, db_session, product, warehouse):
    result = runner.invoke(args=[
        "stock", "adjust",
        "--product-id", str(product.id),
        "--warehouse-id", str(warehouse.id),
        "--delta", "7",
        "--notes", "Cycle count",
    ])

    assert result.exit_code == 0, result.output
    assert "PASS on_hand=7 reserved=0 available=7" in result.output

    db_session.expire_all()
    assert stock_service.get_stock(product.id, warehouse.id).on_hand == 7


def test_negative_adjust_fails_with_business_error(runner, db_session, product, warehouse):
    stock_service.adjust_stock(product_id=product.id, warehouse_id=warehouse.id, delta=2)

    result = runner.invoke(args=[
        "stock", "adjust",
        "--product-id", str(product.id),
        "--warehouse-id", str(warehouse.id),
        "--delta", "-5",
    ])

    assert result.exit_code == 1
    assert "FAIL BUSINESS_VALIDATION_ERROR" in result.output

    db_session.expire_all()
    assert stock_service.get_stock(product.id, warehouse.id).on_hand == 2
