from decimal import Decimal

import pytest

from erp.errors import (
    BusinessValidationError,
    ConcurrentModificationError,
    DuplicateResourceError,
    ResourceNotFoundError,
    ValidationError,
)
from erp.models import Product
from erp.services import products_service, sales_order_service, stock_service


def test_update_bumps_version(db_session, product):
    before = product.version_id

    updated = products_service.update_product(
        product.id, before, {"name": "Widget Pro", "unit_price": "12.5", "reorder_level": 8}
    )

    assert updated.name == "Widget Pro"
    assert updated.unit_price == Decimal("12.5000")
    assert updated.reorder_level == 8
    assert updated.version_id == before + 1


def test_stale_version_is_concurrent_modification(db_session, product):
    version = product.version_id
    products_service.update_product(product.id, version, {"name": "First writer"})

    with pytest.raises(ConcurrentModificationError) as exc_info:
        products_service.update_product(product.id, version, {"name": "Second writer"})

    assert exc_info.value.code == "CONCURRENT_MODIFICATION"
    db_session.expire_all()
    assert db_session.get(Product, product.id).name == "First writer"


def test_sku_change_allowed_until_product_is_ordered(db_session, product, customer, warehouse):
    renamed = products_service.update_product(product.id, product.version_id, {"sku": "WID-001-B"})
    assert renamed.sku == "WID-001-B"

    sales_order_service.create_sales_order(
        customer_id=customer.id,
        warehouse_id=warehouse.id,
        lines=[{"product_id": product.id, "quantity": 1, "unit_price": "1"}],
    )

    with pytest.raises(BusinessValidationError):
        products_service.update_product(product.id, renamed.version_id, {"sku": "WID-001-C"})

    # other fields stay editable
    products_service.update_product(product.id, renamed.version_id, {"description": "still fine"})


def test_duplicate_sku_is_rejected(db_session, product, second_product):
    with pytest.raises(DuplicateResourceError):
        products_service.update_product(second_product.id, second_product.version_id, {"sku": "WID-001"})


def test_update_rejects_unknown_and_invalid_fields(db_session, product):
    with pytest.raises(ValidationError):
        products_service.update_product(product.id, product.version_id, {"id": 5})
    with pytest.raises(ValidationError):
        products_service.update_product(product.id, product.version_id, {"reorder_level": -1})
    with pytest.raises(ValidationError):
        products_service.update_product(product.id, product.version_id, {"status": "RETIRED"})


def test_update_unknown_product(db_session):
    with pytest.raises(ResourceNotFoundError):
        products_service.update_product(777777, 1, {"name": "ghost"})


def test_create_product_and_duplicate(db_session):
    created = products_service.create_product(payload={"sku": "NEW-1", "name": "New thing", "unit_price": "4.2"})
    assert created.unit_price == Decimal("4.2000")
    assert created.status == "ACTIVE"

    with pytest.raises(DuplicateResourceError):
        products_service.create_product(payload={"sku": "NEW-1", "name": "Again"})


def test_deactivate_is_soft_delete(db_session, product, warehouse, make_stock):
    make_stock(product, warehouse, on_hand=0)
    assert [r.product_id for r in stock_service.list_out_of_stock()] == [product.id]

    deactivated = products_service.deactivate_product(product.id)

    assert deactivated.status == "INACTIVE"
    db_session.expire_all()
    assert db_session.get(Product, product.id) is not None
    assert stock_service.list_out_of_stock() == []

    # second call leaves it inactive
    assert products_service.deactivate_product(product.id).status == "INACTIVE"


def test_deactivate_unknown_product(db_session):
    with pytest.raises(ResourceNotFoundError):
        products_service.deactivate_product(888888)


def test_list_products_filters_by_status_name_and_sku(db_session, product, second_product):
    products_service.deactivate_product(second_product.id)

    everything = products_service.list_products()
    assert everything["count"] == 2
    # ordered by name
    assert [p.sku for p in everything["items"]] == ["GAD-002", "WID-001"]

    assert [p.id for p in products_service.list_products(status="ACTIVE")["items"]] == [product.id]
    assert [p.id for p in products_service.list_products(name="widg")["items"]] == [product.id]
    assert [p.id for p in products_service.list_products(sku="002")["items"]] == [second_product.id]
    assert products_service.list_products(status="ACTIVE", sku="002")["count"] == 0


def test_list_products_paginates(db_session, product, second_product):
    page = products_service.list_products(page=2, per_page=1)
    assert page["count"] == 2
    assert page["pages"] == 2
    assert [p.id for p in page["items"]] == [product.id]


def test_list_products_rejects_unknown_status(db_session):
    with pytest.raises(ValidationError):
        products_service.list_products(status="RETIRED")
