"""
HTTP surface tests: status codes and the error envelope.
"""


def _post(client, url, payload=None):
    return client.post(url, json=payload if payload is not None else {})


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "healthy"


def test_sales_order_lifecycle_over_http(client, customer, warehouse, product, make_stock):
    make_stock(product, warehouse, on_hand=10)

    resp = _post(client, "/api/sales-orders", {
        "customer_id": customer.id,
        "warehouse_id": warehouse.id,
        "lines": [{"product_id": product.id, "quantity": 5, "unit_price": "10.00"}],
    })
    assert resp.status_code == 201
    order = resp.get_json()
    assert order["status"] == "CREATED"
    assert order["total_amount"] == "50.0000"
    order_id = order["id"]

    assert _post(client, f"/api/sales-orders/{order_id}/confirm").get_json()["status"] == "CONFIRMED"
    assert _post(client, f"/api/sales-orders/{order_id}/pick").get_json()["status"] == "PICKING"
    assert _post(client, f"/api/sales-orders/{order_id}/ship").get_json()["status"] == "SHIPPED"
    assert _post(client, f"/api/sales-orders/{order_id}/deliver").get_json()["status"] == "DELIVERED"

    inventory = client.get(f"/api/inventory?product_id={product.id}").get_json()
    assert inventory["items"][0]["on_hand"] == 5
    assert inventory["items"][0]["stock_status"] == "LOW_STOCK"

    listed = client.get("/api/sales-orders?status=DELIVERED").get_json()
    assert [o["id"] for o in listed["items"]] == [order_id]


def test_insufficient_stock_envelope(client, customer, warehouse, product, make_stock):
    make_stock(product, warehouse, on_hand=3)
    order = _post(client, "/api/sales-orders", {
        "customer_id": customer.id,
        "warehouse_id": warehouse.id,
        "lines": [{"product_id": product.id, "quantity": 7, "unit_price": "1"}],
    }).get_json()

    resp = _post(client, f"/api/sales-orders/{order['id']}/confirm")

    assert resp.status_code == 409
    body = resp.get_json()
    assert body["error_code"] == "INSUFFICIENT_STOCK"
    assert body["details"] == {"sku": "WID-001", "requested": 7, "available": 3}
    assert "WID-001" in body["error"]


def test_invalid_state_and_not_found_envelopes(client, customer, warehouse, product):
    order = _post(client, "/api/sales-orders", {
        "customer_id": customer.id,
        "warehouse_id": warehouse.id,
        "lines": [{"product_id": product.id, "quantity": 1, "unit_price": "1"}],
    }).get_json()

    resp = _post(client, f"/api/sales-orders/{order['id']}/ship")
    assert resp.status_code == 400
    assert resp.get_json()["error_code"] == "INVALID_ORDER_STATE"

    resp = client.get("/api/sales-orders/999999")
    assert resp.status_code == 404
    assert resp.get_json()["error_code"] == "RESOURCE_NOT_FOUND"


def test_create_order_validation_envelope(client, customer, warehouse, product):
    resp = _post(client, "/api/sales-orders", {
        "customer_id": customer.id,
        "warehouse_id": warehouse.id,
        "lines": [{"product_id": product.id, "quantity": 0, "unit_price": "1"}],
    })
    assert resp.status_code == 400
    assert resp.get_json()["error_code"] == "VALIDATION_ERROR"

    resp = _post(client, "/api/sales-orders", {
        "customer_id": customer.id,
        "warehouse_id": warehouse.id,
        "lines": [],
    })
    assert resp.status_code == 400
    assert resp.get_json()["error_code"] == "BUSINESS_VALIDATION_ERROR"


def test_purchase_order_partial_receive_over_http(client, supplier, warehouse, product):
    order = _post(client, "/api/purchase-orders", {
        "supplier_id": supplier.id,
        "warehouse_id": warehouse.id,
        "lines": [{"product_id": product.id, "quantity": 20, "unit_cost": "3.00"}],
    }).get_json()
    order_id = order["id"]

    assert _post(client, f"/api/purchase-orders/{order_id}/approve").get_json()["status"] == "APPROVED"

    partial = _post(client, f"/api/purchase-orders/{order_id}/receive", {
        "lines": [{"product_id": product.id, "quantity": 5}],
    }).get_json()
    assert partial["status"] == "PARTIALLY_RECEIVED"
    assert partial["lines"][0]["pending_quantity"] == 15

    rest = _post(client, f"/api/purchase-orders/{order_id}/receive").get_json()
    assert rest["status"] == "RECEIVED"

    movements = client.get(f"/api/inventory/movements?product_id={product.id}").get_json()
    assert movements["count"] == 2
    assert {m["movement_type"] for m in movements["items"]} == {"PURCHASE"}


def test_adjust_route(client, product, warehouse, make_stock):
    make_stock(product, warehouse, on_hand=2)

    resp = _post(client, "/api/inventory/adjust", {
        "product_id": product.id,
        "warehouse_id": warehouse.id,
        "quantity_delta": -5,
        "notes": "recount",
    })
    assert resp.status_code == 400
    assert resp.get_json()["error_code"] == "BUSINESS_VALIDATION_ERROR"

    resp = _post(client, "/api/inventory/adjust", {
        "product_id": product.id,
        "warehouse_id": warehouse.id,
        "quantity_delta": -2,
    })
    assert resp.status_code == 200
    assert resp.get_json()["on_hand"] == 0

    out = client.get("/api/inventory/out-of-stock").get_json()
    assert [r["product_id"] for r in out["items"]] == [product.id]


def test_movements_requires_product_id(client):
    resp = client.get("/api/inventory/movements")
    assert resp.status_code == 400
    assert resp.get_json()["error_code"] == "VALIDATION_ERROR"


def test_product_patch_uses_version(client, product):
    version = client.get(f"/api/products/{product.id}").get_json()["version_id"]

    ok = client.patch(f"/api/products/{product.id}", json={"version_id": version, "name": "Renamed"})
    assert ok.status_code == 200
    assert ok.get_json()["version_id"] == version + 1

    stale = client.patch(f"/api/products/{product.id}", json={"version_id": version, "name": "Lost update"})
    assert stale.status_code == 409
    assert stale.get_json()["error_code"] == "CONCURRENT_MODIFICATION"


def test_unknown_route_uses_envelope(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json()["error_code"] == "NOT_FOUND"


def test_inventory_payload_carries_value_and_warehouse(client, product, warehouse, make_stock):
    make_stock(product, warehouse, on_hand=10)

    item = client.get(f"/api/inventory?product_id={product.id}").get_json()["items"][0]

    assert item["warehouse_name"] == "Main Warehouse"
    # 10 units at cost 4.0000
    assert item["stock_value"] == "40.0000"


def test_product_search_and_soft_delete(client, product, second_product):
    resp = client.get("/api/products?name=gadget")
    assert resp.status_code == 200
    assert [p["sku"] for p in resp.get_json()["items"]] == ["GAD-002"]

    deleted = client.delete(f"/api/products/{second_product.id}")
    assert deleted.status_code == 200
    assert deleted.get_json()["status"] == "INACTIVE"

    active = client.get("/api/products?status=ACTIVE").get_json()
    assert [p["sku"] for p in active["items"]] == ["WID-001"]

    assert client.delete("/api/products/999999").status_code == 404
