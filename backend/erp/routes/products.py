# backend/erp/routes/products.py
"""
Product catalogue routes.

PATCH uses optimistic concurrency: the client sends back the version_id it
read, and a stale version answers 409 CONCURRENT_MODIFICATION.
"""
from flask import Blueprint, current_app, request

from ..errors import ValidationError
from ..services import products_service
from ..validation import parse_int

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """
    Search products.

    Query params: status, name (case-insensitive substring), sku (substring),
    page, per_page (max 100).
    """
    result = products_service.list_products(
        status=request.args.get("status"),
        name=request.args.get("name"),
        sku=request.args.get("sku"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )
    result["items"] = [p.to_dict() for p in result["items"]]
    return result


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    return products_service.get_product(product_id).to_dict()


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    product = products_service.create_product(payload=payload)
    return product.to_dict(), 201


@products_bp.patch("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    patch = dict(payload)
    expected_version = parse_int(patch.pop("version_id", None), "version_id", minimum=1)
    product = products_service.update_product(product_id, expected_version, patch)
    return product.to_dict()


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Soft-delete: the product is kept and marked INACTIVE."""
    product = products_service.deactivate_product(product_id)
    current_app.logger.info("Product %s deactivated", product.sku)
    return product.to_dict()
