# Overview: Service-layer operations for products; catalogue edits on the optimistic-lock path.

# backend/erp/services/products_service.py
"""
Products Service

Product edits do not go through the stock lock. Concurrency is handled by
the version_id column on Product:
- callers pass the version they read (expected_version)
- a mismatch, or a concurrent commit caught by StaleDataError at flush,
  surfaces as ConcurrentModificationError

SKU is immutable once any sales or purchase order line references the
product.
"""
from __future__ import annotations

import logging
import math

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import (
    BusinessValidationError,
    ConcurrentModificationError,
    DuplicateResourceError,
    ResourceNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Product, PurchaseOrderLine, SalesOrderLine
from ..models.catalog import PRODUCT_STATUS_INACTIVE, PRODUCT_STATUSES
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "name",
    "description",
    "unit_price",
    "cost_price",
    "reorder_level",
    "reorder_quantity",
    "unit_of_measure",
    "status",
}

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS,
    required_on_create={"sku", "name"},
)


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ResourceNotFoundError.for_entity("Product", product_id)
    return product


def is_referenced_by_orders(product_id: int) -> bool:
    on_sales = db.session.query(SalesOrderLine.id).filter_by(product_id=product_id).first()
    if on_sales is not None:
        return True
    on_purchases = db.session.query(PurchaseOrderLine.id).filter_by(product_id=product_id).first()
    return on_purchases is not None


def create_product(*, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    def _op() -> Product:
        if db.session.query(Product.id).filter_by(sku=patch["sku"]).first() is not None:
            raise DuplicateResourceError(
                f"Product with SKU {patch['sku']} already exists",
                details={"sku": patch["sku"]},
            )
        product = Product()
        apply_product_patch(product, patch)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise DuplicateResourceError(
                f"Product with SKU {patch['sku']} already exists",
                details={"sku": patch["sku"]},
            ) from exc
        db.session.commit()
        return product

    product = run_with_retry(_op)
    logger.info("Created product %s", product.sku)
    return product


def update_product(product_id: int, expected_version: int, patch: dict) -> Product:
    """
    Apply `patch` to a product the caller last saw at `expected_version`.

    Raises:
        ResourceNotFoundError: unknown product
        ConcurrentModificationError: version moved on since it was read
        BusinessValidationError: sku change on a product used by orders
        DuplicateResourceError: new sku already taken
        ValidationError: malformed patch
    """
    cleaned = validate_payload(model=Product, payload=patch, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(cleaned)

    def _op() -> Product:
        product = db.session.query(Product).filter_by(id=product_id).populate_existing().first()
        if product is None:
            raise ResourceNotFoundError.for_entity("Product", product_id)

        if product.version_id != expected_version:
            raise ConcurrentModificationError(
                details={
                    "product_id": product_id,
                    "expected_version": expected_version,
                    "current_version": product.version_id,
                }
            )

        new_sku = cleaned.get("sku")
        if new_sku is not None and new_sku != product.sku:
            if is_referenced_by_orders(product.id):
                raise BusinessValidationError(
                    f"SKU of product {product.sku} cannot change once it appears on an order",
                    details={"product_id": product.id, "sku": product.sku},
                )
            taken = (
                db.session.query(Product.id)
                .filter(Product.sku == new_sku, Product.id != product.id)
                .first()
            )
            if taken is not None:
                raise DuplicateResourceError(
                    f"Product with SKU {new_sku} already exists",
                    details={"sku": new_sku},
                )

        apply_product_patch(product, cleaned)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise DuplicateResourceError(
                f"Product with SKU {new_sku} already exists",
                details={"sku": new_sku},
            ) from exc
        db.session.commit()
        return product

    product = run_with_retry(_op)
    logger.info("Updated product %s (fields: %s)", product.sku, ", ".join(sorted(cleaned.keys())))
    return product


def deactivate_product(product_id: int) -> Product:
    """
    Soft-delete: set the product INACTIVE.

    The row stays so order lines, stock rows and audit entries keep their
    reference. Already-inactive products are left untouched.
    """
    def _op() -> Product:
        product = db.session.query(Product).filter_by(id=product_id).populate_existing().first()
        if product is None:
            raise ResourceNotFoundError.for_entity("Product", product_id)
        if product.status != PRODUCT_STATUS_INACTIVE:
            product.status = PRODUCT_STATUS_INACTIVE
        db.session.commit()
        return product

    product = run_with_retry(_op)
    logger.info("Product soft-deleted: %s", product.sku)
    return product


def list_products(
    status: str | None = None,
    name: str | None = None,
    sku: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """
    Page of products ordered by name.

    - status: exact match (ACTIVE / INACTIVE)
    - name: case-insensitive substring
    - sku: substring
    """
    if status is not None and status not in PRODUCT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(PRODUCT_STATUSES))}",
            details={"field": "status"},
        )
    page = max(1, page)
    per_page = min(max(1, per_page), MAX_PER_PAGE)

    q = db.session.query(Product)
    if status is not None:
        q = q.filter(Product.status == status)
    if name:
        q = q.filter(func.upper(Product.name).contains(name.upper(), autoescape=True))
    if sku:
        q = q.filter(Product.sku.contains(sku, autoescape=True))

    total = q.count()
    items = (
        q.order_by(Product.name.asc(), Product.id.asc())
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
