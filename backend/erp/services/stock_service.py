# Overview: Service-layer operations for stock counters; encapsulates locking, invariants and audit pairing.

# backend/erp/services/stock_service.py

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.exc import IntegrityError

from ..errors import (
    BusinessValidationError,
    InsufficientStockError,
    ResourceNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..validation import INT32_MAX
from ..models import Product, StockRow, Warehouse
from ..models.catalog import PRODUCT_STATUS_ACTIVE
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_PURCHASE,
    MOVEMENT_RESERVATION,
    MOVEMENT_SALE,
    REFERENCE_MANUAL,
    REFERENCE_PURCHASE_ORDER,
    REFERENCE_SALES_ORDER,
)
from .audit_service import append_audit_entry
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

Counters:
- One StockRow per (product, warehouse); created lazily by receive/adjust.
- on_hand >= 0, reserved >= 0, reserved <= on_hand after every write.
- available = on_hand - reserved.

Transactions:
- reserve/release/ship/receive/adjust never commit. They run inside the
  caller's transaction so an order engine can confirm N lines atomically.
- The *_stock wrappers at the bottom commit their own transaction.
- Each mutator locks its row (SELECT ... FOR UPDATE) before reading it.
  Multi-row callers use lock_stock_rows(), which locks in ascending
  (product_id, warehouse_id) order.

Audit:
- ship/receive/adjust append one on-hand entry.
- reserve appends one RESERVATION entry (on_hand unchanged).
- release appends nothing; the reservation entry stays in the log.
"""

logger = logging.getLogger(__name__)

STOCK_STATUS_OUT = "OUT_OF_STOCK"
STOCK_STATUS_LOW = "LOW_STOCK"
STOCK_STATUS_IN = "IN_STOCK"


def _validate_quantity(value, field: str = "quantity") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if value <= 0:
        raise ValidationError(f"{field} must be positive", details={"field": field, "value": value})
    if value > INT32_MAX:
        raise ValidationError(f"{field} is out of range", details={"field": field, "value": value})
    return value


def _assert_counters(row: StockRow) -> None:
    """Abort before flush if a counter invariant would break."""
    if row.on_hand < 0:
        raise BusinessValidationError(
            "on_hand cannot be negative",
            details={"product_id": row.product_id, "warehouse_id": row.warehouse_id, "on_hand": row.on_hand},
        )
    if row.reserved < 0:
        raise BusinessValidationError(
            "reserved cannot be negative",
            details={"product_id": row.product_id, "warehouse_id": row.warehouse_id, "reserved": row.reserved},
        )
    if row.reserved > row.on_hand:
        raise BusinessValidationError(
            "reserved cannot exceed on_hand",
            details={
                "product_id": row.product_id,
                "warehouse_id": row.warehouse_id,
                "on_hand": row.on_hand,
                "reserved": row.reserved,
            },
        )
    if row.on_hand > INT32_MAX:
        raise BusinessValidationError("on_hand is out of range", details={"on_hand": row.on_hand})


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ResourceNotFoundError.for_entity("Product", product_id)
    return product


def _require_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise ResourceNotFoundError.for_entity("Warehouse", warehouse_id)
    return warehouse


def _load_locked(product_id: int, warehouse_id: int) -> StockRow | None:
    begin_write_transaction()
    query = (
        db.session.query(StockRow)
        .filter_by(product_id=product_id, warehouse_id=warehouse_id)
        .populate_existing()
    )
    return lock_for_update(query).first()


def _require_locked(product_id: int, warehouse_id: int) -> StockRow:
    row = _load_locked(product_id, warehouse_id)
    if row is None:
        raise ResourceNotFoundError(
            f"No inventory found for product: {product_id} in warehouse: {warehouse_id}",
            details={"product_id": product_id, "warehouse_id": warehouse_id},
        )
    return row


def _lock_or_create(product_id: int, warehouse_id: int) -> StockRow:
    """
    Locked stock row, created with zero counters when absent.

    A concurrent creator can win the unique (product_id, warehouse_id)
    race; the savepoint is rolled back and the winner's row is locked.
    """
    row = _load_locked(product_id, warehouse_id)
    if row is not None:
        return row

    _require_product(product_id)
    _require_warehouse(warehouse_id)

    row = StockRow(product_id=product_id, warehouse_id=warehouse_id, on_hand=0, reserved=0)
    try:
        with db.session.begin_nested():
            db.session.add(row)
            db.session.flush()
    except IntegrityError:
        row = _require_locked(product_id, warehouse_id)
    else:
        logger.info("Created stock row for product %s in warehouse %s", product_id, warehouse_id)
    return row


def lock_stock_rows(
    pairs: Iterable[tuple[int, int]],
    *,
    create_missing: bool = False,
) -> dict[tuple[int, int], StockRow | None]:
    """
    Lock several stock rows in ascending (product_id, warehouse_id) order.

    Missing rows map to None unless create_missing is set.
    """
    locked: dict[tuple[int, int], StockRow | None] = {}
    for product_id, warehouse_id in sorted(set(pairs)):
        if create_missing:
            locked[(product_id, warehouse_id)] = _lock_or_create(product_id, warehouse_id)
        else:
            locked[(product_id, warehouse_id)] = _load_locked(product_id, warehouse_id)
    return locked


# =============================================================================
# Mutators (caller owns the transaction)
# =============================================================================

def reserve(
    product_id: int,
    warehouse_id: int,
    quantity: int,
    *,
    sales_order_id: int | None = None,
    actor: str | None = None,
) -> StockRow:
    """
    Earmark `quantity` units for a confirmed sales order.

    Raises ResourceNotFoundError if no stock row exists and
    InsufficientStockError if available < quantity.
    """
    _validate_quantity(quantity)
    row = _require_locked(product_id, warehouse_id)

    available = row.available
    if available < quantity:
        raise InsufficientStockError(row.product.sku, quantity, available)

    row.reserved += quantity
    _assert_counters(row)
    db.session.flush()

    append_audit_entry(
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=MOVEMENT_RESERVATION,
        quantity_delta=-quantity,
        on_hand_before=row.on_hand,
        on_hand_after=row.on_hand,
        reference_type=REFERENCE_SALES_ORDER,
        reference_id=sales_order_id,
        notes="Inventory reserved for order",
        actor=actor,
    )

    logger.info("Reserved %s units of product %s in warehouse %s", quantity, row.product.sku, warehouse_id)
    return row


def release(product_id: int, warehouse_id: int, quantity: int) -> StockRow:
    """Undo a reservation; reserved never drops below zero. Writes no audit entry."""
    _validate_quantity(quantity)
    row = _require_locked(product_id, warehouse_id)

    row.reserved = max(0, row.reserved - quantity)
    _assert_counters(row)
    db.session.flush()

    logger.info(
        "Released reservation of %s units for product %s in warehouse %s",
        quantity, row.product.sku, warehouse_id,
    )
    return row


def ship(
    product_id: int,
    warehouse_id: int,
    quantity: int,
    sales_order_id: int,
    *,
    actor: str | None = None,
) -> StockRow:
    """Deduct shipped units from on_hand and discharge the matching reservation."""
    _validate_quantity(quantity)
    row = _require_locked(product_id, warehouse_id)

    if row.on_hand < quantity:
        raise InsufficientStockError(row.product.sku, quantity, row.on_hand)

    before = row.on_hand
    row.on_hand -= quantity
    row.reserved = max(0, row.reserved - quantity)
    _assert_counters(row)
    db.session.flush()

    append_audit_entry(
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=MOVEMENT_SALE,
        quantity_delta=-quantity,
        on_hand_before=before,
        on_hand_after=row.on_hand,
        reference_type=REFERENCE_SALES_ORDER,
        reference_id=sales_order_id,
        notes="Shipped",
        actor=actor,
    )

    logger.info("Deducted %s units of product %s for sales order %s", quantity, row.product.sku, sales_order_id)
    return row


def receive(
    product_id: int,
    warehouse_id: int,
    quantity: int,
    purchase_order_id: int,
    *,
    actor: str | None = None,
) -> StockRow:
    """Add received units to on_hand, creating the stock row on first receipt."""
    _validate_quantity(quantity)
    row = _lock_or_create(product_id, warehouse_id)

    before = row.on_hand
    row.on_hand += quantity
    _assert_counters(row)
    db.session.flush()

    append_audit_entry(
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=MOVEMENT_PURCHASE,
        quantity_delta=quantity,
        on_hand_before=before,
        on_hand_after=row.on_hand,
        reference_type=REFERENCE_PURCHASE_ORDER,
        reference_id=purchase_order_id,
        notes="Received from supplier",
        actor=actor,
    )

    logger.info("Added %s units of product %s from purchase order %s", quantity, row.product.sku, purchase_order_id)
    return row


def adjust(
    product_id: int,
    warehouse_id: int,
    delta: int,
    notes: str | None = None,
    *,
    actor: str | None = None,
) -> StockRow:
    """
    Manual correction of on_hand by a signed delta.

    - Rejects results below zero with BusinessValidationError.
    - If the new on_hand falls below reserved, reserved is clipped down to
      it and the clip is recorded in the audit notes.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer", details={"field": "delta"})
    if delta == 0:
        raise ValidationError("delta must not be zero", details={"field": "delta"})
    if abs(delta) > INT32_MAX:
        raise ValidationError("delta is out of range", details={"field": "delta", "value": delta})

    row = _lock_or_create(product_id, warehouse_id)

    before = row.on_hand
    new_on_hand = before + delta
    if new_on_hand < 0:
        raise BusinessValidationError(
            f"Adjustment would result in negative inventory. Current: {before}, Delta: {delta}",
            details={"product_id": product_id, "warehouse_id": warehouse_id, "on_hand": before, "delta": delta},
        )

    audit_notes = notes
    row.on_hand = new_on_hand
    if new_on_hand < row.reserved:
        clip_note = f"reserved clipped from {row.reserved} to {new_on_hand}"
        audit_notes = f"{notes} ({clip_note})" if notes else clip_note
        row.reserved = new_on_hand

    _assert_counters(row)
    db.session.flush()

    append_audit_entry(
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=MOVEMENT_ADJUSTMENT,
        quantity_delta=delta,
        on_hand_before=before,
        on_hand_after=new_on_hand,
        reference_type=REFERENCE_MANUAL,
        notes=audit_notes,
        actor=actor,
    )

    logger.info("Manual adjustment: %s units, product %s, warehouse %s", delta, product_id, warehouse_id)
    return row


# =============================================================================
# Committing wrappers
# =============================================================================

def adjust_stock(
    *,
    product_id: int,
    warehouse_id: int,
    delta: int,
    notes: str | None = None,
    actor: str | None = None,
) -> StockRow:
    def _op():
        row = adjust(product_id, warehouse_id, delta, notes, actor=actor)
        db.session.commit()
        return row

    return run_with_retry(_op)


def reserve_stock(*, product_id: int, warehouse_id: int, quantity: int, actor: str | None = None) -> StockRow:
    def _op():
        row = reserve(product_id, warehouse_id, quantity, actor=actor)
        db.session.commit()
        return row

    return run_with_retry(_op)


def release_stock(*, product_id: int, warehouse_id: int, quantity: int) -> StockRow:
    def _op():
        row = release(product_id, warehouse_id, quantity)
        db.session.commit()
        return row

    return run_with_retry(_op)


# =============================================================================
# Readers (no locks)
# =============================================================================

def get_stock(product_id: int, warehouse_id: int) -> StockRow | None:
    return db.session.query(StockRow).filter_by(product_id=product_id, warehouse_id=warehouse_id).first()


def require_stock(product_id: int, warehouse_id: int) -> StockRow:
    row = get_stock(product_id, warehouse_id)
    if row is None:
        raise ResourceNotFoundError(
            f"No inventory found for product: {product_id} in warehouse: {warehouse_id}",
            details={"product_id": product_id, "warehouse_id": warehouse_id},
        )
    return row


def list_stock(*, product_id: int | None = None, warehouse_id: int | None = None) -> list[StockRow]:
    q = db.session.query(StockRow)
    if product_id is not None:
        q = q.filter(StockRow.product_id == product_id)
    if warehouse_id is not None:
        q = q.filter(StockRow.warehouse_id == warehouse_id)
    return q.order_by(StockRow.product_id.asc(), StockRow.warehouse_id.asc()).all()


def list_low_stock() -> list[StockRow]:
    """Rows of ACTIVE products at or below a positive reorder level."""
    return (
        db.session.query(StockRow)
        .join(Product, Product.id == StockRow.product_id)
        .filter(
            Product.status == PRODUCT_STATUS_ACTIVE,
            Product.reorder_level > 0,
            StockRow.on_hand <= Product.reorder_level,
        )
        .order_by(StockRow.product_id.asc(), StockRow.warehouse_id.asc())
        .all()
    )


def list_out_of_stock() -> list[StockRow]:
    return (
        db.session.query(StockRow)
        .join(Product, Product.id == StockRow.product_id)
        .filter(
            Product.status == PRODUCT_STATUS_ACTIVE,
            StockRow.on_hand == 0,
        )
        .order_by(StockRow.product_id.asc(), StockRow.warehouse_id.asc())
        .all()
    )


def stock_status(row: StockRow) -> str:
    if row.on_hand == 0:
        return STOCK_STATUS_OUT
    if row.on_hand <= (row.product.reorder_level or 0):
        return STOCK_STATUS_LOW
    return STOCK_STATUS_IN
