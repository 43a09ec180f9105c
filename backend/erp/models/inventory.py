from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from .catalog import money_str
from erp.time_utils import to_utc_z

# Movement types
MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_SALE = "SALE"
MOVEMENT_RESERVATION = "RESERVATION"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"

MOVEMENT_TYPES = {
    MOVEMENT_PURCHASE,
    MOVEMENT_SALE,
    MOVEMENT_RESERVATION,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
}

# RESERVATION entries move `reserved`, not `on_hand`; they are excluded
# when on-hand is rebuilt from the log.
ON_HAND_MOVEMENT_TYPES = MOVEMENT_TYPES - {MOVEMENT_RESERVATION}

# Reference types
REFERENCE_SALES_ORDER = "SALES_ORDER"
REFERENCE_PURCHASE_ORDER = "PURCHASE_ORDER"
REFERENCE_MANUAL = "MANUAL"
REFERENCE_TRANSFER = "TRANSFER"

REFERENCE_TYPES = {
    REFERENCE_SALES_ORDER,
    REFERENCE_PURCHASE_ORDER,
    REFERENCE_MANUAL,
    REFERENCE_TRANSFER,
}


class StockRow(db.Model):
    """
    Per-(product, warehouse) stock counters.

    INVARIANTS (checked in stock_service before every flush and backed by
    CHECK constraints):
    - on_hand >= 0
    - reserved >= 0
    - reserved <= on_hand

    available = on_hand - reserved is derived, never stored.

    LOCKING:
    Mutations go through stock_service, which loads the row with
    SELECT ... FOR UPDATE (BEGIN IMMEDIATE on SQLite) and holds it to commit.
    """
    __tablename__ = "stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_stock_product_warehouse"),
        db.CheckConstraint("on_hand >= 0", name="ck_stock_on_hand_nonneg"),
        db.CheckConstraint("reserved >= 0", name="ck_stock_reserved_nonneg"),
        db.CheckConstraint("reserved <= on_hand", name="ck_stock_reserved_le_on_hand"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    on_hand = db.Column(db.Integer, nullable=False, default=0)
    reserved = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available(self) -> int:
        return self.on_hand - self.reserved

    @property
    def stock_value(self) -> Decimal:
        """on_hand valued at the product's cost price."""
        cost = self.product.cost_price if self.product is not None else None
        return (cost or Decimal("0")) * self.on_hand

    def __repr__(self) -> str:
        return (
            f"<StockRow product_id={self.product_id} warehouse_id={self.warehouse_id} "
            f"on_hand={self.on_hand} reserved={self.reserved}>"
        )

    def to_dict(self) -> dict:
        product = self.product
        warehouse = self.warehouse
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_sku": product.sku if product else None,
            "product_name": product.name if product else None,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": warehouse.name if warehouse else None,
            "on_hand": self.on_hand,
            "reserved": self.reserved,
            "available": self.available,
            "stock_value": money_str(self.stock_value),
            "last_updated": to_utc_z(self.last_updated),
            "version_id": self.version_id,
        }


class AuditEntry(db.Model):
    """
    Append-only record of one stock mutation.

    - Written inside the same DB transaction as the counter change.
    - Never updated, never deleted (audit_service exposes no such operation).
    - quantity_delta is signed and never zero.
    - created_at is system time assigned by the database.
    """
    __tablename__ = "stock_audit_entries"
    __table_args__ = (
        db.CheckConstraint("quantity_delta <> 0", name="ck_audit_delta_nonzero"),
        db.Index("ix_audit_reference", "reference_type", "reference_id"),
        db.Index("ix_audit_product_warehouse", "product_id", "warehouse_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(20), nullable=False, index=True)

    # Positive = stock in, negative = stock out (or reserved, for RESERVATION)
    quantity_delta = db.Column(db.Integer, nullable=False)
    on_hand_before = db.Column(db.Integer, nullable=False)
    on_hand_after = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(20), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )
    created_by = db.Column(db.String(100), nullable=False, default="SYSTEM")

    def __repr__(self) -> str:
        return (
            f"<AuditEntry id={self.id} {self.movement_type} product_id={self.product_id} "
            f"delta={self.quantity_delta} {self.on_hand_before}->{self.on_hand_after}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "on_hand_before": self.on_hand_before,
            "on_hand_after": self.on_hand_after,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }
