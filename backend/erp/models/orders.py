from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from .catalog import money_str
from erp.time_utils import to_utc_z


class SalesOrder(db.Model):
    """
    Sales order header.

    LIFECYCLE (see lifecycle_service.SALES_ORDER_TRANSITIONS):
    CREATED -> CONFIRMED -> (PICKING) -> SHIPPED -> DELIVERED, CANCELLED sink.

    - CONFIRMED reserves stock for every line.
    - SHIPPED deducts on-hand and discharges the reservation.
    - CANCELLED from CONFIRMED/PICKING releases the reservation.

    total_amount is always recomputed from the lines on create.
    """
    __tablename__ = "sales_orders"
    __table_args__ = (
        db.Index("ix_sales_orders_status", "status"),
        db.Index("ix_sales_orders_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable order number (e.g., "SO-1760000000000-A1B2C3")
    order_number = db.Column(db.String(50), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="CREATED")
    total_amount = db.Column(db.Numeric(18, 4), nullable=False, default=Decimal("0"))

    notes = db.Column(db.Text, nullable=True)
    requested_date = db.Column(db.Date, nullable=True)

    # Lifecycle timestamps
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "SalesOrderLine",
        cascade="all, delete-orphan",
        order_by="SalesOrderLine.product_id",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def calculate_total(self) -> Decimal:
        self.total_amount = sum((line.line_total for line in self.lines), Decimal("0"))
        return self.total_amount

    def __repr__(self) -> str:
        return f"<SalesOrder id={self.id} order_number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "warehouse_id": self.warehouse_id,
            "status": self.status,
            "total_amount": money_str(self.total_amount),
            "notes": self.notes,
            "requested_date": self.requested_date.isoformat() if self.requested_date else None,
            "shipped_at": to_utc_z(self.shipped_at) if self.shipped_at else None,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
            "lines": [line.to_dict() for line in self.lines],
        }


class SalesOrderLine(db.Model):
    __tablename__ = "sales_order_lines"
    __table_args__ = (
        db.UniqueConstraint("sales_order_id", "product_id", name="uq_sales_order_lines_order_product"),
        db.CheckConstraint("quantity >= 1", name="ck_sales_order_lines_qty_positive"),
        db.CheckConstraint("unit_price >= 0", name="ck_sales_order_lines_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sales_order_id = db.Column(db.Integer, db.ForeignKey("sales_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(18, 4), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    product = db.relationship("Product")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_sku": self.product.sku if self.product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "line_total": money_str(self.line_total),
            "notes": self.notes,
        }


class PurchaseOrder(db.Model):
    """
    Purchase order header.

    LIFECYCLE (see lifecycle_service.PURCHASE_ORDER_TRANSITIONS):
    CREATED -> APPROVED -> (PARTIALLY_RECEIVED) -> RECEIVED, CANCELLED sink.

    Receiving increments stock (creating stock rows on demand). Cancelling
    never reverses stock already received.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_status", "status"),
        db.Index("ix_purchase_orders_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(50), nullable=False, unique=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="CREATED")
    total_amount = db.Column(db.Numeric(18, 4), nullable=False, default=Decimal("0"))

    notes = db.Column(db.Text, nullable=True)
    expected_date = db.Column(db.Date, nullable=True)

    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "PurchaseOrderLine",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.product_id",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def calculate_total(self) -> Decimal:
        self.total_amount = sum((line.line_total for line in self.lines), Decimal("0"))
        return self.total_amount

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} order_number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "warehouse_id": self.warehouse_id,
            "status": self.status,
            "total_amount": money_str(self.total_amount),
            "notes": self.notes,
            "expected_date": self.expected_date.isoformat() if self.expected_date else None,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
            "lines": [line.to_dict() for line in self.lines],
        }


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_purchase_order_lines_order_product"),
        db.CheckConstraint("quantity >= 1", name="ck_purchase_order_lines_qty_positive"),
        db.CheckConstraint(
            "received_quantity >= 0 AND received_quantity <= quantity",
            name="ck_purchase_order_lines_received_range",
        ),
        db.CheckConstraint("unit_cost >= 0", name="ck_purchase_order_lines_cost_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_cost = db.Column(db.Numeric(18, 4), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    product = db.relationship("Product")

    @property
    def pending_quantity(self) -> int:
        return self.quantity - (self.received_quantity or 0)

    @property
    def line_total(self) -> Decimal:
        return self.unit_cost * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_sku": self.product.sku if self.product else None,
            "quantity": self.quantity,
            "received_quantity": self.received_quantity,
            "pending_quantity": self.pending_quantity,
            "unit_cost": money_str(self.unit_cost),
            "line_total": money_str(self.line_total),
            "notes": self.notes,
        }
