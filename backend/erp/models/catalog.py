from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from erp.time_utils import to_utc_z

PRODUCT_STATUS_ACTIVE = "ACTIVE"
PRODUCT_STATUS_INACTIVE = "INACTIVE"
PRODUCT_STATUSES = {PRODUCT_STATUS_ACTIVE, PRODUCT_STATUS_INACTIVE}

# Warehouses, customers and suppliers share the same two-state status
PARTY_STATUS_ACTIVE = "ACTIVE"
PARTY_STATUS_INACTIVE = "INACTIVE"


def money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return format(value, "f")


class Product(db.Model):
    """
    Product master data.

    SKU DESIGN DECISION:
    Product.sku is globally unique and becomes immutable once any sales or
    purchase order line references the product (enforced in
    products_service.update_product).

    CONCURRENCY:
    version_id is the optimistic lock column. Product edits do not take the
    pessimistic stock lock, so a stale write raises StaleDataError which the
    service surfaces as CONCURRENT_MODIFICATION.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("reorder_level >= 0", name="ck_products_reorder_level_nonneg"),
        db.CheckConstraint("reorder_quantity >= 0", name="ck_products_reorder_qty_nonneg"),
        db.Index("ix_products_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(100), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Fixed-point, 4 fractional digits
    unit_price = db.Column(db.Numeric(18, 4), nullable=False, default=Decimal("0"))
    cost_price = db.Column(db.Numeric(18, 4), nullable=False, default=Decimal("0"))

    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    reorder_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_of_measure = db.Column(db.String(50), nullable=False, default="EACH")

    status = db.Column(db.String(20), nullable=False, default=PRODUCT_STATUS_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == PRODUCT_STATUS_ACTIVE

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "unit_price": money_str(self.unit_price),
            "cost_price": money_str(self.cost_price),
            "reorder_level": self.reorder_level,
            "reorder_quantity": self.reorder_quantity,
            "unit_of_measure": self.unit_of_measure,
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Warehouse(db.Model):
    __tablename__ = "warehouses"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=PARTY_STATUS_ACTIVE)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "location": self.location,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    status = db.Column(db.String(20), nullable=False, default=PARTY_STATUS_ACTIVE)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    lead_time_days = db.Column(db.Integer, nullable=False, default=7)
    status = db.Column(db.String(20), nullable=False, default=PARTY_STATUS_ACTIVE)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "lead_time_days": self.lead_time_days,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
