"""
Pytest fixtures for ERP backend tests.

Provides test database setup, catalogue fixtures, and test client.
"""

from decimal import Decimal

import pytest

from erp import create_app
from erp.extensions import db
from erp.models import Customer, Product, StockRow, Supplier, Warehouse


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def warehouse(db_session):
    wh = Warehouse(code="WH-1", name="Main Warehouse", location="Dock A")
    db_session.add(wh)
    db_session.commit()
    return wh


@pytest.fixture(scope='function')
def second_warehouse(db_session):
    wh = Warehouse(code="WH-2", name="Overflow Warehouse")
    db_session.add(wh)
    db_session.commit()
    return wh


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(name="Acme Retail", email="orders@acme.test")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def supplier(db_session):
    s = Supplier(name="Widget Supply Co", email="sales@widgets.test", lead_time_days=3)
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def product(db_session):
    p = Product(
        sku="WID-001",
        name="Widget",
        unit_price=Decimal("10.0000"),
        cost_price=Decimal("4.0000"),
        reorder_level=5,
        reorder_quantity=20,
    )
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def second_product(db_session):
    p = Product(
        sku="GAD-002",
        name="Gadget",
        unit_price=Decimal("25.5000"),
        cost_price=Decimal("12.0000"),
        reorder_level=0,
    )
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def make_stock(db_session):
    """Factory: seed a stock row directly (bypasses the audit log)."""
    def _make(product, warehouse, on_hand, reserved=0):
        row = StockRow(
            product_id=product.id,
            warehouse_id=warehouse.id,
            on_hand=on_hand,
            reserved=reserved,
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _make
