# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/erp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock inspection/repair:
# - python -m flask stock list [--warehouse-id 1]
#   List stock rows with on-hand, reserved and available.
# - python -m flask stock low
#   List ACTIVE products at or below their reorder level.
# - python -m flask stock adjust --product-id 1 --warehouse-id 1 --delta -3 --notes "Cycle count"
#   Manual adjustment (writes an ADJUSTMENT audit entry).
# - python -m flask stock movers --type SALE --days 30 --limit 10
#   Top products by moved volume.
# - python -m flask stock verify
#   Check counter invariants and replay on-hand from the audit log; exits 1 on drift.

import sys
from datetime import timedelta

import click
from flask.cli import with_appcontext

from .errors import ERPError
from .extensions import db
from .models import Product, StockRow
from .models.inventory import MOVEMENT_TYPES
from .services import audit_service, stock_service
from .time_utils import utcnow


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing data is left untouched."""
    db.create_all()
    click.echo("PASS Schema is up to date.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('stock')
def stock_group():
    """Stock inspection and repair commands."""


def _echo_rows(rows):
    if not rows:
        click.echo("No stock rows.")
        return
    click.echo(f"{'SKU':<20} {'WH':>4} {'ON_HAND':>8} {'RESERVED':>9} {'AVAIL':>7}  STATUS")
    for row in rows:
        click.echo(
            f"{row.product.sku:<20} {row.warehouse_id:>4} {row.on_hand:>8} "
            f"{row.reserved:>9} {row.available:>7}  {stock_service.stock_status(row)}"
        )


@stock_group.command('list')
@click.option('--product-id', type=int, help='Filter by product ID')
@click.option('--warehouse-id', type=int, help='Filter by warehouse ID')
@with_appcontext
def list_stock(product_id, warehouse_id):
    """List stock rows."""
    _echo_rows(stock_service.list_stock(product_id=product_id, warehouse_id=warehouse_id))


@stock_group.command('low')
@with_appcontext
def list_low_stock():
    """List rows at or below the product reorder level."""
    _echo_rows(stock_service.list_low_stock())


@stock_group.command('adjust')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--warehouse-id', type=int, required=True, help='Warehouse ID')
@click.option('--delta', type=int, required=True, help='Signed quantity change')
@click.option('--notes', default=None, help='Reason for the adjustment')
@with_appcontext
def adjust_stock(product_id, warehouse_id, delta, notes):
    """Manual stock adjustment."""
    try:
        row = stock_service.adjust_stock(
            product_id=product_id,
            warehouse_id=warehouse_id,
            delta=delta,
            notes=notes,
            actor="CLI",
        )
    except ERPError as e:
        click.echo(f"FAIL {e.code}: {e.message}", err=True)
        sys.exit(1)

    click.echo(f"PASS on_hand={row.on_hand} reserved={row.reserved} available={row.available}")


@stock_group.command('movers')
@click.option('--type', 'movement_type', type=click.Choice(sorted(MOVEMENT_TYPES)), default='SALE')
@click.option('--days', type=int, default=30, help='Look-back window in days')
@click.option('--limit', type=int, default=10, help='Number of products to show')
@with_appcontext
def top_movers(movement_type, days, limit):
    """Top products by moved volume."""
    since = utcnow() - timedelta(days=days)
    ranked = audit_service.top_movers_since(movement_type, since, k=limit)
    if not ranked:
        click.echo("No movements in window.")
        return
    for product_id, volume in ranked:
        product = db.session.get(Product, product_id)
        sku = product.sku if product else f"#{product_id}"
        click.echo(f"{sku:<20} {volume:>8}")


@stock_group.command('verify')
@with_appcontext
def verify_stock():
    """
    Verify stock integrity.

    For every stock row:
    - 0 <= reserved <= on_hand
    - on_hand equals the sum of its on-hand audit deltas
    """
    failures = 0
    rows = db.session.query(StockRow).order_by(StockRow.product_id, StockRow.warehouse_id).all()

    for row in rows:
        label = f"product {row.product_id} / warehouse {row.warehouse_id}"
        if row.on_hand < 0 or row.reserved < 0 or row.reserved > row.on_hand:
            failures += 1
            click.echo(f"FAIL {label}: on_hand={row.on_hand} reserved={row.reserved}")
            continue

        replayed = audit_service.reconstruct_on_hand(row.product_id, row.warehouse_id)
        if replayed != row.on_hand:
            failures += 1
            click.echo(f"FAIL {label}: on_hand={row.on_hand} but audit log replays to {replayed}")

    if failures:
        click.echo(f"FAIL {failures} of {len(rows)} stock rows drifted.")
        sys.exit(1)

    click.echo(f"PASS {len(rows)} stock rows verified.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
