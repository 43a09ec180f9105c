# Overview: Service-layer operations for the stock audit log; append-only writes and review reads.

from __future__ import annotations

import math
from datetime import datetime

from flask import g, has_request_context
from sqlalchemy import func

from ..extensions import db
from ..models import AuditEntry
from ..models.inventory import MOVEMENT_TYPES, ON_HAND_MOVEMENT_TYPES, REFERENCE_TYPES
"""
Stock Audit Log Invariants (authoritative)

- Append-only: this module exposes no update or delete.
- Entries are written inside the same DB transaction as the counter change
  they record; append never commits.
- quantity_delta is never zero.
- For on-hand movements: on_hand_after = on_hand_before + quantity_delta.
- RESERVATION entries carry on_hand_before == on_hand_after; their delta is
  the change in reserved (negative) and they are excluded from on-hand
  reconstruction.
- created_at is system time (DB default).
"""

SYSTEM_ACTOR = "SYSTEM"
MAX_PER_PAGE = 200


def _created_at_cmp(value):
    """
    Comparable forms of AuditEntry.created_at and a datetime bound.

    SQLite stores the CURRENT_TIMESTAMP default as "YYYY-MM-DD HH:MM:SS" but
    binds datetimes with a microsecond suffix, and compares them as text.
    Both sides go through datetime() there so an entry stamped exactly at a
    bound stays inside the window.
    """
    if db.engine.dialect.name == "sqlite":
        return func.datetime(AuditEntry.created_at), func.datetime(value)
    return AuditEntry.created_at, value


def _current_actor() -> str:
    if has_request_context():
        name = getattr(g, "current_user_name", None)
        if name:
            return name
    return SYSTEM_ACTOR


def append_audit_entry(
    *,
    product_id: int,
    warehouse_id: int,
    movement_type: str,
    quantity_delta: int,
    on_hand_before: int,
    on_hand_after: int,
    reference_type: str,
    reference_id: int | None = None,
    notes: str | None = None,
    actor: str | None = None,
) -> AuditEntry:
    """
    Append one audit entry to the current transaction.

    Raises ValueError on malformed entries; the caller's transaction must
    then be rolled back (run_with_retry does this).
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"unknown movement_type {movement_type!r}")
    if reference_type not in REFERENCE_TYPES:
        raise ValueError(f"unknown reference_type {reference_type!r}")
    if quantity_delta == 0:
        raise ValueError("audit entries with zero quantity_delta are not allowed")

    if movement_type in ON_HAND_MOVEMENT_TYPES:
        if on_hand_after != on_hand_before + quantity_delta:
            raise ValueError(
                f"audit entry does not balance: {on_hand_before} + {quantity_delta} != {on_hand_after}"
            )
    elif on_hand_after != on_hand_before:
        raise ValueError("reservation entries must not change on_hand")

    entry = AuditEntry(
        product_id=product_id,
        warehouse_id=warehouse_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        on_hand_before=on_hand_before,
        on_hand_after=on_hand_after,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=actor or _current_actor(),
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_by_product(
    product_id: int,
    *,
    warehouse_id: int | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    """
    Newest-first audit entries for one product.

    The time window is inclusive on both ends. per_page is clamped to
    [1, MAX_PER_PAGE]; page is 1-indexed.
    """
    page = max(1, page)
    per_page = min(max(1, per_page), MAX_PER_PAGE)

    q = db.session.query(AuditEntry).filter(AuditEntry.product_id == product_id)
    if warehouse_id is not None:
        q = q.filter(AuditEntry.warehouse_id == warehouse_id)
    if since is not None:
        column, bound = _created_at_cmp(since)
        q = q.filter(column >= bound)
    if until is not None:
        column, bound = _created_at_cmp(until)
        q = q.filter(column <= bound)

    total = q.count()
    items = (
        q.order_by(AuditEntry.created_at.desc(), AuditEntry.id.desc())
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


def list_by_reference(reference_type: str, reference_id: int) -> list[AuditEntry]:
    """Stock trail of one business document, oldest first."""
    return (
        db.session.query(AuditEntry)
        .filter_by(reference_type=reference_type, reference_id=reference_id)
        .order_by(AuditEntry.id.asc())
        .all()
    )


def top_movers_since(movement_type: str, since: datetime, k: int = 10) -> list[tuple[int, int]]:
    """
    Products ranked by moved volume, SUM(ABS(quantity_delta)), for one
    movement type at or after `since`.
    """
    volume = func.sum(func.abs(AuditEntry.quantity_delta)).label("volume")
    column, bound = _created_at_cmp(since)
    rows = (
        db.session.query(AuditEntry.product_id, volume)
        .filter(
            AuditEntry.movement_type == movement_type,
            column >= bound,
        )
        .group_by(AuditEntry.product_id)
        .order_by(volume.desc(), AuditEntry.product_id.asc())
        .limit(max(0, k))
        .all()
    )
    return [(int(product_id), int(total or 0)) for product_id, total in rows]


def reconstruct_on_hand(product_id: int, warehouse_id: int) -> int:
    """Replay on-hand from the log: SUM(quantity_delta) over on-hand movements."""
    total = (
        db.session.query(func.coalesce(func.sum(AuditEntry.quantity_delta), 0))
        .filter(
            AuditEntry.product_id == product_id,
            AuditEntry.warehouse_id == warehouse_id,
            AuditEntry.movement_type.in_(sorted(ON_HAND_MOVEMENT_TYPES)),
        )
        .scalar()
    )
    return int(total or 0)
