# Overview: Service-layer operations for order numbers; generation and collision-safe assignment.

from __future__ import annotations

import logging
import secrets
import string

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateResourceError
from ..extensions import db
from erp.time_utils import epoch_millis

logger = logging.getLogger(__name__)

SALES_ORDER_PREFIX = "SO"
PURCHASE_ORDER_PREFIX = "PO"

ORDER_NUMBER_MAX_LENGTH = 50
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
_SUFFIX_LENGTH = 6


def generate_order_number(prefix: str) -> str:
    """
    Build "PREFIX-<epoch millis>-<6 uppercase alphanumerics>".

    Uniqueness is not guaranteed here; assign_order_number() relies on the
    unique index and retries on collision.
    """
    if not prefix:
        raise ValueError("prefix is required")
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    number = f"{prefix}-{epoch_millis()}-{suffix}".upper()
    if len(number) > ORDER_NUMBER_MAX_LENGTH:
        raise ValueError(f"order number exceeds {ORDER_NUMBER_MAX_LENGTH} characters")
    return number


def _is_order_number_collision(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed: sales_orders.order_number"
    # PostgreSQL: 'duplicate key value violates unique constraint "uq_sales_orders_order_number"'
    message = str(exc.orig).lower()
    return "unique" in message and "order_number" in message


def _max_attempts() -> int:
    try:
        return int(current_app.config.get("ORDER_NUMBER_MAX_ATTEMPTS", 3))
    except RuntimeError:
        return 3


def assign_order_number(order, prefix: str, *, max_attempts: int | None = None) -> str:
    """
    Give `order` a fresh number and flush it inside a SAVEPOINT.

    A unique-index collision rolls back only the savepoint; the outer
    transaction survives and a new number is tried. After max_attempts
    collisions DuplicateResourceError is raised.
    Any other integrity failure (line CHECK, foreign key) is re-raised
    unchanged.
    """
    if max_attempts is None:
        max_attempts = _max_attempts()

    for attempt in range(1, max_attempts + 1):
        order.order_number = generate_order_number(prefix)
        try:
            with db.session.begin_nested():
                db.session.add(order)
                db.session.flush()
        except IntegrityError as exc:
            if not _is_order_number_collision(exc):
                raise
            logger.warning(
                "Order number collision on %s (attempt %s/%s)",
                order.order_number, attempt, max_attempts,
            )
            continue
        return order.order_number

    raise DuplicateResourceError(
        f"Could not allocate a unique {prefix} order number after {max_attempts} attempts",
        details={"prefix": prefix, "attempts": max_attempts},
    )
