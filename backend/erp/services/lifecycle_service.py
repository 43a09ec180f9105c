# Overview: Service-layer operations for lifecycle; order state machines and transition checks.

"""
Order Lifecycle Service

================================================================================
PURPOSE: Single source of truth for legal order status transitions
================================================================================

SALES ORDERS:
    CREATED -> CONFIRMED -> (PICKING) -> SHIPPED -> DELIVERED
    CREATED / CONFIRMED / PICKING -> CANCELLED

    CONFIRMED: stock reserved for every line
    SHIPPED:   stock deducted, reservation discharged
    DELIVERED, CANCELLED: terminal

PURCHASE ORDERS:
    CREATED -> APPROVED -> (PARTIALLY_RECEIVED)* -> RECEIVED
    CREATED / APPROVED / PARTIALLY_RECEIVED -> CANCELLED

    RECEIVED, CANCELLED: terminal

RULES:
1. Any transition not listed in the tables below is rejected.
2. Terminal states have no outgoing transitions.
3. The engines check the transition AFTER locking the order row, so the
   check and the status write happen under the same lock.
================================================================================
"""

from __future__ import annotations

from ..errors import InvalidOrderStateError

# Sales order statuses
SO_CREATED = "CREATED"
SO_CONFIRMED = "CONFIRMED"
SO_PICKING = "PICKING"
SO_SHIPPED = "SHIPPED"
SO_DELIVERED = "DELIVERED"
SO_CANCELLED = "CANCELLED"

SALES_ORDER_STATUSES = {SO_CREATED, SO_CONFIRMED, SO_PICKING, SO_SHIPPED, SO_DELIVERED, SO_CANCELLED}

SALES_ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    SO_CREATED: frozenset({SO_CONFIRMED, SO_CANCELLED}),
    SO_CONFIRMED: frozenset({SO_PICKING, SO_SHIPPED, SO_CANCELLED}),
    SO_PICKING: frozenset({SO_SHIPPED, SO_CANCELLED}),
    SO_SHIPPED: frozenset({SO_DELIVERED}),
    SO_DELIVERED: frozenset(),
    SO_CANCELLED: frozenset(),
}

# Purchase order statuses
PO_CREATED = "CREATED"
PO_APPROVED = "APPROVED"
PO_PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
PO_RECEIVED = "RECEIVED"
PO_CANCELLED = "CANCELLED"

PURCHASE_ORDER_STATUSES = {PO_CREATED, PO_APPROVED, PO_PARTIALLY_RECEIVED, PO_RECEIVED, PO_CANCELLED}

PURCHASE_ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    PO_CREATED: frozenset({PO_APPROVED, PO_CANCELLED}),
    PO_APPROVED: frozenset({PO_PARTIALLY_RECEIVED, PO_RECEIVED, PO_CANCELLED}),
    PO_PARTIALLY_RECEIVED: frozenset({PO_PARTIALLY_RECEIVED, PO_RECEIVED, PO_CANCELLED}),
    PO_RECEIVED: frozenset(),
    PO_CANCELLED: frozenset(),
}


def can_transition(transitions: dict[str, frozenset[str]], current: str, target: str) -> bool:
    return target in transitions.get(current, frozenset())


def is_terminal(transitions: dict[str, frozenset[str]], status: str) -> bool:
    return not transitions.get(status)


def require_transition(
    transitions: dict[str, frozenset[str]],
    current: str,
    target: str,
    *,
    order_number: str | None = None,
) -> None:
    """
    Raise InvalidOrderStateError unless current -> target is legal.

    The message names the order and both states so the caller can surface
    it unchanged.
    """
    if can_transition(transitions, current, target):
        return
    label = f"Order {order_number}" if order_number else "Order"
    raise InvalidOrderStateError(
        f"{label} cannot move from {current} to {target}",
        details={"order_number": order_number, "current_status": current, "target_status": target},
    )
