"""Broker status strings -> canonical order states, and the forward-only transition graph."""

from __future__ import annotations
from typing import Dict, FrozenSet, Optional

from algo_engine.core.types import OrderStatus

ORDER_STATUS_MAP: Dict[str, OrderStatus] = {
    "new": OrderStatus.SUBMITTED,
    "accepted": OrderStatus.SUBMITTED,
    "accepted_for_bidding": OrderStatus.SUBMITTED,
    "pending_new": OrderStatus.PENDING,
    "held": OrderStatus.PENDING,
    "stopped": OrderStatus.PENDING,
    "suspended": OrderStatus.PENDING,
    "calculated": OrderStatus.PENDING,
    "pending_cancel": OrderStatus.PENDING,
    "pending_replace": OrderStatus.PENDING,
    "partially_filled": OrderStatus.PARTIALLY_FILLED,
    "filled": OrderStatus.FILLED,
    "done_for_day": OrderStatus.FILLED,
    "canceled": OrderStatus.CANCELLED,
    "cancelled": OrderStatus.CANCELLED,
    "expired": OrderStatus.CANCELLED,
    "replaced": OrderStatus.CANCELLED,
    "rejected": OrderStatus.REJECTED,
}

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.SUBMITTED,
        OrderStatus.PARTIALLY_FILLED,
        OrderStatus.FILLED,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
    }),
    OrderStatus.SUBMITTED: frozenset({
        OrderStatus.PARTIALLY_FILLED,
        OrderStatus.FILLED,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
    }),
    OrderStatus.PARTIALLY_FILLED: frozenset({
        OrderStatus.PARTIALLY_FILLED,
        OrderStatus.FILLED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.FILLED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}


def map_order_status(raw: Optional[str]) -> OrderStatus:
    """Total mapping: unknown or empty strings are PENDING."""
    if not raw:
        return OrderStatus.PENDING
    return ORDER_STATUS_MAP.get(raw.strip().lower(), OrderStatus.PENDING)


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Forward moves only. PARTIALLY_FILLED -> PARTIALLY_FILLED is allowed for additional fills."""
    return new in ALLOWED_TRANSITIONS[current]
