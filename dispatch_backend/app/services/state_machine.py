"""
Order and trip status transitions.

These tables are the only place that decides whether a status change is
legal; services call ``ensure_*_transition`` before mutating a row.
"""

from typing import Dict, FrozenSet

from dispatch_backend.app.core.exceptions import InvalidStateError
from dispatch_backend.app.models.order_enums import OrderStatus
from dispatch_backend.app.models.trip_enums import TripStatus


ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ASSIGNED, OrderStatus.CANCELLED}),
    # X -> assigned is a re-dispatch
    OrderStatus.ASSIGNED: frozenset({OrderStatus.ASSIGNED, OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.ASSIGNED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TRIP_TRANSITIONS: Dict[TripStatus, FrozenSet[TripStatus]] = {
    TripStatus.PENDING: frozenset({TripStatus.ASSIGNED, TripStatus.CANCELLED}),
    TripStatus.ASSIGNED: frozenset({TripStatus.ASSIGNED, TripStatus.IN_PROGRESS, TripStatus.CANCELLED}),
    TripStatus.IN_PROGRESS: frozenset({TripStatus.ASSIGNED, TripStatus.DELIVERED, TripStatus.CANCELLED}),
    TripStatus.DELIVERED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}

# Orders in these states can no longer be dispatched
TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
})

TERMINAL_TRIP_STATUSES = frozenset({TripStatus.DELIVERED, TripStatus.CANCELLED})

ACTIVE_TRIP_STATUSES = frozenset({TripStatus.ASSIGNED, TripStatus.IN_PROGRESS})


def can_transition_order(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]


def can_transition_trip(current: TripStatus, target: TripStatus) -> bool:
    return target in TRIP_TRANSITIONS[current]


def ensure_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    """
    Raises:
        InvalidStateError: If the order cannot move from ``current`` to ``target``
    """
    if not can_transition_order(current, target):
        raise InvalidStateError(
            f"Order cannot move from {current.value} to {target.value}",
            details={"current_status": current.value, "requested_status": target.value}
        )


def ensure_trip_transition(current: TripStatus, target: TripStatus) -> None:
    """
    Raises:
        InvalidStateError: If the trip cannot move from ``current`` to ``target``
    """
    if not can_transition_trip(current, target):
        raise InvalidStateError(
            f"Trip cannot move from {current.value} to {target.value}",
            details={"current_status": current.value, "requested_status": target.value}
        )


# Every status must have a row in its table
if set(ORDER_TRANSITIONS) != set(OrderStatus) or set(TRIP_TRANSITIONS) != set(TripStatus):
    raise RuntimeError("status transition table is incomplete")
