from typing import Dict, FrozenSet

from .models import OrderStatus


TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.ASSIGNED, OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.ASSIGNED: frozenset({OrderStatus.READY, OrderStatus.PICKED_UP, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.PICKED_UP, OrderStatus.CANCELLED}),
    OrderStatus.PICKED_UP: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Entered only by binding a driver (assign_driver / accept_order)
DRIVER_BOUND_STATUSES = frozenset({OrderStatus.ASSIGNED, OrderStatus.READY})

# Statuses in which a driver is holding the order
ACTIVE_DRIVER_STATUSES = frozenset({OrderStatus.ASSIGNED, OrderStatus.READY, OrderStatus.PICKED_UP})

STATUS_MESSAGES: Dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Order received",
    OrderStatus.CONFIRMED: "Order confirmed by the restaurant",
    OrderStatus.ASSIGNED: "A driver has been assigned to your order",
    OrderStatus.READY: "Driver is on the way to pick up the order",
    OrderStatus.PICKED_UP: "Order picked up and on its way to you",
    OrderStatus.DELIVERED: "Order delivered successfully",
    OrderStatus.CANCELLED: "Order cancelled",
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def status_message(status: OrderStatus) -> str:
    return STATUS_MESSAGES.get(status, f"Order status changed to: {status.value}")


def is_valid_walk(statuses) -> bool:
    """Check that a status history starts at pending and only uses allowed transitions"""
    statuses = list(statuses)
    if not statuses or statuses[0] != OrderStatus.PENDING:
        return False
    return all(can_transition(a, b) for a, b in zip(statuses, statuses[1:]))
