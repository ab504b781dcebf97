"""
Matching Service - the driver-facing view of the order ledger

- Available orders: confirmed, no driver yet, newest first
- Accepting an order: atomic claim delegated to order_service.assign_driver
- A driver's current (bound, not yet delivered) orders
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from . import models
from . import order_states as states
from .core.settings import settings
from .earnings_service import provisional_driver_earnings
from .errors import ValidationError
from .order_service import Actor, assign_driver

logger = logging.getLogger("delivery.matching")


def list_available_orders(db: Session, limit: Optional[int] = None) -> List[models.Order]:
    """Orders a driver may claim. Read-only, safe to poll."""
    if limit is None:
        limit = settings.AVAILABLE_ORDERS_LIMIT
    if limit < 1:
        raise ValidationError("limit must be at least 1")
    return db.query(models.Order).filter(
        models.Order.status == models.OrderStatus.CONFIRMED,
        models.Order.driver_id.is_(None),
    ).order_by(models.Order.created_at.desc(), models.Order.id.desc()).limit(limit).all()


def summarize(order: models.Order) -> dict:
    """Compact view used by the available-orders list"""
    return {
        "id": order.id,
        "order_number": order.order_number,
        "restaurant_id": order.restaurant_id,
        "restaurant_name": order.restaurant.name if order.restaurant else None,
        "delivery_address": order.delivery_address,
        "item_count": sum(item.quantity for item in order.items),
        "subtotal": order.subtotal,
        "delivery_fee": order.delivery_fee,
        "total_amount": order.total_amount,
        "estimated_driver_earnings": provisional_driver_earnings(order.delivery_fee),
        "estimated_time": order.estimated_time,
        "created_at": order.created_at,
    }


def accept_order(db: Session, driver_id: str, order_id: str) -> models.Order:
    """Claim an available order for a driver.

    Exactly one of any number of concurrent callers succeeds; the others
    receive ConflictError from the conditional update in assign_driver.
    """
    order = assign_driver(db, order_id, driver_id, Actor.driver(driver_id))
    logger.info("Driver %s accepted order %s", driver_id, order.order_number)
    return order


def current_orders(db: Session, driver_id: str) -> List[models.Order]:
    return db.query(models.Order).filter(
        models.Order.driver_id == driver_id,
        models.Order.status.in_(states.ACTIVE_DRIVER_STATUSES),
    ).order_by(models.Order.created_at.desc()).all()
