"""
Order Ledger - creation and state transitions for delivery orders

Every mutation follows the same shape:
- read the order and validate the request against the transition table
- compare-and-set UPDATE on the row (status and, for claims, driver_id)
- append a tracking entry, emit notification intents, settle if delivered
- commit once; any failure rolls the whole transition back

A zero-row compare-and-set means another request changed the order first;
the caller gets ConflictError and is expected to refresh.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from . import catalog, models, notifier
from . import order_states as states
from .core.settings import settings
from .earnings_service import (
    CENT, provisional_driver_earnings, settle_order, to_money,
)
from .errors import (
    AlreadySettledError, ConflictError, InvalidTransitionError, NotFoundError,
    PermissionDeniedError, ValidationError,
)

logger = logging.getLogger("delivery.orders")


@dataclass(frozen=True)
class Actor:
    """Who is driving a transition; recorded on every tracking entry"""
    kind: models.ActorKind
    id: Optional[str] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(models.ActorKind.SYSTEM)

    @classmethod
    def admin(cls, admin_id: str) -> "Actor":
        return cls(models.ActorKind.ADMIN, admin_id)

    @classmethod
    def driver(cls, driver_id: str) -> "Actor":
        return cls(models.ActorKind.DRIVER, driver_id)


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def as_text(self) -> str:
        return f"{self.latitude},{self.longitude}"


# ============================================================================
# Helpers
# ============================================================================

def generate_order_number() -> str:
    """ORD-<epoch millis>-<random hex>; unique, not strictly ordered"""
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(2).upper()}"


def _unique_order_number(db: Session, attempts: int = 5) -> str:
    for _ in range(attempts):
        number = generate_order_number()
        taken = db.query(models.Order.id).filter(models.Order.order_number == number).first()
        if not taken:
            return number
    raise ConflictError("Could not allocate a unique order number")


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"Missing required field: {field}")
    return str(value).strip()


def coerce_status(value) -> models.OrderStatus:
    if isinstance(value, models.OrderStatus):
        return value
    try:
        return models.OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status: {value}")


def _append_tracking(
    db: Session,
    order: models.Order,
    status: models.OrderStatus,
    actor: Actor,
    message: Optional[str] = None,
    location: Optional[Location] = None,
) -> models.OrderTracking:
    entry = models.OrderTracking(
        order_id=order.id,
        status=status,
        message=message or states.status_message(status),
        latitude=location.latitude if location else None,
        longitude=location.longitude if location else None,
        actor_kind=actor.kind,
        actor_id=actor.id,
        timestamp=datetime.utcnow(),
    )
    db.add(entry)
    return entry


def _compare_and_set(db: Session, order_id: str, expected: models.OrderStatus, values: dict,
                     require_unassigned: bool = False) -> int:
    query = db.query(models.Order).filter(
        models.Order.id == order_id,
        models.Order.status == expected,
    )
    if require_unassigned:
        query = query.filter(models.Order.driver_id.is_(None))
    values = dict(values)
    values.setdefault(models.Order.updated_at, datetime.utcnow())
    return query.update(values, synchronize_session=False)


def _release_driver(db: Session, driver_id: str) -> None:
    """Mark a driver available again once an order leaves their hands"""
    db.query(models.Driver).filter(models.Driver.id == driver_id).update(
        {models.Driver.is_available: True, models.Driver.updated_at: datetime.utcnow()},
        synchronize_session=False,
    )


def _check_driver_owns(order: models.Order, actor: Actor) -> None:
    if actor.kind == models.ActorKind.DRIVER and order.driver_id != actor.id:
        raise PermissionDeniedError("Order is not assigned to this driver")


# ============================================================================
# Queries
# ============================================================================

def get_order(db: Session, order_id: str) -> models.Order:
    order = db.query(models.Order).filter(models.Order.id == order_id).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def get_order_tracking(db: Session, order_id: str) -> List[models.OrderTracking]:
    """Full history of an order, oldest first"""
    get_order(db, order_id)
    return db.query(models.OrderTracking).filter(
        models.OrderTracking.order_id == order_id
    ).order_by(models.OrderTracking.timestamp.asc(), models.OrderTracking.id.asc()).all()


def list_orders(
    db: Session,
    status: Optional[models.OrderStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[models.Order], int]:
    query = db.query(models.Order)
    if status:
        query = query.filter(models.Order.status == status)
    total = query.count()
    orders = query.order_by(models.Order.created_at.desc(), models.Order.id.desc()).offset(
        (max(page, 1) - 1) * limit
    ).limit(limit).all()
    return orders, total


def list_orders_for_driver(
    db: Session,
    driver_id: str,
    status: Optional[models.OrderStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> List[models.Order]:
    query = db.query(models.Order).filter(models.Order.driver_id == driver_id)
    if status:
        query = query.filter(models.Order.status == status)
    return query.order_by(models.Order.created_at.desc(), models.Order.id.desc()).offset(
        (max(page, 1) - 1) * limit
    ).limit(limit).all()


def list_orders_for_customer(
    db: Session,
    customer_phone: str,
    page: int = 1,
    limit: int = 20,
) -> List[models.Order]:
    """A customer's orders, newest first, keyed by the phone given at checkout"""
    customer_phone = _require_text(customer_phone, "customer_phone")
    return db.query(models.Order).filter(
        models.Order.customer_phone == customer_phone
    ).order_by(models.Order.created_at.desc(), models.Order.id.desc()).offset(
        (max(page, 1) - 1) * limit
    ).limit(limit).all()


# ============================================================================
# Submission
# ============================================================================

def submit_order(db: Session, payload, actor: Optional[Actor] = None) -> models.Order:
    """Create a pending order and its first tracking entry.

    `payload` is a `schemas.OrderCreate` (or anything with the same attributes).
    Prices come from the payload when given, otherwise from the catalog.
    """
    actor = actor or Actor.system()

    customer_name = _require_text(payload.customer_name, "customer_name")
    customer_phone = _require_text(payload.customer_phone, "customer_phone")
    delivery_address = _require_text(payload.delivery_address, "delivery_address")
    restaurant_id = _require_text(payload.restaurant_id, "restaurant_id")
    if not payload.items:
        raise ValidationError("Order must contain at least one item")

    try:
        payment_method = models.PaymentMethod(payload.payment_method or models.PaymentMethod.CASH)
    except ValueError:
        raise ValidationError(f"Invalid payment method: {payload.payment_method}")

    restaurant = catalog.get_restaurant(db, restaurant_id)
    if not restaurant:
        raise NotFoundError(f"Restaurant {restaurant_id} not found")
    if not restaurant.is_open:
        raise ValidationError(f"Restaurant {restaurant.name} is not accepting orders")

    lines = []
    subtotal = to_money(0)
    for position, item in enumerate(payload.items):
        menu_item_id = _require_text(item.menu_item_id, f"items[{position}].menu_item_id")
        if item.quantity is None or item.quantity < 1:
            raise ValidationError(f"items[{position}].quantity must be at least 1")

        menu_item = catalog.get_menu_item(db, menu_item_id)
        if not menu_item:
            raise NotFoundError(f"Menu item {menu_item_id} not found")
        if menu_item.restaurant_id != restaurant.id:
            raise ValidationError(f"Menu item {menu_item_id} does not belong to restaurant {restaurant.id}")
        if not menu_item.is_available:
            raise ValidationError(f"Menu item {menu_item.name} is not available")

        unit_price = to_money(item.unit_price if item.unit_price is not None else menu_item.price)
        if unit_price < 0:
            raise ValidationError(f"items[{position}].unit_price must not be negative")

        subtotal += unit_price * item.quantity
        lines.append(models.OrderItem(
            position=position,
            menu_item_id=menu_item.id,
            quantity=item.quantity,
            unit_price=unit_price,
            line_notes=item.line_notes,
        ))

    delivery_fee = to_money(
        payload.delivery_fee if payload.delivery_fee is not None else restaurant.delivery_fee
    )
    if delivery_fee < 0:
        raise ValidationError("delivery_fee must not be negative")
    total = subtotal + delivery_fee

    if payload.subtotal is not None and abs(to_money(payload.subtotal) - subtotal) >= CENT:
        raise ValidationError(f"subtotal {payload.subtotal} does not match items total {subtotal}")
    if payload.total_amount is not None and abs(to_money(payload.total_amount) - total) >= CENT:
        raise ValidationError(f"total_amount {payload.total_amount} does not match {total}")
    if subtotal < to_money(restaurant.minimum_order):
        raise ValidationError(f"Minimum order for {restaurant.name} is {to_money(restaurant.minimum_order)}")

    order = models.Order(
        order_number=_unique_order_number(db),
        customer_name=customer_name,
        customer_phone=customer_phone,
        customer_email=(payload.customer_email or None),
        delivery_address=delivery_address,
        notes=payload.notes,
        payment_method=payment_method,
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        total_amount=total,
        status=models.OrderStatus.PENDING,
        restaurant_id=restaurant.id,
        driver_id=None,
        estimated_time=settings.DEFAULT_ESTIMATED_TIME,
    )
    order.items = lines

    try:
        db.add(order)
        db.flush()
        _append_tracking(db, order, models.OrderStatus.PENDING, actor)
        notifier.notify_admins(db, order, f"New order {order.order_number} for {restaurant.name}")

        if settings.AUTO_CONFIRM_ORDERS:
            order.status = models.OrderStatus.CONFIRMED
            _append_tracking(db, order, models.OrderStatus.CONFIRMED, Actor.system())
            notifier.notify_customer(db, order, states.status_message(models.OrderStatus.CONFIRMED))

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order %s created for restaurant %s (total %s)", order.order_number, restaurant.id, total)
    return order


# ============================================================================
# Transitions
# ============================================================================

def update_status(
    db: Session,
    order_id: str,
    new_status,
    actor: Actor,
    location: Optional[Location] = None,
    message: Optional[str] = None,
) -> models.Order:
    """Advance an order along the transition table.

    Moving to `cancelled` goes through cancel_order; moving into a driver-bound
    status from `confirmed` requires assign_driver / accept_order.
    """
    new_status = coerce_status(new_status)
    order = get_order(db, order_id)

    if new_status == models.OrderStatus.CANCELLED:
        return cancel_order(db, order_id, message, actor)

    _check_driver_owns(order, actor)

    current = order.status
    if not states.can_transition(current, new_status):
        logger.warning("Rejected %s -> %s for order %s", current.value, new_status.value, order.order_number)
        raise InvalidTransitionError(current, new_status)
    if new_status in states.DRIVER_BOUND_STATUSES and order.driver_id is None:
        raise InvalidTransitionError(
            current, new_status, f"Order must be bound to a driver before moving to '{new_status.value}'"
        )

    now = datetime.utcnow()
    values = {models.Order.status: new_status, models.Order.updated_at: now}
    if new_status == models.OrderStatus.DELIVERED:
        values[models.Order.actual_delivery_time] = now

    try:
        if not _compare_and_set(db, order.id, current, values):
            db.rollback()
            logger.warning("Lost status race on order %s (%s -> %s)", order.order_number, current.value, new_status.value)
            raise ConflictError(f"Order {order.order_number} was modified concurrently")

        _append_tracking(db, order, new_status, actor, message, location)

        if location and order.driver_id:
            db.query(models.Driver).filter(models.Driver.id == order.driver_id).update(
                {models.Driver.current_location: location.as_text()}, synchronize_session=False
            )

        if new_status == models.OrderStatus.DELIVERED:
            try:
                settle_order(order, db)
            except AlreadySettledError:
                logger.info("Order %s already settled, skipping", order.order_number)
            _release_driver(db, order.driver_id)

        notifier.notify_customer(db, order, states.status_message(new_status))
        db.commit()
    except ConflictError:
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "Order %s: %s -> %s by %s:%s",
        order.order_number, current.value, new_status.value, actor.kind.value, actor.id,
    )
    return order


def assign_driver(db: Session, order_id: str, driver_id: str, actor: Actor) -> models.Order:
    """Bind a driver to a confirmed, unassigned order.

    Driver self-accept moves the order to `ready` and requires the driver to be
    active and available; admin assignment moves it to `assigned` and may
    override availability. The bind is a single conditional UPDATE
    (driver_id IS NULL AND status = confirmed).
    """
    self_accept = actor.kind == models.ActorKind.DRIVER
    if self_accept and actor.id != driver_id:
        raise PermissionDeniedError("Drivers can only accept orders for themselves")
    target = models.OrderStatus.READY if self_accept else models.OrderStatus.ASSIGNED

    driver = db.query(models.Driver).filter(models.Driver.id == driver_id).first()
    if not driver or not driver.is_active:
        raise NotFoundError(f"Driver {driver_id} not found or inactive")
    if self_accept and not driver.is_available:
        raise NotFoundError(f"Driver {driver_id} is not available")

    order = get_order(db, order_id)
    if order.driver_id is not None:
        raise ConflictError(f"Order {order.order_number} already has a driver")
    if order.status != models.OrderStatus.CONFIRMED:
        raise InvalidTransitionError(order.status, target)

    try:
        claimed = _compare_and_set(
            db, order.id, models.OrderStatus.CONFIRMED,
            {models.Order.driver_id: driver_id, models.Order.status: target},
            require_unassigned=True,
        )
        if not claimed:
            db.rollback()
            logger.warning("Driver %s lost the claim on order %s", driver_id, order.order_number)
            raise ConflictError(f"Order {order.order_number} was already claimed")

        driver_query = db.query(models.Driver).filter(models.Driver.id == driver_id)
        if self_accept:
            driver_query = driver_query.filter(
                models.Driver.is_available.is_(True),
                models.Driver.is_active.is_(True),
            )
        if not driver_query.update(
            {models.Driver.is_available: False, models.Driver.updated_at: datetime.utcnow()},
            synchronize_session=False,
        ):
            db.rollback()
            raise NotFoundError(f"Driver {driver_id} is not available")

        db.query(models.Order).filter(models.Order.id == order.id).update(
            {models.Order.driver_earnings: provisional_driver_earnings(order.delivery_fee)},
            synchronize_session=False,
        )

        if self_accept:
            message = f"Order accepted by driver {driver.name}"
        else:
            message = f"Driver {driver.name} assigned by admin"
            notifier.notify_driver(db, driver_id, order, f"You have been assigned order {order.order_number}")
        _append_tracking(db, order, target, actor, message)
        notifier.notify_customer(db, order, states.status_message(target))
        db.commit()
    except (ConflictError, NotFoundError):
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order %s bound to driver %s (%s)", order.order_number, driver_id, target.value)
    return order


def cancel_order(db: Session, order_id: str, reason: Optional[str], actor: Actor) -> models.Order:
    """Cancel a non-terminal order and release its driver, if any"""
    order = get_order(db, order_id)
    current = order.status
    if states.is_terminal(current):
        raise InvalidTransitionError(current, models.OrderStatus.CANCELLED)
    _check_driver_owns(order, actor)

    reason = (reason or "").strip() or None
    message = states.status_message(models.OrderStatus.CANCELLED)
    if reason:
        message = f"{message}: {reason}"

    try:
        if not _compare_and_set(
            db, order.id, current,
            {models.Order.status: models.OrderStatus.CANCELLED, models.Order.cancel_reason: reason},
        ):
            db.rollback()
            raise ConflictError(f"Order {order.order_number} was modified concurrently")

        _append_tracking(db, order, models.OrderStatus.CANCELLED, actor, message)
        if order.driver_id:
            _release_driver(db, order.driver_id)
            if not (actor.kind == models.ActorKind.DRIVER and actor.id == order.driver_id):
                notifier.notify_driver(
                    db, order.driver_id, order, message, type=models.NotificationType.ORDER_UPDATE
                )
        notifier.notify_customer(db, order, message)
        db.commit()
    except ConflictError:
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order %s cancelled from %s by %s:%s", order.order_number, current.value, actor.kind.value, actor.id)
    return order


CUSTOMER_CANCELLABLE = frozenset({models.OrderStatus.PENDING, models.OrderStatus.CONFIRMED})


def cancel_order_as_customer(db: Session, order_id: str, customer_phone: str, reason: Optional[str]) -> models.Order:
    """Customers identify themselves by the phone on the order"""
    order = get_order(db, order_id)
    if _require_text(customer_phone, "customer_phone") != order.customer_phone:
        raise PermissionDeniedError("Phone number does not match this order")
    if order.status not in CUSTOMER_CANCELLABLE:
        raise InvalidTransitionError(
            order.status, models.OrderStatus.CANCELLED,
            f"Order can no longer be cancelled by the customer (status '{order.status.value}')",
        )
    return cancel_order(db, order_id, reason or "Cancelled by customer", Actor.system())
