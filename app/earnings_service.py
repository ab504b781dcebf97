"""
Earnings Service - settlement of delivered orders

- Pure split of an order into driver / restaurant net and commission
- One RestaurantEarnings and one DriverEarnings row per order (idempotent)
- Payout bookkeeping (pending -> paid)
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from . import models
from .core.settings import settings
from .errors import AlreadySettledError, InvalidTransitionError, NotFoundError, ValidationError

logger = logging.getLogger("delivery.earnings")

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize anything numeric to two decimal places"""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_rate(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class EarningsSplit:
    driver_gross: Decimal
    driver_commission: Decimal
    driver_net: Decimal
    restaurant_gross: Decimal
    restaurant_commission: Decimal
    restaurant_net: Decimal


def compute_earnings(subtotal, delivery_fee, driver_commission_rate, restaurant_commission_rate) -> EarningsSplit:
    """
    Split an order's money between driver, restaurant and platform.

    driver_net = delivery_fee * (1 - driver_rate)
    restaurant_net = subtotal * (1 - restaurant_rate)
    Commission is whatever the platform keeps from each gross amount.
    """
    fee = to_money(delivery_fee)
    subtotal = to_money(subtotal)
    driver_net = to_money(fee * (1 - to_rate(driver_commission_rate)))
    restaurant_net = to_money(subtotal * (1 - to_rate(restaurant_commission_rate)))
    return EarningsSplit(
        driver_gross=fee,
        driver_commission=fee - driver_net,
        driver_net=driver_net,
        restaurant_gross=subtotal,
        restaurant_commission=subtotal - restaurant_net,
        restaurant_net=restaurant_net,
    )


def provisional_driver_earnings(delivery_fee, share_rate=None) -> Decimal:
    """Amount shown to a driver when they take an order"""
    rate = settings.DRIVER_SHARE_RATE if share_rate is None else share_rate
    return to_money(to_money(delivery_fee) * to_rate(rate))


def is_settled(order_id: str, db: Session) -> bool:
    restaurant_row = db.query(models.RestaurantEarnings.id).filter(
        models.RestaurantEarnings.order_id == order_id
    ).first()
    driver_row = db.query(models.DriverEarnings.id).filter(
        models.DriverEarnings.order_id == order_id
    ).first()
    return restaurant_row is not None or driver_row is not None


def settle_order(
    order: models.Order,
    db: Session,
    driver_commission_rate=None,
    restaurant_commission_rate=None,
    auto_commit: bool = False,
) -> Tuple[models.RestaurantEarnings, models.DriverEarnings]:
    """
    Write the earnings rows for a delivered order.

    Args:
        order: Order that has just been delivered
        db: Database session (rows join the caller's transaction)
        driver_commission_rate / restaurant_commission_rate: override settings
        auto_commit: Commit within this function (default False)

    Raises AlreadySettledError if either row exists for the order.
    """
    if is_settled(order.id, db):
        raise AlreadySettledError(f"Order {order.order_number} is already settled")

    if not order.driver_id:
        raise ValidationError("Cannot settle an order without a driver")

    split = compute_earnings(
        order.subtotal,
        order.delivery_fee,
        settings.DRIVER_COMMISSION_RATE if driver_commission_rate is None else driver_commission_rate,
        settings.RESTAURANT_COMMISSION_RATE if restaurant_commission_rate is None else restaurant_commission_rate,
    )

    restaurant_row = models.RestaurantEarnings(
        restaurant_id=order.restaurant_id,
        order_id=order.id,
        amount=split.restaurant_gross,
        commission=split.restaurant_commission,
        net_amount=split.restaurant_net,
        status=models.SettlementStatus.PENDING,
    )
    driver_row = models.DriverEarnings(
        driver_id=order.driver_id,
        order_id=order.id,
        amount=split.driver_gross,
        commission=split.driver_commission,
        net_amount=split.driver_net,
        status=models.SettlementStatus.PENDING,
    )
    db.add(restaurant_row)
    db.add(driver_row)

    order.driver_earnings = split.driver_net
    db.query(models.Driver).filter(models.Driver.id == order.driver_id).update(
        {models.Driver.earnings: models.Driver.earnings + split.driver_net},
        synchronize_session=False,
    )

    # flush so the unique order_id constraint fires inside this transaction
    db.flush()

    logger.info(
        "Settled order %s: driver net %s, restaurant net %s",
        order.order_number, split.driver_net, split.restaurant_net,
    )

    if auto_commit:
        db.commit()

    return restaurant_row, driver_row


EARNINGS_MODELS = {
    "restaurant": models.RestaurantEarnings,
    "driver": models.DriverEarnings,
}


def list_earnings(kind: str, db: Session, status: Optional[models.SettlementStatus] = None,
                  owner_id: Optional[str] = None, limit: int = 100):
    model = EARNINGS_MODELS.get(kind)
    if model is None:
        raise ValidationError(f"Unknown earnings kind: {kind}")
    query = db.query(model)
    if status:
        query = query.filter(model.status == status)
    if owner_id:
        owner_column = model.driver_id if model is models.DriverEarnings else model.restaurant_id
        query = query.filter(owner_column == owner_id)
    return query.order_by(model.created_at.desc(), model.id.desc()).limit(limit).all()


def mark_paid(kind: str, earnings_id: int, db: Session):
    """Move a pending earnings row to paid"""
    model = EARNINGS_MODELS.get(kind)
    if model is None:
        raise ValidationError(f"Unknown earnings kind: {kind}")

    row = db.query(model).filter(model.id == earnings_id).first()
    if not row:
        raise NotFoundError(f"{kind.capitalize()} earnings {earnings_id} not found")

    updated = db.query(model).filter(
        model.id == earnings_id,
        model.status == models.SettlementStatus.PENDING,
    ).update(
        {model.status: models.SettlementStatus.PAID, model.paid_at: datetime.utcnow()},
        synchronize_session=False,
    )
    if not updated:
        db.rollback()
        raise InvalidTransitionError(row.status, models.SettlementStatus.PAID)

    db.commit()
    db.refresh(row)
    logger.info("Marked %s earnings %s as paid", kind, earnings_id)
    return row
