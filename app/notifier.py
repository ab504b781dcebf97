"""Notification intents.

The ledger records who should hear about an order event; pushing the message
over SMS, push or e-mail is somebody else's job. Rows are added to the caller's
session so they commit (or roll back) with the transition that produced them.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger("delivery.notifier")


def notify(
    db: Session,
    recipient_type: models.RecipientType,
    recipient_id: Optional[str],
    type: models.NotificationType,
    message: str,
    related_order_id: Optional[str] = None,
    title: Optional[str] = None,
) -> models.Notification:
    notification = models.Notification(
        recipient_type=recipient_type,
        recipient_id=recipient_id,
        type=type,
        title=title or type.value.replace("_", " ").capitalize(),
        message=message,
        order_id=related_order_id,
    )
    db.add(notification)
    logger.info(
        "notify %s:%s type=%s order=%s",
        recipient_type.value, recipient_id or "*", type.value, related_order_id,
    )
    return notification


def notify_customer(db: Session, order: models.Order, message: str) -> models.Notification:
    return notify(
        db,
        models.RecipientType.CUSTOMER,
        order.customer_phone,
        models.NotificationType.ORDER_UPDATE,
        message,
        related_order_id=order.id,
        title=f"Order {order.order_number}",
    )


def notify_driver(db: Session, driver_id: str, order: models.Order, message: str,
                  type: models.NotificationType = models.NotificationType.ASSIGNMENT) -> models.Notification:
    return notify(
        db,
        models.RecipientType.DRIVER,
        driver_id,
        type,
        message,
        related_order_id=order.id,
        title=f"Order {order.order_number}",
    )


def notify_admins(db: Session, order: models.Order, message: str) -> models.Notification:
    return notify(
        db,
        models.RecipientType.ADMIN,
        None,
        models.NotificationType.SYSTEM,
        message,
        related_order_id=order.id,
        title="New order",
    )


def list_for_recipient(db: Session, recipient_type: models.RecipientType,
                       recipient_id: Optional[str] = None, limit: int = 50):
    query = db.query(models.Notification).filter(
        models.Notification.recipient_type == recipient_type
    )
    if recipient_id is not None:
        query = query.filter(
            (models.Notification.recipient_id == recipient_id)
            | (models.Notification.recipient_id.is_(None))
        )
    return query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).limit(limit).all()
