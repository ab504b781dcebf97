"""Startup data: the first admin account and an optional demo catalog"""
import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from . import models
from .core.settings import settings
from .driver_service import hash_password

logger = logging.getLogger("delivery.seed")


def ensure_first_admin(db: Session) -> None:
    if not settings.FIRST_ADMIN_EMAIL or not settings.FIRST_ADMIN_PASSWORD:
        return
    exists = db.query(models.AdminUser).filter(
        models.AdminUser.email == settings.FIRST_ADMIN_EMAIL
    ).first()
    if exists:
        return
    db.add(models.AdminUser(
        name="Administrator",
        email=settings.FIRST_ADMIN_EMAIL,
        password_hash=hash_password(settings.FIRST_ADMIN_PASSWORD),
    ))
    db.commit()
    logger.info("Created admin account %s", settings.FIRST_ADMIN_EMAIL)


def seed_demo_data(db: Session) -> None:
    """One open restaurant with a small menu and one driver"""
    if db.query(models.Restaurant).count():
        return

    restaurant = models.Restaurant(
        name="Demo Kitchen",
        is_open=True,
        delivery_fee=Decimal("5.00"),
        minimum_order=Decimal("10.00"),
    )
    db.add(restaurant)
    db.flush()

    for name, price in (("Burger", "12.50"), ("Fries", "4.00"), ("Lemonade", "3.25")):
        db.add(models.MenuItem(restaurant_id=restaurant.id, name=name, price=Decimal(price)))

    db.add(models.Driver(
        name="Demo Driver",
        phone="0100000000",
        password_hash=hash_password("driver123"),
    ))
    db.commit()
    logger.info("Seeded demo restaurant %s", restaurant.id)
