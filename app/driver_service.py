import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from . import models
from .errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("delivery.drivers")

PBKDF2_ITERATIONS = 120_000


def hash_password(password: str) -> str:
    """Salted PBKDF2-SHA256, stored as `salt$hexdigest`"""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, hashed: str) -> bool:
    try:
        salt, expected = hashed.split("$", 1)
    except (AttributeError, ValueError):
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return secrets.compare_digest(digest.hex(), expected)


def get_driver(db: Session, driver_id: str) -> models.Driver:
    driver = db.query(models.Driver).filter(models.Driver.id == driver_id).first()
    if not driver:
        raise NotFoundError(f"Driver {driver_id} not found")
    return driver


def create_driver(db: Session, name: str, phone: str, password: str,
                  current_location: Optional[str] = None) -> models.Driver:
    if not name or not name.strip():
        raise ValidationError("Missing required field: name")
    if not phone or not phone.strip():
        raise ValidationError("Missing required field: phone")
    if not password:
        raise ValidationError("Missing required field: password")

    if db.query(models.Driver).filter(models.Driver.phone == phone).first():
        raise ConflictError("Phone number already registered")

    driver = models.Driver(
        name=name.strip(),
        phone=phone.strip(),
        password_hash=hash_password(password),
        current_location=current_location,
        is_available=True,
        is_active=True,
    )
    db.add(driver)
    db.commit()
    db.refresh(driver)
    logger.info("Driver %s registered", driver.id)
    return driver


# Fields a profile edit may touch; availability belongs to the order ledger
PROFILE_FIELDS = {"name", "phone", "current_location", "is_active"}


def update_driver(db: Session, driver_id: str, changes: dict) -> models.Driver:
    if "is_available" in changes:
        raise ValidationError("is_available is managed by order assignment")
    unknown = set(changes) - PROFILE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    driver = get_driver(db, driver_id)
    if "phone" in changes and changes["phone"] != driver.phone:
        if db.query(models.Driver).filter(models.Driver.phone == changes["phone"]).first():
            raise ConflictError("Phone number already registered")

    for field, value in changes.items():
        setattr(driver, field, value)
    driver.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(driver)
    return driver


def change_password(db: Session, driver_id: str, current_password: str, new_password: str) -> models.Driver:
    driver = get_driver(db, driver_id)
    if not verify_password(current_password or "", driver.password_hash):
        raise ValidationError("Current password is incorrect")
    if not new_password or len(new_password) < 6:
        raise ValidationError("New password must be at least 6 characters")

    driver.password_hash = hash_password(new_password)
    driver.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(driver)
    logger.info("Driver %s changed password", driver.id)
    return driver


def update_location(db: Session, driver_id: str, latitude: float, longitude: float) -> models.Driver:
    driver = get_driver(db, driver_id)
    driver.current_location = f"{latitude},{longitude}"
    driver.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(driver)
    return driver


def driver_stats(db: Session, driver_id: str, since: Optional[datetime] = None) -> dict:
    """Order counts and settled earnings for one driver"""
    query = db.query(
        func.count(models.Order.id),
        func.sum(case((models.Order.status == models.OrderStatus.DELIVERED, 1), else_=0)),
        func.sum(case((models.Order.status == models.OrderStatus.CANCELLED, 1), else_=0)),
    ).filter(models.Order.driver_id == driver_id)
    if since:
        query = query.filter(models.Order.created_at >= since)
    total, completed, cancelled = query.one()

    earnings_query = db.query(func.coalesce(func.sum(models.DriverEarnings.net_amount), 0)).filter(
        models.DriverEarnings.driver_id == driver_id
    )
    if since:
        earnings_query = earnings_query.filter(models.DriverEarnings.created_at >= since)
    earnings = earnings_query.scalar()

    return {
        "total_orders": total or 0,
        "completed_orders": completed or 0,
        "cancelled_orders": cancelled or 0,
        "total_earnings": Decimal(str(earnings or 0)).quantize(Decimal("0.01")),
    }


def today_start() -> datetime:
    now = datetime.utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def driver_dashboard_stats(db: Session, driver_id: str) -> dict:
    overall = driver_stats(db, driver_id)
    today = driver_stats(db, driver_id, since=today_start())
    return {
        **overall,
        "today_orders": today["total_orders"],
        "today_completed": today["completed_orders"],
        "today_earnings": today["total_earnings"],
    }


PERIOD_DAYS = {"week": 7, "month": 30}


def period_start(period: str) -> Optional[datetime]:
    """Lower bound for a stats period: today, week, month or all"""
    if period == "today":
        return today_start()
    if period in PERIOD_DAYS:
        return datetime.utcnow() - timedelta(days=PERIOD_DAYS[period])
    if period == "all":
        return None
    raise ValidationError(f"Invalid period: {period}")
