from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..db import get_db
from .. import models, schemas
from .. import driver_service, earnings_service, matching_service, notifier, order_service
from ..errors import NotFoundError
from .auth import Principal, require_role
from .orders import order_with_tracking


router = APIRouter()

current_driver = require_role(models.UserRole.DRIVER)


# ============================================================================
# Dashboard
# ============================================================================

@router.get("/dashboard", response_model=schemas.DriverDashboard)
def get_dashboard(
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    """Stats, claimable orders and the driver's orders in progress"""
    available = matching_service.list_available_orders(db)
    return schemas.DriverDashboard(
        stats=driver_service.driver_dashboard_stats(db, principal.principal_id),
        available_orders=[matching_service.summarize(o) for o in available],
        current_orders=[
            schemas.OrderOut.model_validate(o)
            for o in matching_service.current_orders(db, principal.principal_id)
        ],
    )


@router.get("/stats", response_model=schemas.DriverStats)
def get_stats(
    period: str = "week",
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    since = driver_service.period_start(period)
    return driver_service.driver_stats(db, principal.principal_id, since=since)


# ============================================================================
# Matching
# ============================================================================

@router.get("/orders/available", response_model=List[schemas.OrderSummary])
def list_available_orders(
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    """Confirmed orders without a driver, newest first"""
    orders = matching_service.list_available_orders(db, limit)
    return [matching_service.summarize(o) for o in orders]


@router.post("/orders/{order_id}/accept", response_model=schemas.OrderOut)
def accept_order(
    order_id: str,
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    """Claim an order. 409 if another driver got it first."""
    return matching_service.accept_order(db, principal.principal_id, order_id)


# ============================================================================
# Driver Orders
# ============================================================================

@router.get("/orders", response_model=List[schemas.OrderOut])
def list_my_orders(
    status: Optional[models.OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    """Order history for the driver, newest first"""
    return order_service.list_orders_for_driver(db, principal.principal_id, status, page, limit)


@router.get("/orders/{order_id}", response_model=schemas.OrderWithTracking)
def get_my_order(
    order_id: str,
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    order = order_service.get_order(db, order_id)
    if order.driver_id != principal.principal_id:
        raise NotFoundError(f"Order {order_id} not found")
    return order_with_tracking(order, order_service.get_order_tracking(db, order_id))


@router.put("/orders/{order_id}/status", response_model=schemas.OrderOut)
def update_order_status(
    order_id: str,
    payload: schemas.StatusUpdate,
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    """Advance one of the driver's orders (picked_up, delivered, ...)"""
    location = None
    if payload.latitude is not None and payload.longitude is not None:
        location = order_service.Location(payload.latitude, payload.longitude)
    return order_service.update_status(
        db, order_id, payload.status, principal.actor,
        location=location, message=payload.message,
    )


# ============================================================================
# Profile, Location, Earnings
# ============================================================================

@router.get("/profile", response_model=schemas.DriverOut)
def get_profile(
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    return driver_service.get_driver(db, principal.principal_id)


@router.put("/profile", response_model=schemas.DriverOut)
def update_profile(
    payload: schemas.DriverProfileUpdate,
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    """Update name or location; availability cannot be set here"""
    return driver_service.update_driver(
        db, principal.principal_id, payload.model_dump(exclude_unset=True)
    )


@router.put("/change-password")
def change_password(
    payload: schemas.PasswordChange,
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    driver_service.change_password(
        db, principal.principal_id, payload.current_password, payload.new_password
    )
    return {"message": "Password changed successfully"}


@router.put("/location", response_model=schemas.DriverOut)
def update_location(
    payload: schemas.LocationUpdate,
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    return driver_service.update_location(db, principal.principal_id, payload.latitude, payload.longitude)


@router.get("/earnings", response_model=List[schemas.DriverEarningsOut])
def list_my_earnings(
    status: Optional[models.SettlementStatus] = None,
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    return earnings_service.list_earnings("driver", db, status=status, owner_id=principal.principal_id)


@router.get("/notifications", response_model=List[schemas.NotificationOut])
def list_my_notifications(
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    return notifier.list_for_recipient(db, models.RecipientType.DRIVER, principal.principal_id)


@router.post("/notifications/{notification_id}/read", response_model=schemas.NotificationOut)
def mark_notification_read(
    notification_id: int,
    principal: Principal = Depends(current_driver),
    db: Session = Depends(get_db)
):
    notification = db.query(models.Notification).filter(
        models.Notification.id == notification_id,
        models.Notification.recipient_type == models.RecipientType.DRIVER,
        models.Notification.recipient_id == principal.principal_id,
    ).first()
    if not notification:
        raise NotFoundError(f"Notification {notification_id} not found")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
