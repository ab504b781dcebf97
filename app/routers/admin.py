from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List, Optional
from decimal import Decimal
import math

from ..db import get_db
from .. import models, schemas
from .. import driver_service, earnings_service, notifier, order_service
from .auth import Principal, require_role
from .orders import order_with_tracking


router = APIRouter()

current_admin = require_role(models.UserRole.ADMIN)


# ============================================================================
# Admin Order Management
# ============================================================================

@router.get("/orders", response_model=schemas.OrderList)
def list_orders(
    status: Optional[models.OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    """List orders, newest first, with optional status filter"""
    orders, total = order_service.list_orders(db, status, page, limit)
    return schemas.OrderList(
        orders=[schemas.OrderOut.model_validate(o) for o in orders],
        pagination=schemas.Pagination(
            page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0
        ),
    )


@router.get("/orders/{order_id}", response_model=schemas.OrderWithTracking)
def get_order(
    order_id: str,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    order = order_service.get_order(db, order_id)
    return order_with_tracking(order, order_service.get_order_tracking(db, order_id))


@router.put("/orders/{order_id}/status", response_model=schemas.OrderOut)
def update_order_status(
    order_id: str,
    payload: schemas.StatusUpdate,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    """Move an order along its lifecycle (e.g. confirm a pending order)"""
    return order_service.update_status(db, order_id, payload.status, principal.actor, message=payload.message)


@router.post("/orders/{order_id}/assign", response_model=schemas.OrderOut)
def assign_driver(
    order_id: str,
    payload: schemas.AssignDriverRequest,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    """Bind a driver chosen by the admin; overrides the driver's availability"""
    return order_service.assign_driver(db, order_id, payload.driver_id, principal.actor)


@router.post("/orders/{order_id}/cancel", response_model=schemas.OrderOut)
def cancel_order(
    order_id: str,
    payload: schemas.CancelRequest,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    return order_service.cancel_order(db, order_id, payload.reason, principal.actor)


# ============================================================================
# Admin Driver Management
# ============================================================================

@router.get("/drivers", response_model=List[schemas.DriverOut])
def list_drivers(
    available: Optional[bool] = None,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    query = db.query(models.Driver)
    if available is not None:
        query = query.filter(models.Driver.is_available.is_(available))
    return query.order_by(models.Driver.created_at.desc()).all()


@router.post("/drivers", response_model=schemas.DriverOut, status_code=status.HTTP_201_CREATED)
def create_driver(
    payload: schemas.DriverCreate,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    return driver_service.create_driver(
        db, payload.name, payload.phone, payload.password, payload.current_location
    )


@router.put("/drivers/{driver_id}", response_model=schemas.DriverOut)
def update_driver(
    driver_id: str,
    payload: schemas.DriverUpdate,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    """Edit driver details; availability is never written here"""
    return driver_service.update_driver(db, driver_id, payload.model_dump(exclude_unset=True))


@router.get("/drivers/{driver_id}/stats", response_model=schemas.DriverStats)
def get_driver_stats(
    driver_id: str,
    period: str = "all",
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    driver_service.get_driver(db, driver_id)
    return driver_service.driver_stats(db, driver_id, since=driver_service.period_start(period))


# ============================================================================
# Admin Earnings
# ============================================================================

@router.get("/earnings/restaurants", response_model=List[schemas.RestaurantEarningsOut])
def list_restaurant_earnings(
    status: Optional[models.SettlementStatus] = None,
    restaurant_id: Optional[str] = None,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    return earnings_service.list_earnings("restaurant", db, status=status, owner_id=restaurant_id)


@router.get("/earnings/drivers", response_model=List[schemas.DriverEarningsOut])
def list_driver_earnings(
    status: Optional[models.SettlementStatus] = None,
    driver_id: Optional[str] = None,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    return earnings_service.list_earnings("driver", db, status=status, owner_id=driver_id)


@router.post("/earnings/restaurants/{earnings_id}/pay", response_model=schemas.RestaurantEarningsOut)
def pay_restaurant_earnings(
    earnings_id: int,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    return earnings_service.mark_paid("restaurant", earnings_id, db)


@router.post("/earnings/drivers/{earnings_id}/pay", response_model=schemas.DriverEarningsOut)
def pay_driver_earnings(
    earnings_id: int,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    return earnings_service.mark_paid("driver", earnings_id, db)


# ============================================================================
# Admin Notifications
# ============================================================================

@router.get("/notifications", response_model=List[schemas.NotificationOut])
def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    return notifier.list_for_recipient(db, models.RecipientType.ADMIN, principal.principal_id, limit)


@router.post("/notifications", response_model=schemas.NotificationOut, status_code=status.HTTP_201_CREATED)
def create_notification(
    payload: schemas.NotificationCreate,
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    """Manual notification (promotion, system message)"""
    notification = notifier.notify(
        db,
        payload.recipient_type,
        payload.recipient_id,
        payload.type,
        payload.message,
        related_order_id=payload.order_id,
        title=payload.title,
    )
    db.commit()
    db.refresh(notification)
    return notification


# ============================================================================
# Admin Statistics
# ============================================================================

@router.get("/stats", response_model=schemas.SystemStats)
def get_system_stats(
    principal: Principal = Depends(current_admin),
    db: Session = Depends(get_db)
):
    """Get system-wide statistics"""
    total_orders = db.query(models.Order).count()
    pending_orders = db.query(models.Order).filter(
        models.Order.status == models.OrderStatus.PENDING
    ).count()
    today_orders = db.query(models.Order).filter(
        models.Order.created_at >= driver_service.today_start()
    ).count()

    total_drivers = db.query(models.Driver).count()
    available_drivers = db.query(models.Driver).filter(
        models.Driver.is_active.is_(True),
        models.Driver.is_available.is_(True),
    ).count()

    revenue = db.query(func.coalesce(func.sum(models.Order.total_amount), 0)).filter(
        models.Order.status == models.OrderStatus.DELIVERED
    ).scalar()

    return schemas.SystemStats(
        total_orders=total_orders,
        pending_orders=pending_orders,
        today_orders=today_orders,
        total_drivers=total_drivers,
        available_drivers=available_drivers,
        delivered_revenue=earnings_service.to_money(revenue or Decimal("0")),
    )
