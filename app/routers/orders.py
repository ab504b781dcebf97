from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from ..db import get_db
from .. import models, schemas
from .. import order_service


router = APIRouter()


def order_created(order: models.Order) -> schemas.OrderCreated:
    return schemas.OrderCreated(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        estimated_time=order.estimated_time,
        total=order.total_amount,
    )


def order_with_tracking(order: models.Order, tracking) -> schemas.OrderWithTracking:
    data = schemas.OrderOut.model_validate(order).model_dump()
    data["tracking"] = [schemas.OrderTrackingOut.model_validate(entry) for entry in tracking]
    return schemas.OrderWithTracking(**data)


@router.post("", response_model=schemas.OrderCreated, status_code=status.HTTP_201_CREATED)
def create_order(payload: schemas.OrderCreate, db: Session = Depends(get_db)):
    """Submit a new order (customer checkout)"""
    order = order_service.submit_order(db, payload)
    return order_created(order)


@router.get("/customer/{customer_phone}", response_model=List[schemas.OrderOut])
def list_customer_orders(
    customer_phone: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """Orders placed with this phone number, newest first"""
    return order_service.list_orders_for_customer(db, customer_phone, page, limit)


@router.get("/{order_id}", response_model=schemas.OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    return order_service.get_order(db, order_id)


@router.get("/{order_id}/tracking", response_model=List[schemas.OrderTrackingOut])
def get_order_tracking(order_id: str, db: Session = Depends(get_db)):
    """Order history, oldest entry first"""
    return order_service.get_order_tracking(db, order_id)


@router.patch("/{order_id}/cancel", response_model=schemas.OrderOut)
def cancel_order(order_id: str, payload: schemas.CustomerCancelRequest, db: Session = Depends(get_db)):
    """Customer cancellation, allowed until a driver is bound"""
    return order_service.cancel_order_as_customer(db, order_id, payload.customer_phone, payload.reason)
