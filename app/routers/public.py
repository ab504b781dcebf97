from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import schemas
from .. import order_service
from .orders import order_created, order_with_tracking


router = APIRouter()


@router.post("/orders", response_model=schemas.OrderCreated, status_code=status.HTTP_201_CREATED)
def create_public_order(payload: schemas.OrderCreate, db: Session = Depends(get_db)):
    """Storefront checkout; same ledger operation as POST /orders"""
    return order_created(order_service.submit_order(db, payload))


@router.get("/orders/{order_id}/track", response_model=schemas.OrderWithTracking)
def track_order(order_id: str, db: Session = Depends(get_db)):
    order = order_service.get_order(db, order_id)
    return order_with_tracking(order, order_service.get_order_tracking(db, order_id))
