from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from .models import (
    UserRole, ActorKind, OrderStatus, PaymentMethod, SettlementStatus,
    RecipientType, NotificationType,
)


# ============================================================================
# Auth Schemas
# ============================================================================

class AdminLogin(BaseModel):
    email: EmailStr
    password: str


class DriverLogin(BaseModel):
    phone: str = Field(..., min_length=3, max_length=20)
    password: str


class TokenResponse(BaseModel):
    """Auth token response"""
    access_token: str
    token_type: str = "bearer"
    principal_id: str
    role: UserRole
    expires_at: datetime


class PrincipalOut(BaseModel):
    role: UserRole
    principal_id: str


# ============================================================================
# Order Schemas
# ============================================================================

class OrderItemIn(BaseModel):
    menu_item_id: str
    quantity: int
    unit_price: Optional[Decimal] = None  # Defaults to the catalog price
    line_notes: Optional[str] = None


class OrderCreate(BaseModel):
    """Customer checkout payload. Blank required fields are rejected by the ledger."""
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    delivery_address: str
    notes: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    restaurant_id: str
    items: List[OrderItemIn]
    delivery_fee: Optional[Decimal] = None  # Defaults to the restaurant fee
    subtotal: Optional[Decimal] = None  # Checked against the items when given
    total_amount: Optional[Decimal] = None


class OrderCreated(BaseModel):
    id: str
    order_number: str
    status: OrderStatus
    estimated_time: Optional[str]
    total: Decimal


class OrderItemOut(BaseModel):
    menu_item_id: str
    quantity: int
    unit_price: Decimal
    line_notes: Optional[str]

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: str
    order_number: str
    customer_name: str
    customer_phone: str
    customer_email: Optional[str]
    delivery_address: str
    notes: Optional[str]
    payment_method: PaymentMethod
    items: List[OrderItemOut]
    subtotal: Decimal
    delivery_fee: Decimal
    total_amount: Decimal
    driver_earnings: Optional[Decimal]
    status: OrderStatus
    cancel_reason: Optional[str]
    restaurant_id: str
    driver_id: Optional[str]
    estimated_time: Optional[str]
    actual_delivery_time: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderTrackingOut(BaseModel):
    id: int
    order_id: str
    status: OrderStatus
    message: str
    latitude: Optional[float]
    longitude: Optional[float]
    actor_kind: ActorKind
    actor_id: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True


class OrderWithTracking(OrderOut):
    tracking: List[OrderTrackingOut]


class OrderSummary(BaseModel):
    """Available-order card shown to drivers"""
    id: str
    order_number: str
    restaurant_id: str
    restaurant_name: Optional[str]
    delivery_address: str
    item_count: int
    subtotal: Decimal
    delivery_fee: Decimal
    total_amount: Decimal
    estimated_driver_earnings: Decimal
    estimated_time: Optional[str]
    created_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderList(BaseModel):
    orders: List[OrderOut]
    pagination: Pagination


class StatusUpdate(BaseModel):
    status: OrderStatus
    message: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class CustomerCancelRequest(BaseModel):
    customer_phone: str
    reason: Optional[str] = None


class AssignDriverRequest(BaseModel):
    driver_id: str


# ============================================================================
# Driver Schemas
# ============================================================================

class DriverCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., min_length=3, max_length=20)
    password: str = Field(..., min_length=6)
    current_location: Optional[str] = None


class DriverUpdate(BaseModel):
    """Admin edit. Availability is owned by order assignment and cannot be set."""
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, min_length=3, max_length=20)
    is_active: Optional[bool] = None
    current_location: Optional[str] = None

    class Config:
        extra = "forbid"


class DriverProfileUpdate(BaseModel):
    """Driver self edit"""
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    current_location: Optional[str] = None

    class Config:
        extra = "forbid"


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


class LocationUpdate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DriverOut(BaseModel):
    id: str
    name: str
    phone: str
    is_available: bool
    is_active: bool
    current_location: Optional[str]
    earnings: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class DriverStats(BaseModel):
    total_orders: int
    completed_orders: int
    cancelled_orders: int
    total_earnings: Decimal


class DriverDashboardStats(DriverStats):
    today_orders: int
    today_completed: int
    today_earnings: Decimal


class DriverDashboard(BaseModel):
    stats: DriverDashboardStats
    available_orders: List[OrderSummary]
    current_orders: List[OrderOut]


# ============================================================================
# Earnings Schemas
# ============================================================================

class RestaurantEarningsOut(BaseModel):
    id: int
    restaurant_id: str
    order_id: str
    amount: Decimal
    commission: Decimal
    net_amount: Decimal
    status: SettlementStatus
    paid_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class DriverEarningsOut(BaseModel):
    id: int
    driver_id: str
    order_id: str
    amount: Decimal
    commission: Decimal
    net_amount: Decimal
    status: SettlementStatus
    paid_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Notification Schemas
# ============================================================================

class NotificationCreate(BaseModel):
    recipient_type: RecipientType
    recipient_id: Optional[str] = None
    type: NotificationType = NotificationType.SYSTEM
    title: Optional[str] = Field(None, max_length=200)
    message: str = Field(..., min_length=1)
    order_id: Optional[str] = None


class NotificationOut(BaseModel):
    id: int
    recipient_type: RecipientType
    recipient_id: Optional[str]
    type: NotificationType
    title: str
    message: str
    order_id: Optional[str]
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Admin Schemas
# ============================================================================

class SystemStats(BaseModel):
    total_orders: int
    pending_orders: int
    today_orders: int
    total_drivers: int
    available_drivers: int
    delivered_revenue: Decimal
