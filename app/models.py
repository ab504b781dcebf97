from sqlalchemy import (
    Column, Integer, Float, String, Boolean, DateTime, ForeignKey, Text, Numeric,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
import enum
import uuid

from .db import Base


def new_id() -> str:
    return str(uuid.uuid4())


# Enums
class UserRole(str, enum.Enum):
    ADMIN = "admin"
    DRIVER = "driver"


class ActorKind(str, enum.Enum):
    SYSTEM = "system"
    ADMIN = "admin"
    DRIVER = "driver"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"  # Submitted by the customer
    CONFIRMED = "confirmed"  # Accepted by the restaurant, open for drivers
    ASSIGNED = "assigned"  # Driver picked by an admin
    READY = "ready"  # Driver bound, awaiting pickup
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    WALLET = "wallet"


class SettlementStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class RecipientType(str, enum.Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"


class NotificationType(str, enum.Enum):
    ORDER_UPDATE = "order_update"
    ASSIGNMENT = "assignment"
    SYSTEM = "system"


# ============================================================================
# Principals
# ============================================================================

class AdminUser(Base):
    """Platform administrator"""
    __tablename__ = "admin_users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Driver(Base):
    """Delivery agent. `is_available` is only written by the order ledger."""
    __tablename__ = "drivers"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    current_location = Column(String(200), nullable=True)  # Free text or "lat,lng"
    earnings = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)  # Cumulative settled net
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    orders = relationship("Order", back_populates="driver")


class AuthSession(Base):
    """Bearer token issued at login"""
    __tablename__ = "auth_sessions"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(SQLEnum(UserRole), nullable=False)
    principal_id = Column(String(36), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


# ============================================================================
# Catalog (read-only for the ledger)
# ============================================================================

class Restaurant(Base):
    __tablename__ = "restaurants"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    is_open = Column(Boolean, default=True, nullable=False)
    delivery_fee = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    minimum_order = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    menu_items = relationship("MenuItem", back_populates="restaurant")


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True, default=new_id)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    restaurant = relationship("Restaurant", back_populates="menu_items")


# ============================================================================
# Order ledger
# ============================================================================

class Order(Base):
    """One customer purchase bound to exactly one restaurant"""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    order_number = Column(String(40), unique=True, nullable=False, index=True)

    # Customer contact
    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(20), nullable=False, index=True)
    customer_email = Column(String(100), nullable=True)
    delivery_address = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    payment_method = Column(SQLEnum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)

    # Money (total == subtotal + delivery_fee at creation)
    subtotal = Column(Numeric(10, 2), nullable=False)
    delivery_fee = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    driver_earnings = Column(Numeric(10, 2), nullable=True)  # Provisional on accept, final on delivery

    status = Column(SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    cancel_reason = Column(Text, nullable=True)

    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=True, index=True)

    estimated_time = Column(String(50), nullable=True)
    actual_delivery_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    restaurant = relationship("Restaurant")
    driver = relationship("Driver", back_populates="orders")
    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    tracking = relationship(
        "OrderTracking", back_populates="order",
        order_by=lambda: [OrderTracking.timestamp, OrderTracking.id],
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    menu_item_id = Column(String(36), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    line_notes = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")


class OrderTracking(Base):
    """Append-only history entry; never updated or deleted"""
    __tablename__ = "order_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(SQLEnum(OrderStatus), nullable=False)
    message = Column(Text, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    actor_kind = Column(SQLEnum(ActorKind), nullable=False, default=ActorKind.SYSTEM)
    actor_id = Column(String(36), nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    order = relationship("Order", back_populates="tracking")


# ============================================================================
# Settlement
# ============================================================================

class RestaurantEarnings(Base):
    __tablename__ = "restaurant_earnings"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)  # Gross (order subtotal)
    commission = Column(Numeric(10, 2), nullable=False)
    net_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(SettlementStatus), default=SettlementStatus.PENDING, nullable=False, index=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class DriverEarnings(Base):
    __tablename__ = "driver_earnings"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)  # Gross (delivery fee)
    commission = Column(Numeric(10, 2), nullable=False)
    net_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(SettlementStatus), default=SettlementStatus.PENDING, nullable=False, index=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ============================================================================
# Notification intents
# ============================================================================

class Notification(Base):
    """Intent record; delivery transport is handled elsewhere"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient_type = Column(SQLEnum(RecipientType), nullable=False, index=True)
    recipient_id = Column(String(100), nullable=True, index=True)  # None = all of recipient_type
    type = Column(SQLEnum(NotificationType), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=True, index=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
