from decimal import Decimal

import pytest

from app import earnings_service, models, order_service
from app.errors import AlreadySettledError, InvalidTransitionError, NotFoundError, ValidationError
from app.order_service import Actor
from app.schemas import OrderItemIn
from conftest import order_payload


def test_compute_earnings_split():
    split = earnings_service.compute_earnings(Decimal("20.00"), Decimal("5.00"), 0.20, 0.15)

    assert split.driver_net == Decimal("4.00")
    assert split.driver_commission == Decimal("1.00")
    assert split.restaurant_net == Decimal("17.00")
    assert split.restaurant_commission == Decimal("3.00")


def test_compute_earnings_rounds_half_up():
    split = earnings_service.compute_earnings(Decimal("10.05"), Decimal("3.33"), 0.25, 0.10)

    # 3.33 * 0.75 = 2.4975, 10.05 * 0.90 = 9.045
    assert split.driver_net == Decimal("2.50")
    assert split.restaurant_net == Decimal("9.05")
    assert split.driver_net + split.driver_commission == Decimal("3.33")


def test_provisional_driver_earnings():
    assert earnings_service.provisional_driver_earnings(Decimal("5.00")) == Decimal("4.00")
    assert earnings_service.provisional_driver_earnings(Decimal("5.00"), share_rate=0.5) == Decimal("2.50")


def picked_up_order(db, driver):
    order = order_service.submit_order(db, order_payload(
        items=[OrderItemIn(menu_item_id="m1", quantity=2, unit_price=Decimal("10.00"))],
        delivery_fee=Decimal("5.00"),
    ))
    order_service.update_status(db, order.id, models.OrderStatus.CONFIRMED, Actor.admin("a1"))
    order_service.assign_driver(db, order.id, driver.id, Actor.driver(driver.id))
    return order_service.update_status(db, order.id, models.OrderStatus.PICKED_UP, Actor.driver(driver.id))


def test_delivery_settles_earnings(db, restaurant, driver):
    order = picked_up_order(db, driver)

    order = order_service.update_status(db, order.id, models.OrderStatus.DELIVERED, Actor.driver(driver.id))

    driver_row = db.query(models.DriverEarnings).filter_by(order_id=order.id).one()
    restaurant_row = db.query(models.RestaurantEarnings).filter_by(order_id=order.id).one()
    assert driver_row.net_amount == Decimal("4.00")
    assert driver_row.amount == Decimal("5.00")
    assert restaurant_row.net_amount == Decimal("17.00")
    assert restaurant_row.amount == Decimal("20.00")
    assert driver_row.status == models.SettlementStatus.PENDING
    assert order.driver_earnings == Decimal("4.00")


def test_settlement_is_idempotent(db, restaurant, driver):
    order = picked_up_order(db, driver)
    order = order_service.update_status(db, order.id, models.OrderStatus.DELIVERED, Actor.driver(driver.id))

    with pytest.raises(AlreadySettledError):
        earnings_service.settle_order(order, db)
    db.rollback()

    assert db.query(models.DriverEarnings).filter_by(order_id=order.id).count() == 1
    assert db.query(models.RestaurantEarnings).filter_by(order_id=order.id).count() == 1
    db.refresh(driver)
    assert driver.earnings == Decimal("4.00")


def test_settle_requires_driver(db, restaurant):
    order = order_service.submit_order(db, order_payload())
    with pytest.raises(ValidationError):
        earnings_service.settle_order(order, db)


def test_mark_paid(db, restaurant, driver):
    order = picked_up_order(db, driver)
    order_service.update_status(db, order.id, models.OrderStatus.DELIVERED, Actor.driver(driver.id))
    row = db.query(models.DriverEarnings).filter_by(order_id=order.id).one()

    paid = earnings_service.mark_paid("driver", row.id, db)
    assert paid.status == models.SettlementStatus.PAID
    assert paid.paid_at is not None

    with pytest.raises(InvalidTransitionError):
        earnings_service.mark_paid("driver", row.id, db)


def test_mark_paid_unknown_row(db):
    with pytest.raises(NotFoundError):
        earnings_service.mark_paid("restaurant", 999, db)
    with pytest.raises(ValidationError):
        earnings_service.mark_paid("platform", 1, db)


def test_list_earnings_by_owner_and_status(db, restaurant, driver):
    order = picked_up_order(db, driver)
    order_service.update_status(db, order.id, models.OrderStatus.DELIVERED, Actor.driver(driver.id))

    assert len(earnings_service.list_earnings("driver", db, owner_id=driver.id)) == 1
    assert len(earnings_service.list_earnings("restaurant", db, owner_id="r1")) == 1
    assert earnings_service.list_earnings("driver", db, status=models.SettlementStatus.PAID) == []
