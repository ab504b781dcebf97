from datetime import datetime
from decimal import Decimal

import pytest

from app import models, order_service
from app import order_states as states
from app.errors import (
    ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError,
)
from app.order_service import Actor, Location
from app.schemas import OrderItemIn
from conftest import order_payload

ADMIN = Actor.admin("a1")


def tracking_statuses(db, order_id):
    return [entry.status for entry in order_service.get_order_tracking(db, order_id)]


def confirmed_order(db):
    order = order_service.submit_order(db, order_payload())
    return order_service.update_status(db, order.id, models.OrderStatus.CONFIRMED, ADMIN)


def test_submit_order_totals_and_first_tracking_entry(db, restaurant):
    order = order_service.submit_order(db, order_payload(
        items=[OrderItemIn(menu_item_id="m1", quantity=2, unit_price=Decimal("10.00"))],
        delivery_fee=Decimal("5.00"),
        subtotal=Decimal("20.00"),
    ))

    assert order.status == models.OrderStatus.PENDING
    assert order.subtotal == Decimal("20.00")
    assert order.delivery_fee == Decimal("5.00")
    assert order.total_amount == Decimal("25.00")
    assert order.driver_id is None
    assert order.order_number.startswith("ORD-")
    assert [(i.menu_item_id, i.quantity) for i in order.items] == [("m1", 2)]
    assert tracking_statuses(db, order.id) == [models.OrderStatus.PENDING]


def test_submit_order_uses_catalog_defaults(db, restaurant):
    order = order_service.submit_order(db, order_payload())
    assert order.subtotal == Decimal("10.00")
    assert order.delivery_fee == Decimal("5.00")
    assert order.total_amount == Decimal("15.00")


def test_submit_order_notifies_admins(db, restaurant):
    order = order_service.submit_order(db, order_payload())
    notes = db.query(models.Notification).filter(models.Notification.order_id == order.id).all()
    assert [n.recipient_type for n in notes] == [models.RecipientType.ADMIN]


@pytest.mark.parametrize("field", ["customer_name", "customer_phone", "delivery_address"])
def test_submit_order_rejects_blank_fields(db, restaurant, field):
    with pytest.raises(ValidationError):
        order_service.submit_order(db, order_payload(**{field: "  "}))
    assert db.query(models.Order).count() == 0


def test_submit_order_rejects_empty_items(db, restaurant):
    with pytest.raises(ValidationError):
        order_service.submit_order(db, order_payload(items=[]))


def test_submit_order_rejects_bad_quantity(db, restaurant):
    with pytest.raises(ValidationError):
        order_service.submit_order(db, order_payload(items=[OrderItemIn(menu_item_id="m1", quantity=0)]))


def test_submit_order_rejects_mismatched_total(db, restaurant):
    with pytest.raises(ValidationError):
        order_service.submit_order(db, order_payload(total_amount=Decimal("99.00")))


def test_submit_order_unknown_restaurant(db, restaurant):
    with pytest.raises(NotFoundError):
        order_service.submit_order(db, order_payload(restaurant_id="nope"))


def test_submit_order_closed_restaurant(db, restaurant):
    restaurant.is_open = False
    db.commit()
    with pytest.raises(ValidationError):
        order_service.submit_order(db, order_payload())


def test_submit_order_unavailable_menu_item(db, restaurant):
    with pytest.raises(ValidationError):
        order_service.submit_order(db, order_payload(items=[OrderItemIn(menu_item_id="m2", quantity=1)]))


def test_submit_order_below_minimum(db, restaurant):
    restaurant.minimum_order = Decimal("50.00")
    db.commit()
    with pytest.raises(ValidationError):
        order_service.submit_order(db, order_payload())


def test_submit_order_auto_confirm(db, restaurant, monkeypatch):
    monkeypatch.setattr(order_service.settings, "AUTO_CONFIRM_ORDERS", True)
    order = order_service.submit_order(db, order_payload())
    assert order.status == models.OrderStatus.CONFIRMED
    assert tracking_statuses(db, order.id) == [models.OrderStatus.PENDING, models.OrderStatus.CONFIRMED]


def test_get_order_not_found(db):
    with pytest.raises(NotFoundError):
        order_service.get_order(db, "missing")


def test_skipping_to_delivered_is_rejected(db, restaurant):
    order = order_service.submit_order(db, order_payload())

    with pytest.raises(InvalidTransitionError) as exc_info:
        order_service.update_status(db, order.id, "delivered", ADMIN)

    assert exc_info.value.current == "pending"
    assert exc_info.value.requested == "delivered"
    db.refresh(order)
    assert order.status == models.OrderStatus.PENDING
    assert tracking_statuses(db, order.id) == [models.OrderStatus.PENDING]


def test_unknown_status_value(db, restaurant):
    order = order_service.submit_order(db, order_payload())
    with pytest.raises(ValidationError):
        order_service.update_status(db, order.id, "teleported", ADMIN)


def test_driver_bound_status_requires_a_driver(db, restaurant):
    order = confirmed_order(db)
    with pytest.raises(InvalidTransitionError):
        order_service.update_status(db, order.id, models.OrderStatus.READY, ADMIN)


def test_full_lifecycle_self_accept(db, restaurant, driver):
    order = confirmed_order(db)

    order = order_service.assign_driver(db, order.id, driver.id, Actor.driver(driver.id))
    assert order.status == models.OrderStatus.READY
    assert order.driver_id == driver.id
    assert order.driver_earnings == Decimal("4.00")
    db.refresh(driver)
    assert driver.is_available is False

    order_service.update_status(
        db, order.id, models.OrderStatus.PICKED_UP, Actor.driver(driver.id),
        location=Location(3.1, 101.6),
    )
    db.refresh(driver)
    assert driver.current_location == "3.1,101.6"

    order = order_service.update_status(db, order.id, models.OrderStatus.DELIVERED, Actor.driver(driver.id))
    assert order.status == models.OrderStatus.DELIVERED
    assert order.actual_delivery_time is not None

    db.refresh(driver)
    assert driver.is_available is True
    assert driver.earnings == Decimal("4.00")

    walk = tracking_statuses(db, order.id)
    assert walk == [
        models.OrderStatus.PENDING, models.OrderStatus.CONFIRMED, models.OrderStatus.READY,
        models.OrderStatus.PICKED_UP, models.OrderStatus.DELIVERED,
    ]
    assert states.is_valid_walk(walk)

    entries = order_service.get_order_tracking(db, order.id)
    assert entries[2].actor_kind == models.ActorKind.DRIVER
    assert entries[3].latitude == 3.1


def test_admin_assignment_moves_to_assigned(db, restaurant, driver):
    order = confirmed_order(db)
    order = order_service.assign_driver(db, order.id, driver.id, ADMIN)

    assert order.status == models.OrderStatus.ASSIGNED
    assert order.driver_id == driver.id
    driver_notes = db.query(models.Notification).filter(
        models.Notification.recipient_type == models.RecipientType.DRIVER,
        models.Notification.recipient_id == driver.id,
    ).count()
    assert driver_notes == 1


def test_admin_assignment_overrides_availability(db, restaurant, driver):
    driver.is_available = False
    db.commit()
    order = confirmed_order(db)

    order = order_service.assign_driver(db, order.id, driver.id, ADMIN)
    assert order.driver_id == driver.id


def test_unavailable_driver_cannot_accept(db, restaurant, driver):
    driver.is_available = False
    db.commit()
    order = confirmed_order(db)

    with pytest.raises(NotFoundError):
        order_service.assign_driver(db, order.id, driver.id, Actor.driver(driver.id))


def test_pending_order_cannot_be_claimed(db, restaurant, driver):
    order = order_service.submit_order(db, order_payload())

    with pytest.raises(InvalidTransitionError):
        order_service.assign_driver(db, order.id, driver.id, Actor.driver(driver.id))

    db.refresh(order)
    assert order.driver_id is None


def test_second_claim_conflicts(db, restaurant, driver, other_driver):
    order = confirmed_order(db)
    order_service.assign_driver(db, order.id, driver.id, Actor.driver(driver.id))

    with pytest.raises(ConflictError):
        order_service.assign_driver(db, order.id, other_driver.id, Actor.driver(other_driver.id))

    db.refresh(order)
    db.refresh(other_driver)
    assert order.driver_id == driver.id
    assert other_driver.is_available is True


def test_driver_cannot_accept_for_someone_else(db, restaurant, driver, other_driver):
    order = confirmed_order(db)
    with pytest.raises(PermissionDeniedError):
        order_service.assign_driver(db, order.id, other_driver.id, Actor.driver(driver.id))


def test_driver_cannot_touch_other_drivers_order(db, restaurant, driver, other_driver):
    order = confirmed_order(db)
    order_service.assign_driver(db, order.id, driver.id, Actor.driver(driver.id))

    with pytest.raises(PermissionDeniedError):
        order_service.update_status(db, order.id, models.OrderStatus.PICKED_UP, Actor.driver(other_driver.id))


def test_cancel_ready_order_releases_driver(db, restaurant, driver):
    order = confirmed_order(db)
    order_service.assign_driver(db, order.id, driver.id, Actor.driver(driver.id))

    order = order_service.cancel_order(db, order.id, "Restaurant closed early", ADMIN)

    assert order.status == models.OrderStatus.CANCELLED
    assert order.cancel_reason == "Restaurant closed early"
    db.refresh(driver)
    assert driver.is_available is True
    assert db.query(models.RestaurantEarnings).count() == 0
    assert db.query(models.DriverEarnings).count() == 0

    last = order_service.get_order_tracking(db, order.id)[-1]
    assert last.status == models.OrderStatus.CANCELLED
    assert "Restaurant closed early" in last.message


@pytest.mark.parametrize("target", [models.OrderStatus.ASSIGNED, models.OrderStatus.PICKED_UP])
def test_cancel_releases_driver_from_any_bound_status(db, restaurant, driver, target):
    order = confirmed_order(db)
    order_service.assign_driver(db, order.id, driver.id, ADMIN)
    if target == models.OrderStatus.PICKED_UP:
        order_service.update_status(db, order.id, target, Actor.driver(driver.id))

    order_service.cancel_order(db, order.id, None, ADMIN)

    db.refresh(driver)
    assert driver.is_available is True


def test_cancel_releases_driver_holding_another_order(db, restaurant, driver):
    first = confirmed_order(db)
    second = confirmed_order(db)
    order_service.assign_driver(db, first.id, driver.id, ADMIN)
    order_service.assign_driver(db, second.id, driver.id, ADMIN)

    order_service.cancel_order(db, first.id, None, ADMIN)

    db.refresh(driver)
    assert driver.is_available is True


def test_delivery_releases_driver_holding_another_order(db, restaurant, driver):
    first = confirmed_order(db)
    second = confirmed_order(db)
    order_service.assign_driver(db, first.id, driver.id, ADMIN)
    order_service.assign_driver(db, second.id, driver.id, ADMIN)

    order_service.update_status(db, first.id, models.OrderStatus.PICKED_UP, Actor.driver(driver.id))
    order_service.update_status(db, first.id, models.OrderStatus.DELIVERED, Actor.driver(driver.id))

    db.refresh(driver)
    assert driver.is_available is True


def test_cancelled_order_is_terminal(db, restaurant):
    order = order_service.submit_order(db, order_payload())
    order_service.cancel_order(db, order.id, None, ADMIN)

    with pytest.raises(InvalidTransitionError):
        order_service.cancel_order(db, order.id, None, ADMIN)
    with pytest.raises(InvalidTransitionError):
        order_service.update_status(db, order.id, models.OrderStatus.CONFIRMED, ADMIN)


def test_update_status_to_cancelled_goes_through_cancel(db, restaurant):
    order = order_service.submit_order(db, order_payload())
    order = order_service.update_status(db, order.id, "cancelled", ADMIN, message="Duplicate")
    assert order.status == models.OrderStatus.CANCELLED
    assert order.cancel_reason == "Duplicate"


def test_customer_cancel_checks_phone(db, restaurant):
    order = order_service.submit_order(db, order_payload())

    with pytest.raises(PermissionDeniedError):
        order_service.cancel_order_as_customer(db, order.id, "555-9999", None)

    order = order_service.cancel_order_as_customer(db, order.id, "555-0100", None)
    assert order.status == models.OrderStatus.CANCELLED


def test_customer_cannot_cancel_after_driver_bound(db, restaurant, driver):
    order = confirmed_order(db)
    order_service.assign_driver(db, order.id, driver.id, Actor.driver(driver.id))

    with pytest.raises(InvalidTransitionError):
        order_service.cancel_order_as_customer(db, order.id, "555-0100", None)


def test_list_orders_filters_and_paginates(db, restaurant):
    for _ in range(3):
        order_service.submit_order(db, order_payload())
    confirmed_order(db)

    orders, total = order_service.list_orders(db, models.OrderStatus.PENDING, page=1, limit=2)
    assert total == 3
    assert len(orders) == 2

    _, total_all = order_service.list_orders(db)
    assert total_all == 4


def test_no_pending_order_has_a_driver(db, restaurant, driver):
    confirmed = confirmed_order(db)
    order_service.submit_order(db, order_payload())
    order_service.assign_driver(db, confirmed.id, driver.id, ADMIN)

    pending_with_driver = db.query(models.Order).filter(
        models.Order.status == models.OrderStatus.PENDING,
        models.Order.driver_id.isnot(None),
    ).count()
    assert pending_with_driver == 0


def stamp_created(db, order, created_at):
    db.query(models.Order).filter(models.Order.id == order.id).update(
        {models.Order.created_at: created_at}, synchronize_session=False
    )
    db.commit()


def test_list_orders_for_driver_newest_first(db, restaurant, driver, other_driver):
    oldest, middle, newest, foreign = [confirmed_order(db) for _ in range(4)]
    for order in (oldest, middle, newest):
        order_service.assign_driver(db, order.id, driver.id, ADMIN)
    order_service.assign_driver(db, foreign.id, other_driver.id, ADMIN)
    for hour, order in enumerate((oldest, middle, newest, foreign)):
        stamp_created(db, order, datetime(2024, 1, 1, hour))
    order_service.cancel_order(db, middle.id, None, ADMIN)

    orders = order_service.list_orders_for_driver(db, driver.id)
    assert [o.id for o in orders] == [newest.id, middle.id, oldest.id]

    cancelled = order_service.list_orders_for_driver(db, driver.id, models.OrderStatus.CANCELLED)
    assert [o.id for o in cancelled] == [middle.id]

    second_page = order_service.list_orders_for_driver(db, driver.id, page=2, limit=2)
    assert [o.id for o in second_page] == [oldest.id]


def test_list_orders_for_customer(db, restaurant):
    first = order_service.submit_order(db, order_payload())
    second = order_service.submit_order(db, order_payload())
    order_service.submit_order(db, order_payload(customer_phone="555-0199"))
    stamp_created(db, first, datetime(2024, 1, 1, 9))
    stamp_created(db, second, datetime(2024, 1, 1, 10))

    orders = order_service.list_orders_for_customer(db, "555-0100")

    assert [o.id for o in orders] == [second.id, first.id]
    assert order_service.list_orders_for_customer(db, "555-0000") == []
    with pytest.raises(ValidationError):
        order_service.list_orders_for_customer(db, " ")
