from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models
from app.db import Base, get_db
from app.driver_service import hash_password
from app.main import app
from app.schemas import OrderCreate, OrderItemIn


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def restaurant(db):
    restaurant = models.Restaurant(
        id="r1", name="Test Kitchen", is_open=True,
        delivery_fee=Decimal("5.00"), minimum_order=Decimal("0.00"),
    )
    db.add(restaurant)
    db.add(models.MenuItem(id="m1", restaurant_id="r1", name="Burger", price=Decimal("10.00")))
    db.add(models.MenuItem(id="m2", restaurant_id="r1", name="Soup", price=Decimal("7.50"), is_available=False))
    db.commit()
    return restaurant


@pytest.fixture
def admin(db):
    admin = models.AdminUser(
        id="a1", name="Admin", email="admin@example.com", password_hash=hash_password("admin123"),
    )
    db.add(admin)
    db.commit()
    return admin


def make_driver(db, driver_id, phone, available=True):
    driver = models.Driver(
        id=driver_id, name=f"Driver {driver_id}", phone=phone,
        password_hash=hash_password("driver123"), is_available=available,
    )
    db.add(driver)
    db.commit()
    return driver


@pytest.fixture
def driver(db):
    return make_driver(db, "d1", "0100000001")


@pytest.fixture
def other_driver(db):
    return make_driver(db, "d2", "0100000002")


def order_payload(**overrides):
    data = dict(
        customer_name="Alice",
        customer_phone="555-0100",
        delivery_address="1 Main St",
        restaurant_id="r1",
        items=[OrderItemIn(menu_item_id="m1", quantity=1)],
    )
    data.update(overrides)
    return OrderCreate(**data)


@pytest.fixture
def client(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # no `with` block: startup would create tables on the configured DATABASE_URL
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(client, admin):
    resp = client.post("/auth/admin/login", json={"email": "admin@example.com", "password": "admin123"})
    assert resp.status_code == 200
    return auth_header(resp.json()["access_token"])


@pytest.fixture
def driver_headers(client, driver):
    resp = client.post("/auth/driver/login", json={"phone": "0100000001", "password": "driver123"})
    assert resp.status_code == 200
    return auth_header(resp.json()["access_token"])


@pytest.fixture
def other_driver_headers(client, other_driver):
    resp = client.post("/auth/driver/login", json={"phone": "0100000002", "password": "driver123"})
    assert resp.status_code == 200
    return auth_header(resp.json()["access_token"])
