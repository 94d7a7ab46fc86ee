import os

# Configure before gomart reads its settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EVENTS_ENABLED"] = "false"
os.environ["RESERVATION_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["RESERVATION_TTL_SECONDS"] = "1800"

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from gomart.auth import create_vendor_token, get_password_hash  # noqa: E402
from gomart.database import SessionLocal, engine  # noqa: E402
from gomart.main import app  # noqa: E402
from gomart.models import Base, Category, Product, Vendor  # noqa: E402

VENDOR_PASSWORD = "fresh-greens-42"


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def test_client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_vendor(db):
    def _make(email="greens@gomart.test", phone_number="0244000111", is_active=True, password=VENDOR_PASSWORD, **extra):
        vendor = Vendor(
            vendor_name=extra.pop("vendor_name", "Fresh Greens"),
            email=email,
            phone_number=phone_number,
            region=extra.pop("region", "Greater Accra"),
            hashed_password=get_password_hash(password) if password else None,
            is_active=is_active,
            **extra,
        )
        db.add(vendor)
        db.commit()
        db.refresh(vendor)
        return vendor

    return _make


@pytest.fixture
def vendor(make_vendor):
    return make_vendor()


@pytest.fixture
def auth_headers(vendor):
    return {"Authorization": f"Bearer {create_vendor_token(vendor)}"}


@pytest.fixture
def category(db):
    cat = Category(category_name="Groceries", description="Everyday food")
    db.add(cat)
    db.commit()
    db.refresh(cat)
    return cat


@pytest.fixture
def make_product(db, vendor):
    def _make(stock=10, price="25.00", name="Basmati Rice 5kg", owner=None, **extra):
        product = Product(
            product_name=name,
            price=Decimal(price),
            stock_quantity=stock,
            vendor_id=(owner or vendor).id,
            **extra,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def stock_of(db):
    def _stock(product_id):
        return db.query(Product.stock_quantity).filter(Product.id == product_id).scalar()

    return _stock


@pytest.fixture
def new_cart(test_client):
    def _new():
        response = test_client.post("/carts/")
        assert response.status_code == 201
        return response.json()["id"]

    return _new
