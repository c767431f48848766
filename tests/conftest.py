import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_checkout_app.db")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ENVIRONMENT", "test")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from checkout.database import Base
from checkout.main import app as fastapi_app
from checkout.models import Address, CartItem, Product

# Setup test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_checkout.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def client(monkeypatch):
    # Every route opens its unit of work through checkout.database.session_scope
    monkeypatch.setattr("checkout.database.SessionLocal", TestingSessionLocal)
    with TestClient(fastapi_app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


def make_token(user_id, is_admin=False):
    return jwt.encode({"sub": str(user_id), "is_admin": is_admin}, os.environ["JWT_SECRET"], algorithm="HS256")


def auth_headers(user_id, is_admin=False):
    return {"Authorization": f"Bearer {make_token(user_id, is_admin)}"}


def add_product(name, price, stock):
    db = TestingSessionLocal()
    product = Product(name=name, sku=name.upper(), price=Decimal(price), stock_quantity=stock)
    db.add(product)
    db.commit()
    product_id = product.id
    db.close()
    return product_id


def add_cart_line(user_id, product_id, quantity, price):
    db = TestingSessionLocal()
    db.add(CartItem(user_id=user_id, product_id=product_id, quantity=quantity, price_at_addition=Decimal(price)))
    db.commit()
    db.close()


def add_address(user_id, address_type="shipping", is_default=False):
    db = TestingSessionLocal()
    address = Address(
        user_id=user_id,
        full_name="Ada Lovelace",
        address_line1="12 Analytical St",
        city="London",
        state_province="Greater London",
        postal_code="NW1 6XE",
        country="UK",
        address_type=address_type,
        is_default=is_default,
    )
    db.add(address)
    db.commit()
    address_id = address.id
    db.close()
    return address_id


def stock_of(product_id):
    db = TestingSessionLocal()
    stock = db.get(Product, product_id).stock_quantity
    db.close()
    return stock


INLINE_ADDRESS = {
    "full_name": "Grace Hopper",
    "address_line1": "1 Navy Yard",
    "city": "Arlington",
    "state": "VA",
    "postal_code": "22202",
    "country": "US",
}
