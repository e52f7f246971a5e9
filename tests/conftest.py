from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from merchant_yapp import models  # noqa: F401
from merchant_yapp.database import Base
from merchant_yapp.schemas import Order, Product
from merchant_yapp.store import OrderStore

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_store.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def store():
    Base.metadata.create_all(bind=engine)
    yield OrderStore(TestingSessionLocal, "https://shop.example")
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def order():
    return Order(
        order_id="ABC_00042",
        product_ref="1",
        name="Cool Shirt",
        price=Decimal("10"),
        currency="USD",
        expected_recipient="pay.merchant.eth",
        emoji="👕",
        created_at=datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def product():
    return Product(
        id="1",
        name="Cool Shirt",
        price=Decimal("10"),
        currency="USD",
        emoji="👕",
        payment_address="pay.merchant.eth",
        seller_telegram="shirtseller",
    )
