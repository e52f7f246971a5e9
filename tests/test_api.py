import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from merchant_yapp.main import app as fastapi_app
from merchant_yapp.config import settings
from merchant_yapp.database import Base
from merchant_yapp.poller import ConfirmationPoller
from merchant_yapp.routes import get_poller
from merchant_yapp.schemas import Order, PaymentRecord
from merchant_yapp.store import OrderStore
import merchant_yapp.routes

# Setup test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

PRODUCT = {
    "id": "1",
    "name": "Cool Shirt",
    "price": "10",
    "currency": "USD",
    "emoji": "👕",
    "payment_address": "pay.merchant.eth",
}


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def client(monkeypatch):
    # Point the store at the test database
    monkeypatch.setattr(merchant_yapp.routes, "SessionLocal", TestingSessionLocal)
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def store():
    return OrderStore(TestingSessionLocal, settings.app_origin)


def indexer_returns(*responses):
    pending = list(responses)

    def handler(request):
        return pending.pop(0) if len(pending) > 1 else pending[0]

    def poller():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://tx.test")
        return ConfirmationPoller(client, interval=0, max_attempts=3)

    fastapi_app.dependency_overrides[get_poller] = poller


def save_order(store, **overrides):
    data = dict(
        order_id="ABC_00042", product_ref="1", name="Cool Shirt", price="10",
        currency="USD", expected_recipient="pay.merchant.eth",
    )
    data.update(overrides)
    order = Order(**data)
    store.save_order(order)
    return order


def test_checkout_creates_order(client, store):
    response = client.post("/checkout", json={"product": PRODUCT, "is_mobile": True})

    assert response.status_code == 200
    body = response.json()
    order_id = body["order"]["order_id"]
    assert order_id.startswith("Cool_Shirt_")
    assert body["payment_request"]["memo"] == order_id
    assert body["payment_request"]["flow"] == "redirect"
    assert body["payment_request"]["recipient"] == "pay.merchant.eth"
    assert store.load_order(order_id) is not None


def test_checkout_without_address_is_rejected(client):
    product = dict(PRODUCT, payment_address=None)
    response = client.post("/checkout", json={"product": product})

    assert response.status_code == 422


def test_confirmation_accepted(client, store):
    save_order(store)
    indexer_returns(httpx.Response(200, json={"payment": {
        "memo": "ABC_00042", "amount": 10, "currency": "USD",
        "to": "pay.merchant.eth", "status": "confirmed",
    }}))

    response = client.get("/confirmation?orderId=ABC_00042&txHash=0xabc")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "accepted"
    assert body["order"]["name"] == "Cool Shirt"
    assert body["receipt_url"].endswith("/0xabc")


def test_confirmation_rejects_underpayment(client, store):
    save_order(store)
    indexer_returns(httpx.Response(200, json={
        "memo": "ABC_00042", "amount": 8, "currency": "USD",
        "to": "pay.merchant.eth", "status": "confirmed",
    }))

    body = client.get("/confirmation?orderId=ABC_00042&txHash=0xabc").json()

    assert body["status"] == "rejected"
    assert body["reason"] == "AMOUNT_TOO_LOW"
    assert body["retryable"] is False


def test_redirect_return_records_payment(client, store):
    save_order(store)
    indexer_returns(httpx.Response(404))

    client.get("/confirmation?orderId=ABC_00042&txHash=0xabc&chainId=8453")

    assert store.load_payment("ABC_00042") == PaymentRecord(tx_hash="0xabc", chain_id=8453)


def test_confirmation_requires_parameters(client):
    response = client.get("/confirmation?orderId=ABC_00042")

    assert response.status_code == 400
    assert response.json()["detail"] == "Order ID or payment hash missing from URL."


def test_message_applied_once(client, store):
    message = {"type": "payment_complete", "txHash": "0xabc", "orderId": "ABC_00042", "chainId": 1}

    first = client.post("/messages", json=message)
    second = client.post("/messages", json=dict(message, txHash="0xdef"))

    assert first.status_code == 202
    assert first.json()["status"] == "applied"
    assert first.json()["confirmation_url"].startswith("/confirmation?orderId=ABC_00042&txHash=0xabc")
    assert second.json()["status"] == "conflict"
    assert store.load_payment("ABC_00042") == PaymentRecord(tx_hash="0xabc", chain_id=1)


def test_unrecognized_message_is_ignored(client, store):
    response = client.post("/messages", json={"type": "resize", "height": 400})

    assert response.status_code == 202
    assert response.json() == {"status": "ignored"}


def test_callback_redirects_to_confirmation(client, store):
    response = client.get(
        "/callback?txhash=0xabc&orderid=ABC_00042&chainid=1",
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert response.headers["location"].startswith("/confirmation?orderId=ABC_00042&txHash=0xabc&chainId=1")
    assert store.load_payment("ABC_00042").tx_hash == "0xabc"


def test_callback_without_parameters_is_ignored(client):
    response = client.get("/callback?foo=bar")

    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}


def test_order_lookup_requires_token(client, store):
    save_order(store)

    response = client.get("/orders/ABC_00042")

    assert response.status_code == 401


def test_order_lookup_with_token(client, store, monkeypatch):
    monkeypatch.setattr(settings, "jwt_secret", "test-secret")
    save_order(store)
    store.record_payment("ABC_00042", PaymentRecord(tx_hash="0xabc"))
    token = jwt.encode({"sub": "admin"}, "test-secret", algorithm="HS256")

    response = client.get("/orders/ABC_00042", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["payment"]["tx_hash"] == "0xabc"


def test_order_lookup_rejects_bad_token(client, monkeypatch):
    monkeypatch.setattr(settings, "jwt_secret", "test-secret")
    token = jwt.encode({"sub": "admin"}, "wrong-secret", algorithm="HS256")

    response = client.get("/orders/ABC_00042", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or missing token"
