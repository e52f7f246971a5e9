from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel, Field

CANONICAL_MESSAGE_TYPE = "payment_complete"
PARENT_NOTIFICATION_TYPE = "yapp_payment_complete"
READY_MESSAGE_TYPE = "yapp_ready"
WEBHOOK_CALLBACK_TYPE = "yodl_webhook_callback"


def order_key(order_id: str) -> str:
    return f"order:{order_id}"


def payment_key(order_id: str) -> str:
    return f"payment:{order_id}"


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def to_chain_id(value: Any) -> Optional[int]:
    """Chain ids arrive as ints, numeric strings or not at all."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


class Product(BaseModel):
    id: str
    name: str
    price: Decimal
    currency: str = "USD"
    emoji: str = ""
    description: str = ""
    payment_address: Optional[str] = None
    seller: Optional[str] = None
    seller_telegram: Optional[str] = None
    eth_address_fallback: Optional[str] = None


class Order(BaseModel):
    order_id: str
    product_ref: str
    name: str
    price: Decimal
    currency: str
    expected_recipient: str
    emoji: str = ""
    seller_telegram: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class PaymentCompleted(BaseModel):
    """Canonical completion event, whatever channel it came from."""

    order_id: str
    tx_hash: str
    chain_id: Optional[int] = None

    model_config = {"frozen": True}

    @property
    def key(self) -> tuple:
        return (self.order_id, self.tx_hash)

    def to_message(self) -> dict:
        message = {
            "type": CANONICAL_MESSAGE_TYPE,
            "txHash": self.tx_hash,
            "orderId": self.order_id,
        }
        if self.chain_id is not None:
            message["chainId"] = self.chain_id
        return message


class PaymentRecord(BaseModel):
    tx_hash: str
    chain_id: Optional[int] = None


class RemotePayment(BaseModel):
    tx_hash: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    recipient: str = ""
    memo: str = ""
    chain_id: Optional[int] = None
    status: Optional[str] = None
    block_timestamp: Optional[str] = None
    timestamp: Optional[str] = None

    @property
    def is_confirmed(self) -> bool:
        if self.status and self.status.lower() == "confirmed":
            return True
        return bool(self.block_timestamp or self.timestamp)

    @property
    def confirmed_at(self) -> str:
        return self.block_timestamp or self.timestamp or ""

    @classmethod
    def from_indexer(cls, body: Any) -> Optional["RemotePayment"]:
        """Parse an indexer response, either ``{"payment": {...}}`` or the bare payment."""
        if not isinstance(body, dict):
            return None
        payment = body["payment"] if "payment" in body else body
        if not isinstance(payment, dict) or not payment:
            return None
        recipient = (
            payment.get("to")
            or payment.get("toAddress")
            or payment.get("receiver")
            or payment.get("addressOrEns")
            or ""
        )
        return cls(
            tx_hash=payment.get("txHash"),
            amount=to_decimal(payment.get("amount")),
            currency=payment.get("currency"),
            recipient=str(recipient),
            memo=payment.get("memo") or "",
            chain_id=to_chain_id(payment.get("chainId")),
            status=payment.get("status"),
            block_timestamp=payment.get("blockTimestamp"),
            timestamp=payment.get("timestamp"),
        )


class OrderDetails(BaseModel):
    order_id: str
    name: str
    price: Decimal
    currency: str
    emoji: str = ""
    timestamp: str = ""
    seller_telegram: Optional[str] = None


class PaymentRequest(BaseModel):
    amount: Decimal
    currency: str
    recipient: str
    memo: str
    redirect_url: str
    flow: str = "iframe"
    metadata: dict = Field(default_factory=dict)


class PaymentResult(BaseModel):
    tx_hash: Optional[str] = None
    chain_id: Optional[int] = None


class CheckoutRequest(BaseModel):
    product: Product
    is_mobile: bool = False
    is_touch: bool = False
    embedded: bool = False
