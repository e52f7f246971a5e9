"""Parsing of inbound cross-context messages.

Several unrelated senders share the same transport, so anything that is not
one of the shapes below parses to ``Unrecognized`` and is dropped quietly.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from merchant_yapp.schemas import (
    CANONICAL_MESSAGE_TYPE,
    WEBHOOK_CALLBACK_TYPE,
    PaymentCompleted,
    to_chain_id,
)

WEBHOOK_TX_PARAMS = ("webhook_txhash", "txhash")
WEBHOOK_ORDER_PARAMS = ("webhook_orderid", "orderid", "memo")
WEBHOOK_CHAIN_PARAMS = ("webhook_chainid", "chainid")


@dataclass(frozen=True)
class PaymentCompleteMessage:
    event: PaymentCompleted


@dataclass(frozen=True)
class WebhookCallbackMessage:
    event: PaymentCompleted


@dataclass(frozen=True)
class PaymentResultMessage:
    """Untyped payment result posted by the payment SDK."""
    event: PaymentCompleted


@dataclass(frozen=True)
class Unrecognized:
    reason: str


InboundMessage = Union[PaymentCompleteMessage, WebhookCallbackMessage, PaymentResultMessage, Unrecognized]


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _event(tx_hash: Any, order_id: Any, memo: Any = None, chain_id: Any = None) -> Optional[PaymentCompleted]:
    tx_hash = _text(tx_hash)
    order_id = _text(order_id) or _text(memo)
    if not tx_hash or not order_id:
        return None
    return PaymentCompleted(order_id=order_id, tx_hash=tx_hash, chain_id=to_chain_id(chain_id))


def parse_message(data: Any) -> InboundMessage:
    if not isinstance(data, Mapping):
        return Unrecognized("not an object")
    if "target" in data:
        return Unrecognized("extension traffic")

    kind = data.get("type")
    if kind == CANONICAL_MESSAGE_TYPE:
        event = _event(data.get("txHash"), data.get("orderId"), data.get("memo"), data.get("chainId"))
        if event is None:
            return Unrecognized("payment_complete without txHash and orderId")
        return PaymentCompleteMessage(event)

    if kind == WEBHOOK_CALLBACK_TYPE:
        payment = data.get("paymentData")
        if not isinstance(payment, Mapping):
            return Unrecognized("webhook callback without paymentData")
        event = _event(payment.get("txHash"), payment.get("orderId"), None, payment.get("chainId"))
        if event is None:
            return Unrecognized("webhook callback without txHash and orderId")
        return WebhookCallbackMessage(event)

    if kind is None:
        event = _event(data.get("txHash"), data.get("orderId"), data.get("memo"), data.get("chainId"))
        if event is not None:
            return PaymentResultMessage(event)

    return Unrecognized(f"unhandled message type {kind!r}")


def _first(params: Mapping, names) -> str:
    for name in names:
        value = _text(params.get(name))
        if value:
            return value
    return ""


def parse_webhook_params(params: Mapping) -> Optional[PaymentCompleted]:
    """Read webhook-style callback parameters; the first alias present wins."""
    return _event(
        _first(params, WEBHOOK_TX_PARAMS),
        _first(params, WEBHOOK_ORDER_PARAMS),
        None,
        _first(params, WEBHOOK_CHAIN_PARAMS) or None,
    )


def parse_redirect_params(params: Mapping, known_order_id: Optional[str]) -> Optional[PaymentCompleted]:
    """Redirect returns carry ``txHash``/``chainId``; the order comes from the view."""
    order_id = known_order_id or params.get("orderId") or params.get("memo")
    return _event(params.get("txHash"), order_id, None, params.get("chainId"))
