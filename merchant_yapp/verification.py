"""Decides whether a payment reported by the indexer settles a stored order.

Checks run in a fixed order and stop at the first failure, so the reason
returned is always the most basic thing that is wrong.
"""
import enum
from dataclasses import dataclass, field
from typing import Optional, Union

from merchant_yapp.schemas import Order, OrderDetails, RemotePayment


class RejectReason(str, enum.Enum):
    AMOUNT_TOO_LOW = "AMOUNT_TOO_LOW"
    CURRENCY_MISMATCH = "CURRENCY_MISMATCH"
    RECIPIENT_NOT_SUBDOMAIN = "RECIPIENT_NOT_SUBDOMAIN"
    RECIPIENT_MISMATCH = "RECIPIENT_MISMATCH"
    MEMO_MISMATCH = "MEMO_MISMATCH"
    WRONG_CHAIN = "WRONG_CHAIN"
    ALREADY_PAID = "ALREADY_PAID"
    ORDER_NOT_FOUND_LOCALLY = "ORDER_NOT_FOUND_LOCALLY"
    NOT_YET_CONFIRMED = "NOT_YET_CONFIRMED"
    LOOKUP_EXHAUSTED = "LOOKUP_EXHAUSTED"


@dataclass(frozen=True)
class Accepted:
    order_details: OrderDetails


@dataclass(frozen=True)
class Rejected:
    reason: RejectReason
    message: str
    details: dict = field(default_factory=dict)

    @property
    def retryable(self) -> bool:
        return self.reason in (RejectReason.NOT_YET_CONFIRMED, RejectReason.LOOKUP_EXHAUSTED)


VerificationOutcome = Union[Accepted, Rejected]


def is_subdomain(name: Optional[str], root: Optional[str] = None) -> bool:
    """True for ``pay.merchant.eth``, false for the bare ``merchant.eth``.

    With ``root`` given the name must also sit under that root identity.
    """
    if not name:
        return False
    name = name.lower()
    if root:
        root = root.lower().strip(".")
        return name.endswith("." + root) and len(name) > len(root) + 1
    return name.endswith(".eth") and len(name.split(".")) > 2


def verify(
    order: Optional[Order],
    remote: RemotePayment,
    required_chain_id: Optional[int] = None,
    merchant_root: Optional[str] = None,
) -> VerificationOutcome:
    if order is None:
        return Rejected(
            RejectReason.ORDER_NOT_FOUND_LOCALLY,
            "Could not find order details in your browser for this payment. "
            "Please try again from the same device you checked out on.",
            {"memo": remote.memo},
        )

    if not remote.is_confirmed:
        return Rejected(
            RejectReason.NOT_YET_CONFIRMED,
            "Payment has not been confirmed yet.",
            {"status": remote.status},
        )

    if remote.amount is None or remote.amount < order.price:
        return Rejected(
            RejectReason.AMOUNT_TOO_LOW,
            f"Payment amount ({remote.amount}) is less than product price ({order.price}).",
            {"amount": str(remote.amount), "price": str(order.price)},
        )

    if remote.currency != order.currency:
        return Rejected(
            RejectReason.CURRENCY_MISMATCH,
            f"Payment currency ({remote.currency}) does not match product currency ({order.currency}).",
            {"currency": remote.currency, "expected": order.currency},
        )

    expected = order.expected_recipient.lower()
    if not is_subdomain(expected, merchant_root):
        return Rejected(
            RejectReason.RECIPIENT_NOT_SUBDOMAIN,
            f"Expected recipient is not an ENS subdomain: {expected}",
            {"expected": expected},
        )

    recipient = remote.recipient.lower()
    if recipient != expected:
        return Rejected(
            RejectReason.RECIPIENT_MISMATCH,
            f"Payment recipient ({recipient}) does not match expected ENS subdomain ({expected}).",
            {"recipient": recipient, "expected": expected},
        )

    if remote.memo != order.order_id:
        return Rejected(
            RejectReason.MEMO_MISMATCH,
            f"Payment memo ({remote.memo}) does not match expected order id ({order.order_id}).",
            {"memo": remote.memo, "expected": order.order_id},
        )

    if required_chain_id is not None and remote.chain_id is not None and remote.chain_id != required_chain_id:
        return Rejected(
            RejectReason.WRONG_CHAIN,
            f"Payment was made on the wrong network (chainId: {remote.chain_id}).",
            {"chain_id": remote.chain_id, "expected": required_chain_id},
        )

    return Accepted(
        OrderDetails(
            order_id=order.order_id,
            name=order.name,
            price=order.price,
            currency=order.currency,
            emoji=order.emoji,
            timestamp=remote.confirmed_at,
            seller_telegram=order.seller_telegram,
        )
    )
