import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Union

from merchant_yapp.memo import match_product
from merchant_yapp.poller import ConfirmationPoller, LookupExhausted, PollHandle
from merchant_yapp.schemas import OrderDetails, RemotePayment
from merchant_yapp.store import OrderStore
from merchant_yapp.urls import contact_seller_url, receipt_url
from merchant_yapp.verification import Accepted, Rejected, RejectReason, verify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvalidLink:
    message: str


ConfirmationOutcome = Union[Accepted, Rejected, InvalidLink]


class ConfirmationView:
    """Resolves a confirmation link (``orderId``, ``txHash``, ``chainId``) to an outcome."""

    def __init__(
        self,
        store: OrderStore,
        poller: ConfirmationPoller,
        required_chain_id: Optional[int] = None,
        merchant_root: Optional[str] = None,
        products: Iterable = (),
        shop_name: str = "your shop",
        shop_telegram_handle: str = "",
        receipt_base_url: str = "https://yodl.me/tx",
    ):
        self.store = store
        self.poller = poller
        self.required_chain_id = required_chain_id
        self.merchant_root = merchant_root
        self.products = list(products)
        self.shop_name = shop_name
        self.shop_telegram_handle = shop_telegram_handle
        self.receipt_base_url = receipt_base_url
        self._poll: Optional[PollHandle] = None

    async def load(self, query: Mapping) -> ConfirmationOutcome:
        order_id = query.get("orderId")
        tx_hash = query.get("txHash")
        if not order_id or not tx_hash:
            return InvalidLink("Order ID or payment hash missing from URL.")

        order = self.store.load_order(order_id)
        if order is None:
            return verify(None, RemotePayment(tx_hash=tx_hash, memo=order_id))

        # Only the first recorded transaction is ever shown for an order.
        record = self.store.load_payment(order_id)
        if record is not None and record.tx_hash != tx_hash:
            logger.warning("Refusing tx %s for order %s: already paid by tx %s", tx_hash, order_id, record.tx_hash)
            return Rejected(
                RejectReason.ALREADY_PAID,
                f"Order {order_id} is already paid by transaction {record.tx_hash}; "
                f"transaction {tx_hash} is not accepted for it.",
                {"tx_hash": tx_hash, "recorded_tx_hash": record.tx_hash},
            )

        self._poll = PollHandle(self.poller, tx_hash)
        try:
            result = await self._poll.result()
        finally:
            self._poll = None

        if isinstance(result, LookupExhausted):
            return self._exhausted(result)

        outcome = verify(order, result, self.required_chain_id, self.merchant_root)
        if isinstance(outcome, Rejected):
            logger.warning("Payment %s rejected for order %s: %s", tx_hash, order_id, outcome.reason.value)
        return outcome

    def close(self) -> None:
        """Stop any lookup still in flight; call when the view goes away."""
        if self._poll is not None:
            self._poll.cancel()

    def _exhausted(self, result: LookupExhausted) -> Rejected:
        if result.seen_unconfirmed:
            return Rejected(
                RejectReason.NOT_YET_CONFIRMED,
                f"Payment not confirmed after {result.attempts} attempts. "
                "Please check your transaction or try again.",
                {"attempts": result.attempts, "status": result.last_payment.status},
            )
        if result.last_error:
            message = (
                "Error fetching transaction details after multiple attempts. "
                "Please check your connection or try again."
            )
        else:
            message = (
                "Could not fetch transaction/payment details after multiple attempts. "
                "Please check your transaction hash or try again later."
            )
        return Rejected(
            RejectReason.LOOKUP_EXHAUSTED,
            message,
            {"attempts": result.attempts, "error": result.last_error},
        )

    def links(self, details: OrderDetails, tx_hash: str) -> dict:
        receipt = receipt_url(tx_hash, self.receipt_base_url)
        handle = details.seller_telegram
        if not handle:
            product = match_product(details.order_id, self.products)
            if product is not None:
                handle = product.seller_telegram
            else:
                handle = self.shop_telegram_handle
        links = {"receipt_url": receipt, "contact_url": None}
        if handle:
            links["contact_url"] = contact_seller_url(handle, details.name, self.shop_name, receipt)
        return links
