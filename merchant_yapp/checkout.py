import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Protocol, Union

from merchant_yapp import memo
from merchant_yapp.normalizer import CompletionNormalizer
from merchant_yapp.recipients import ResolutionError, resolve_recipient
from merchant_yapp.schemas import (
    Order,
    PaymentCompleted,
    PaymentRequest,
    PaymentResult,
    Product,
)
from merchant_yapp.store import OrderStore
from merchant_yapp.urls import confirmation_url

logger = logging.getLogger(__name__)

FLOW_IFRAME = "iframe"
FLOW_REDIRECT = "redirect"


class PaymentInitiationError(Exception):
    pass


class PaymentCancelled(PaymentInitiationError):
    pass


class PaymentCapability(Protocol):
    async def request_payment(self, request: PaymentRequest) -> Union[PaymentResult, dict, None]:
        ...


def select_flow(is_mobile: bool = False, is_touch: bool = False, embedded: bool = False) -> str:
    # Overlays do not work from inside another frame or on small touch screens.
    if is_mobile or is_touch or embedded:
        return FLOW_REDIRECT
    return FLOW_IFRAME


def create_order(
    product: Product,
    store: OrderStore,
    merchant_ens: str = "",
    merchant_address: str = "",
    salt: Optional[str] = None,
    now: Optional[datetime] = None,
    fingerprint_width: int = 6,
    truncation: str = memo.TRUNCATE_ACRONYM,
) -> Order:
    now = now or datetime.now(timezone.utc)
    expected = product.payment_address or merchant_ens or merchant_address
    if not expected:
        raise PaymentInitiationError(f"No payment address configured for product {product.id}")

    order_id = memo.encode(product.name, salt, now, fingerprint_width, truncation)
    order = Order(
        order_id=order_id,
        product_ref=product.id,
        name=product.name,
        price=product.price,
        currency=product.currency,
        expected_recipient=expected,
        emoji=product.emoji,
        seller_telegram=product.seller_telegram,
        created_at=now,
    )
    if not store.save_order(order):
        logger.warning("Order %s not persisted; confirmation will only work in this session", order_id)
    return order


def build_payment_request(
    order: Order,
    product: Product,
    flow: str,
    origin: str,
    merchant_ens: str = "",
    merchant_address: str = "",
    prefer_address_over_ens: bool = False,
    confirmation_path: str = "/confirmation",
) -> PaymentRequest:
    if order.price <= 0:
        raise PaymentInitiationError("Invalid payment amount.")
    if not order.currency:
        raise PaymentInitiationError("Invalid payment currency.")

    resolved = resolve_recipient(
        product_address=product.payment_address,
        merchant_ens=merchant_ens,
        merchant_address=merchant_address,
        fallback_address=product.eth_address_fallback,
        prefer_address_over_ens=prefer_address_over_ens,
    )
    if isinstance(resolved, ResolutionError):
        raise PaymentInitiationError(resolved.message)
    logger.debug("Paying order %s to %s (%s)", order.order_id, resolved.identifier, resolved.source)

    return PaymentRequest(
        amount=order.price,
        currency=order.currency,
        recipient=resolved.identifier,
        memo=order.order_id,
        redirect_url=origin + confirmation_url(order.order_id, path=confirmation_path),
        flow=flow,
        metadata={"productId": product.id, "productName": product.name, "emoji": product.emoji},
    )


class PaymentInitiator:
    """Requests a payment for an order and waits for its first completion signal."""

    def __init__(
        self,
        capability: PaymentCapability,
        normalizer: CompletionNormalizer,
        merchant_ens: str = "",
        merchant_address: str = "",
        prefer_address_over_ens: bool = False,
        confirmation_path: str = "/confirmation",
        timeout: float = 300.0,
    ):
        self.capability = capability
        self.normalizer = normalizer
        self.merchant_ens = merchant_ens
        self.merchant_address = merchant_address
        self.prefer_address_over_ens = prefer_address_over_ens
        self.confirmation_path = confirmation_path
        self.timeout = timeout

    def build_request(self, order: Order, product: Product, flow: str) -> PaymentRequest:
        return build_payment_request(
            order,
            product,
            flow,
            origin=self.normalizer.context.origin,
            merchant_ens=self.merchant_ens,
            merchant_address=self.merchant_address,
            prefer_address_over_ens=self.prefer_address_over_ens,
            confirmation_path=self.confirmation_path,
        )

    async def initiate(
        self, order: Order, product: Product, is_mobile: bool = False, is_touch: bool = False
    ) -> Optional[PaymentCompleted]:
        """Returns the completion event, or ``None`` if none arrived in time."""
        flow = select_flow(is_mobile, is_touch, self.normalizer.context.embedded)
        request = self.build_request(order, product, flow)

        completed = asyncio.get_running_loop().create_future()

        def on_completed(event: PaymentCompleted) -> None:
            if event.order_id == order.order_id and not completed.done():
                completed.set_result(event)

        unsubscribe = self.normalizer.subscribe(on_completed)
        timer = None
        try:
            try:
                result = await self.capability.request_payment(request)
            except PaymentInitiationError:
                raise
            except Exception as exc:
                if getattr(exc, "code", None) == 4001 or "cancel" in str(exc).lower():
                    raise PaymentCancelled(str(exc)) from exc
                raise PaymentInitiationError(str(exc)) from exc

            self.normalizer.accept_result(result, order.order_id)
            if completed.done():
                return completed.result()

            timer = asyncio.ensure_future(asyncio.sleep(self.timeout))
            done, _ = await asyncio.wait({completed, timer}, return_when=asyncio.FIRST_COMPLETED)
            if completed in done:
                return completed.result()
            logger.warning("No completion for order %s after %ss", order.order_id, self.timeout)
            return None
        finally:
            unsubscribe()
            if timer is not None and not timer.done():
                timer.cancel()
            if not completed.done():
                completed.cancel()
