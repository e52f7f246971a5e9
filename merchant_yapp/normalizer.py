import logging
from typing import Callable, List, Optional, Union

from merchant_yapp.context import BrowsingContext
from merchant_yapp.messages import (
    PaymentCompleteMessage,
    PaymentResultMessage,
    Unrecognized,
    WebhookCallbackMessage,
    parse_message,
    parse_redirect_params,
    parse_webhook_params,
)
from merchant_yapp.schemas import PaymentCompleted, PaymentResult, to_chain_id

logger = logging.getLogger(__name__)

EventCallback = Callable[[PaymentCompleted], None]


class CompletionNormalizer:
    """Funnels every completion channel of one context into a single handler.

    Channels: the payment call's return value (``accept_result``), posted
    messages, redirect parameters (``accept_redirect``) and webhook-style
    parameters found in the URL at ``start()``. Subscribers see each
    ``(orderId, txHash)`` once.
    """

    def __init__(self, context: BrowsingContext, webhook_delay: float = 0.5):
        self.context = context
        self.webhook_delay = webhook_delay
        self._subscribers: List[EventCallback] = []
        self._emitted = set()
        self._webhook_timer = None
        self._running = False

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.context.add_message_listener(self.handle_message)

        event = parse_webhook_params(self.context.query)
        if event is not None:
            logger.info("Webhook parameters found in URL for order %s", event.order_id)
            # Give the rest of the view time to attach before dispatching.
            self._webhook_timer = self.context.call_later(
                self.webhook_delay, lambda: self._dispatch_webhook(event)
            )

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self.context.remove_message_listener(self.handle_message)
        if self._webhook_timer is not None:
            self._webhook_timer.cancel()
            self._webhook_timer = None

    def _dispatch_webhook(self, event: PaymentCompleted) -> None:
        self._webhook_timer = None
        self.context.dispatch_message(event.to_message())

    def handle_message(self, data) -> None:
        message = parse_message(data)
        if isinstance(message, PaymentCompleteMessage):
            self._emit(message.event)
        elif isinstance(message, (WebhookCallbackMessage, PaymentResultMessage)):
            # Re-enter as a canonical message so every path shares one handler.
            self.context.dispatch_message(message.event.to_message())
        elif isinstance(message, Unrecognized):
            logger.debug("Ignoring message: %s", message.reason)

    def accept_result(self, result: Union[PaymentResult, dict, None], order_id: str) -> Optional[PaymentCompleted]:
        """Channel 1: the value returned by the payment request itself."""
        if result is None:
            return None
        if isinstance(result, dict):
            result = PaymentResult(tx_hash=result.get("txHash"), chain_id=to_chain_id(result.get("chainId")))
        if not result.tx_hash:
            return None
        event = PaymentCompleted(order_id=order_id, tx_hash=result.tx_hash, chain_id=result.chain_id)
        self._emit(event)
        return event

    def accept_redirect(self, known_order_id: Optional[str] = None) -> Optional[PaymentCompleted]:
        """Channel 3: ``txHash``/``chainId`` left in the URL by a redirect flow."""
        event = parse_redirect_params(self.context.query, known_order_id)
        if event is not None:
            self._emit(event)
        return event

    def _emit(self, event: PaymentCompleted) -> bool:
        if event.key in self._emitted:
            logger.debug("Already emitted %s/%s", event.order_id, event.tx_hash)
            return False
        self._emitted.add(event.key)
        logger.info("Payment completed for order %s (tx %s)", event.order_id, event.tx_hash)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Completion subscriber failed for order %s", event.order_id)
        return True
