import enum
import logging
from dataclasses import dataclass
from typing import Optional

from merchant_yapp.context import BrowsingContext
from merchant_yapp.normalizer import CompletionNormalizer
from merchant_yapp.schemas import (
    PARENT_NOTIFICATION_TYPE,
    READY_MESSAGE_TYPE,
    PaymentCompleted,
    PaymentRecord,
)
from merchant_yapp.store import OrderStore
from merchant_yapp.urls import confirmation_url

logger = logging.getLogger(__name__)


class ApplyStatus(str, enum.Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"


@dataclass
class ApplyResult:
    status: ApplyStatus
    event: PaymentCompleted
    confirmation_url: Optional[str] = None
    persisted: bool = False
    relayed: bool = False
    navigated: bool = False


class PaymentBridge:
    """Applies canonical completion events to one context.

    Each ``(orderId, txHash)`` is applied once: persisted as the order's
    payment record (first writer wins), relayed to the parent frame when
    embedded, then the context is sent to the confirmation view.
    """

    def __init__(
        self,
        context: BrowsingContext,
        store: OrderStore,
        normalizer: Optional[CompletionNormalizer] = None,
        confirmation_path: str = "/confirmation",
    ):
        self.context = context
        self.store = store
        self.normalizer = normalizer
        self.confirmation_path = confirmation_path
        self._applied = set()
        self._announced = False
        self._unsubscribe = None

    def start(self) -> None:
        if self.normalizer is not None and self._unsubscribe is None:
            self._unsubscribe = self.normalizer.subscribe(self.apply)
            self.normalizer.start()
        if self.context.embedded and not self._announced:
            self._announced = True
            self._relay({"type": READY_MESSAGE_TYPE, "supports": ["webhooks", "payment_complete"]})

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.normalizer is not None:
            self.normalizer.stop()

    def apply(self, event: PaymentCompleted) -> ApplyResult:
        if event.key in self._applied:
            return ApplyResult(ApplyStatus.DUPLICATE, event)

        persisted = self.store.record_payment(event.order_id, PaymentRecord(tx_hash=event.tx_hash, chain_id=event.chain_id))
        if not persisted:
            existing = self.store.load_payment(event.order_id)
            if existing is not None and existing.tx_hash != event.tx_hash:
                logger.warning(
                    "Ignoring tx %s for order %s: already paid by tx %s",
                    event.tx_hash, event.order_id, existing.tx_hash,
                )
                return ApplyResult(ApplyStatus.CONFLICT, event)
        self._applied.add(event.key)

        order = self.store.load_order(event.order_id)
        url = confirmation_url(
            event.order_id, event.tx_hash, event.chain_id, order=order, path=self.confirmation_path
        )
        result = ApplyResult(ApplyStatus.APPLIED, event, confirmation_url=url, persisted=persisted)

        if self.context.embedded:
            message = {
                "type": PARENT_NOTIFICATION_TYPE,
                "txHash": event.tx_hash,
                "chainId": event.chain_id,
                "orderId": event.order_id,
                "confirmation_url": self.context.origin + url,
            }
            result.relayed = self._relay(message)

        if not self._showing(event):
            self.context.navigate(url, replace=True)
            result.navigated = True
        return result

    def _showing(self, event: PaymentCompleted) -> bool:
        query = self.context.query
        return (
            self.context.path.startswith(self.confirmation_path)
            and query.get("orderId") == event.order_id
            and query.get("txHash") == event.tx_hash
        )

    def _relay(self, message: dict) -> bool:
        try:
            return self.context.post_to_parent(message)
        except Exception:
            logger.exception("Could not notify parent frame (%s)", message.get("type"))
            return False
