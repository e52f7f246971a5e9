import json
import logging
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from merchant_yapp.models import StoreEntry
from merchant_yapp.schemas import Order, PaymentRecord, order_key, payment_key

logger = logging.getLogger(__name__)


class OrderStore:
    """Origin-scoped key/value store for order terms and payment records.

    Best effort: every failure is logged and reported as a miss, the caller
    carries on without persistence.
    """

    def __init__(self, session_factory: Callable[[], Session], origin: str):
        self.session_factory = session_factory
        self.origin = origin

    def get(self, key: str) -> Optional[dict]:
        db = self.session_factory()
        try:
            entry = db.get(StoreEntry, (self.origin, key))
            if entry is None:
                return None
            return json.loads(entry.value)
        except (SQLAlchemyError, ValueError) as exc:
            logger.warning("Store read failed for %s/%s: %s", self.origin, key, exc)
            return None
        finally:
            db.close()

    def put(self, key: str, value: dict) -> bool:
        db = self.session_factory()
        try:
            document = json.dumps(value)
            entry = db.get(StoreEntry, (self.origin, key))
            if entry is None:
                db.add(StoreEntry(origin=self.origin, key=key, value=document))
            else:
                entry.value = document
            db.commit()
            return True
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            db.rollback()
            logger.error("Store write failed for %s/%s: %s", self.origin, key, exc)
            return False
        finally:
            db.close()

    def put_if_absent(self, key: str, value: dict) -> bool:
        """Insert ``value`` unless ``key`` already holds something. First writer wins."""
        db = self.session_factory()
        try:
            if db.get(StoreEntry, (self.origin, key)) is not None:
                return False
            db.add(StoreEntry(origin=self.origin, key=key, value=json.dumps(value)))
            db.commit()
            return True
        except IntegrityError:
            # lost the race against another writer
            db.rollback()
            return False
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            db.rollback()
            logger.error("Store write failed for %s/%s: %s", self.origin, key, exc)
            return False
        finally:
            db.close()

    def save_order(self, order: Order) -> bool:
        """Store the order terms once; an existing order under the same memo is kept."""
        saved = self.put_if_absent(order_key(order.order_id), order.model_dump(mode="json"))
        if not saved and self.get(order_key(order.order_id)) is not None:
            logger.warning("Order %s already exists; keeping the stored terms", order.order_id)
        return saved

    def load_order(self, order_id: str) -> Optional[Order]:
        data = self.get(order_key(order_id))
        if data is None:
            return None
        try:
            return Order.model_validate(data)
        except ValidationError as exc:
            logger.warning("Discarding unreadable order %s: %s", order_id, exc)
            return None

    def record_payment(self, order_id: str, record: PaymentRecord) -> bool:
        return self.put_if_absent(payment_key(order_id), record.model_dump(mode="json"))

    def load_payment(self, order_id: str) -> Optional[PaymentRecord]:
        data = self.get(payment_key(order_id))
        if data is None:
            return None
        try:
            return PaymentRecord.model_validate(data)
        except ValidationError as exc:
            logger.warning("Discarding unreadable payment record %s: %s", order_id, exc)
            return None
