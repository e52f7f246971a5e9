import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from merchant_yapp.schemas import RemotePayment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LookupExhausted:
    attempts: int
    last_payment: Optional[RemotePayment] = None
    last_error: Optional[str] = None

    @property
    def seen_unconfirmed(self) -> bool:
        return self.last_payment is not None and not self.last_payment.is_confirmed


PollResult = Union[RemotePayment, LookupExhausted]


class ConfirmationPoller:
    """Queries the indexer by transaction hash until the payment is confirmed.

    ``interval`` and ``max_attempts`` are deployment tuning, e.g. 0.25 s x 40
    for a snappy confirmation page or 5 s x 6 to go easy on the indexer.
    """

    def __init__(self, client: httpx.AsyncClient, interval: float = 0.25, max_attempts: int = 40):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.interval = interval
        self.max_attempts = max_attempts

    async def fetch(self, tx_hash: str) -> Optional[RemotePayment]:
        response = await self.client.get(f"/api/v1/payments/{tx_hash}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return RemotePayment.from_indexer(response.json())

    async def poll_until_confirmed(self, tx_hash: str) -> PollResult:
        last_payment = None
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                payment = await self.fetch(tx_hash)
            except (httpx.HTTPError, ValueError) as exc:
                last_error = str(exc) or exc.__class__.__name__
                logger.debug("Lookup of %s failed (attempt %d): %s", tx_hash, attempt, last_error)
            else:
                if payment is not None:
                    last_payment = payment
                    if payment.is_confirmed:
                        return payment
            if attempt < self.max_attempts:
                await asyncio.sleep(self.interval)

        logger.warning("Gave up on %s after %d attempts", tx_hash, self.max_attempts)
        return LookupExhausted(self.max_attempts, last_payment, last_error)


class PollHandle:
    """Owns a running poll so it can be torn down with its view."""

    def __init__(self, poller: ConfirmationPoller, tx_hash: str):
        self.task = asyncio.ensure_future(poller.poll_until_confirmed(tx_hash))

    def cancel(self) -> None:
        if not self.task.done():
            self.task.cancel()

    async def result(self) -> PollResult:
        return await self.task
