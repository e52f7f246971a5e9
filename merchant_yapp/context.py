"""In-process model of a browsing context (tab, page or embedded frame).

Contexts share no state; they talk through ``post_message`` the way windows
do, and keep their own URL and navigation history.
"""
import asyncio
import logging
from typing import Callable, List, Optional
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger(__name__)

MessageListener = Callable[[dict], None]


class BrowsingContext:
    def __init__(self, url: str = "/", origin: str = "http://localhost", parent: Optional["BrowsingContext"] = None):
        self.origin = origin
        self.parent = parent
        self.history: List[str] = [url]
        self._listeners: List[MessageListener] = []

    @property
    def url(self) -> str:
        return self.history[-1]

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @property
    def query(self) -> dict:
        params = parse_qs(urlsplit(self.url).query)
        return {name: values[0] for name, values in params.items()}

    @property
    def embedded(self) -> bool:
        return self.parent is not None

    def add_message_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def dispatch_message(self, data) -> None:
        """Deliver ``data`` to every listener now."""
        for listener in list(self._listeners):
            try:
                listener(data)
            except Exception:
                logger.exception("Message listener failed")

    def post_message(self, data) -> None:
        """Queue ``data`` for delivery on the next loop iteration."""
        asyncio.get_running_loop().call_soon(self.dispatch_message, data)

    def post_to_parent(self, data) -> bool:
        if self.parent is None:
            return False
        self.parent.post_message(data)
        return True

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)

    def navigate(self, url: str, replace: bool = False) -> None:
        if replace:
            self.history[-1] = url
        else:
            self.history.append(url)
        logger.debug("Navigated to %s (replace=%s)", url, replace)
