"""Process-wide "something changed" broadcaster."""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class ChangeNotifier:
    """Fan-out of payload-less change signals to subscribed callbacks.

    Handlers are called synchronously in registration order. A handler that
    raises is logged and skipped; the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[], None]] = []

    def subscribe(self, handler: Callable[[], None]) -> Callable[[], None]:
        """Register *handler* and return a callable that unregisters it."""
        with self._lock:
            self._subscribers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._subscribers:
                    self._subscribers.remove(handler)

        return unsubscribe

    def notify(self) -> None:
        with self._lock:
            snapshot = list(self._subscribers)
        for handler in snapshot:
            try:
                handler()
            except Exception:
                logger.exception("Change subscriber %r failed", handler)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
