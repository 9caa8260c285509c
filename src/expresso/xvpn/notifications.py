"""Notification categories, subscriber registry and one-shot waiters."""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Optional

CONNECTED = "connected"
STATUS_CHANGED = "status_changed"
FULL_STATUS = "full_status"
CONNECTION_PROGRESS = "connection_progress"
LOCATIONS_UPDATED = "locations_updated"

CATEGORIES = (
    CONNECTED,
    STATUS_CHANGED,
    FULL_STATUS,
    CONNECTION_PROGRESS,
    LOCATIONS_UPDATED,
)

NotificationHandler = Callable[[Any], None]
HandlerErrorSink = Callable[[str, Exception], None]


class NotificationHub:
    """Multicast registry keyed by category.

    Subscriptions may change from any thread; delivery happens on the thread
    that calls :meth:`publish`, to a copy of the current subscriber list.
    """

    def __init__(self, on_handler_error: Optional[HandlerErrorSink] = None) -> None:
        self._subscribers: DefaultDict[str, List[NotificationHandler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._on_handler_error = on_handler_error

    def subscribe(self, category: str, handler: NotificationHandler) -> None:
        if category not in CATEGORIES:
            raise ValueError("unknown notification category: {0}".format(category))
        with self._lock:
            if handler in self._subscribers[category]:
                raise ValueError("handler already subscribed to {0}".format(category))
            self._subscribers[category].append(handler)

    def unsubscribe(self, category: str, handler: NotificationHandler) -> bool:
        with self._lock:
            handlers = self._subscribers.get(category, [])
            if handler not in handlers:
                return False
            handlers.remove(handler)
            return True

    def subscriber_count(self, category: str) -> int:
        with self._lock:
            return len(self._subscribers.get(category, []))

    def publish(self, category: str, value: Any = None) -> None:
        with self._lock:
            handlers = list(self._subscribers.get(category, []))
        for handler in handlers:
            try:
                handler(value)
            except Exception as exc:
                # One failing subscriber must not starve the others.
                if self._on_handler_error is not None:
                    self._on_handler_error(category, exc)


class Waiter:
    """One-shot subscription fulfilled by the next notification of a category."""

    def __init__(self, hub: NotificationHub, category: str) -> None:
        self._hub = hub
        self.category = category
        self.value: Any = None
        self._event = threading.Event()
        self._registered = False

    def __enter__(self) -> "Waiter":
        self._hub.subscribe(self.category, self._fulfil)
        self._registered = True
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._registered:
            self._hub.unsubscribe(self.category, self._fulfil)
            self._registered = False

    @property
    def fulfilled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(max(0.0, timeout))

    def _fulfil(self, value: Any) -> None:
        if self._event.is_set():
            return
        self.value = value
        self._event.set()
