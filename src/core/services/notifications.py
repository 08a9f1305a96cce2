"""
In-process notification bus for tracking outcomes.

Other subsystems subscribe to ``entity.viewed``, ``entity.added_to_cart``
and ``order.tracked``.

A failing subscriber is logged and skipped; publishing never raises.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

ENTITY_VIEWED = "entity.viewed"
ENTITY_ADDED_TO_CART = "entity.added_to_cart"
ORDER_TRACKED = "order.tracked"


@dataclass(frozen=True)
class Notification:
    """A published tracking notification."""

    name: str
    payload: dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[Notification], None]


class NotificationBus:
    """Synchronous publish/subscribe by notification name."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = {}
        self._lock = threading.Lock()

    def subscribe(self, name: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.setdefault(name, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(name, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, name: str, **payload: Any) -> Notification:
        """Deliver a notification to every subscriber of ``name``."""
        notification = Notification(name=name, payload=payload)
        with self._lock:
            callbacks = list(self._subscribers.get(name, []))

        for callback in callbacks:
            try:
                callback(notification)
            except Exception:
                logger.exception("Subscriber failed for %s", name)

        return notification


class RecordingBus(NotificationBus):
    """Bus that also keeps every published notification (for testing)."""

    def __init__(self) -> None:
        super().__init__()
        self.published: list[Notification] = []

    def publish(self, name: str, **payload: Any) -> Notification:
        notification = super().publish(name, **payload)
        self.published.append(notification)
        return notification

    def names(self) -> list[str]:
        return [n.name for n in self.published]
