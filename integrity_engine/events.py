"""
Violation event bus.

Decouples the monitor from whoever consumes violations (UI badge,
submission gate, audit log). Delivery is synchronous and in publish order.
"""

import logging
import queue
import threading
from typing import Callable, List

from .models import ViolationEvent


ViolationCallback = Callable[[ViolationEvent], None]


class Subscription:
    """Handle returned by ViolationBus.subscribe()."""

    def __init__(self, bus: 'ViolationBus', callback: ViolationCallback):
        self.bus = bus
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> bool:
        if not self.active:
            return False
        self.active = False
        return self.bus.unsubscribe(self.callback)


class ViolationBus:
    """Fan-out of ViolationEvents to any number of subscribers."""

    def __init__(self):
        self.subscribers: List[ViolationCallback] = []
        self.lock = threading.RLock()
        self.closed = False
        self.published_count = 0
        self.logger = logging.getLogger(__name__)

    def subscribe(self, callback: ViolationCallback) -> Subscription:
        """
        Register a callback invoked once for every published event.

        Args:
            callback: Function taking a single ViolationEvent

        Returns:
            Subscription handle that can unsubscribe the callback
        """
        with self.lock:
            self.subscribers.append(callback)
        self.logger.debug(f"Added violation subscriber {callback!r}")
        return Subscription(self, callback)

    def subscribe_queue(self, maxsize: int = 0) -> 'queue.Queue[ViolationEvent]':
        """Register a queue channel for pull-style consumers."""
        channel: 'queue.Queue[ViolationEvent]' = queue.Queue(maxsize=maxsize)

        def _enqueue(event: ViolationEvent) -> None:
            try:
                channel.put_nowait(event)
            except queue.Full:
                self.logger.warning(f"Violation channel full, dropping {event}")

        self.subscribe(_enqueue)
        return channel

    def unsubscribe(self, callback: ViolationCallback) -> bool:
        with self.lock:
            if callback in self.subscribers:
                self.subscribers.remove(callback)
                return True
        return False

    def publish(self, event: ViolationEvent) -> int:
        """
        Deliver an event to every current subscriber.

        A failing subscriber is logged and skipped.

        Returns:
            Number of subscribers that received the event without error
        """
        with self.lock:
            if self.closed:
                return 0
            subscribers = list(self.subscribers)
            self.published_count += 1

            delivered = 0
            for callback in subscribers:
                try:
                    callback(event)
                    delivered += 1
                except Exception as e:
                    self.logger.error(f"Violation subscriber {callback!r} failed on {event}: {e}")

        return delivered

    def close(self) -> None:
        """Drop all subscribers; later publishes are ignored."""
        with self.lock:
            self.closed = True
            self.subscribers.clear()

    @property
    def subscriber_count(self) -> int:
        with self.lock:
            return len(self.subscribers)
