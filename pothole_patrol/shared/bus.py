from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict

Subscriber = Callable[[Any], None]


class EventBus:
    """Topic based publish/subscribe bus for patrol events.

    Listeners run synchronously on the publishing thread, in subscription
    order. ``subscribe`` returns a callable that removes the listener again.
    """

    def __init__(self) -> None:
        self._subscribers: DefaultDict[str, list[Subscriber]] = defaultdict(list)
        self._lock = threading.RLock()

    def subscribe(self, topic: str, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers[topic].append(callback)
        return lambda: self.unsubscribe(topic, callback)

    def unsubscribe(self, topic: str, callback: Subscriber) -> None:
        with self._lock:
            listeners = self._subscribers.get(topic)
            if not listeners or callback not in listeners:
                return
            listeners.remove(callback)
            if not listeners:
                del self._subscribers[topic]

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    def publish(self, topic: str, event: Any) -> int:
        """Deliver ``event`` to every listener of ``topic`` and return how many received it."""

        with self._lock:
            listeners = tuple(self._subscribers.get(topic, ()))
        for listener in listeners:
            listener(event)
        return len(listeners)


__all__ = ["EventBus", "Subscriber"]
