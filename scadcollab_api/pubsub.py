"""Keyed publish/subscribe channel used for push-based change delivery."""

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None] | Callable[[T], Awaitable[None]]


class Subscription(Generic[T]):
    """Handle returned by :meth:`Publisher.subscribe`."""

    def __init__(self, publisher: "Publisher[T]", key: str, listener: Listener):
        self._publisher = publisher
        self.key = key
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        """Stop delivery. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        self._publisher._remove(self)

    def __call__(self) -> None:
        self.unsubscribe()


class Publisher(Generic[T]):
    """Fan-out of values to listeners registered under a key.

    A listener is never invoked once its subscription has been cancelled,
    even when the cancellation happens while a publish is in progress.
    """

    def __init__(self, name: str = "publisher"):
        self.name = name
        self._listeners: dict[str, list[Subscription[T]]] = defaultdict(list)

    def subscribe(self, key: str, listener: Listener) -> Subscription[T]:
        subscription = Subscription(self, key, listener)
        self._listeners[key].append(subscription)
        return subscription

    def _remove(self, subscription: Subscription[T]) -> None:
        listeners = self._listeners.get(subscription.key)
        if not listeners:
            return
        if subscription in listeners:
            listeners.remove(subscription)
        if not listeners:
            del self._listeners[subscription.key]

    def has_subscribers(self, key: str) -> bool:
        return bool(self._listeners.get(key))

    def subscriber_count(self, key: str) -> int:
        return len(self._listeners.get(key, []))

    async def publish(self, key: str, value: T) -> None:
        """Deliver ``value`` to every active listener under ``key``."""
        for subscription in list(self._listeners.get(key, [])):
            await self.deliver(subscription, value)

    async def deliver(self, subscription: Subscription[T], value: T) -> None:
        """Deliver to a single subscription, swallowing listener failures."""
        if not subscription.active:
            return
        try:
            result: Any = subscription.listener(value)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                f"[{self.name}] Listener for {subscription.key} failed: {e}", exc_info=True
            )
