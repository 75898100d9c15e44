"""
Local publish-subscribe bus.

``LocalBus`` is the interface the bridge consumes. ``MessageBus`` is an
in-process implementation: publishing is thread-safe and only enqueues,
while delivery to subscriber callbacks happens on a single dispatch
thread, so callbacks never run concurrently with each other.
"""

import queue
import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog
from ulid import ULID

from topicbridge.core.errors import TypeTagMismatch

logger = structlog.get_logger()

MessageCallback = Callable[[Any], None]


class LocalBus(Protocol):
    """The local bus operations the bridge relies on."""

    def subscribe(self, topic: str, type_tag: str, callback: MessageCallback) -> str: ...

    def unsubscribe(self, handle: str) -> bool: ...

    def advertise(self, topic: str, type_tag: str) -> str: ...

    def publish(self, handle: str, message: Any) -> bool: ...

    def unadvertise(self, handle: str) -> bool: ...


@dataclass
class Subscription:
    """A callback registered for one topic."""

    id: str
    topic: str
    type_tag: str
    callback: MessageCallback
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class Publication:
    """A publish handle for one topic."""

    id: str
    topic: str
    type_tag: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class MessageBusStats:
    """Statistics for the message bus."""

    total_messages_published: int = 0
    total_messages_delivered: int = 0
    total_subscriptions: int = 0
    total_publications: int = 0
    total_errors: int = 0


_STOP = object()


class MessageBus:
    """
    Thread-dispatched pub/sub bus keyed by topic name.

    Features:
    - One type tag per topic name, enforced on subscribe and advertise
    - Thread-safe publish from any thread
    - Serialized delivery on one dispatch thread (``start``/``stop``), or
      in the caller's thread via ``spin_once``
    - Error isolation (one callback failure doesn't affect others)
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self._subscriptions_by_id: dict[str, Subscription] = {}
        self._publications: dict[str, Publication] = {}
        self._topic_types: dict[str, str] = {}
        self._queue: queue.Queue[Any] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._stats = MessageBusStats()
        self._log = logger.bind(component="message_bus")

    @property
    def stats(self) -> MessageBusStats:
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        """Messages published but not yet delivered."""
        return self._queue.qsize()

    # --- Registration ---

    def _claim_topic(self, topic: str, type_tag: str) -> None:
        known = self._topic_types.get(topic)
        if known is not None and known != type_tag:
            raise TypeTagMismatch(
                f"Topic '{topic}' is registered as '{known}', not '{type_tag}'"
            )
        self._topic_types[topic] = type_tag

    def _release_topic(self, topic: str) -> None:
        in_use = self._subscriptions.get(topic) or any(
            p.topic == topic for p in self._publications.values()
        )
        if not in_use:
            self._topic_types.pop(topic, None)
            self._subscriptions.pop(topic, None)

    def subscribe(self, topic: str, type_tag: str, callback: MessageCallback) -> str:
        """
        Subscribe a callback to a topic.

        Returns:
            Subscription handle for ``unsubscribe``
        """
        with self._lock:
            self._claim_topic(topic, type_tag)
            subscription = Subscription(
                id=str(ULID()),
                topic=topic,
                type_tag=type_tag,
                callback=callback,
            )
            self._subscriptions[topic].append(subscription)
            self._subscriptions_by_id[subscription.id] = subscription
            self._stats.total_subscriptions += 1

        self._log.debug("subscribed", topic=topic, subscription_id=subscription.id)
        return subscription.id

    def unsubscribe(self, handle: str) -> bool:
        """Remove a subscription. Returns False if the handle is unknown."""
        with self._lock:
            subscription = self._subscriptions_by_id.pop(handle, None)
            if subscription is None:
                return False
            self._subscriptions[subscription.topic] = [
                s for s in self._subscriptions[subscription.topic] if s.id != handle
            ]
            self._stats.total_subscriptions -= 1
            self._release_topic(subscription.topic)

        self._log.debug("unsubscribed", topic=subscription.topic, subscription_id=handle)
        return True

    def advertise(self, topic: str, type_tag: str) -> str:
        """
        Obtain a publish handle for a topic.

        Returns:
            Publication handle for ``publish`` and ``unadvertise``
        """
        with self._lock:
            self._claim_topic(topic, type_tag)
            publication = Publication(id=str(ULID()), topic=topic, type_tag=type_tag)
            self._publications[publication.id] = publication
            self._stats.total_publications += 1

        self._log.debug("advertised", topic=topic, publication_id=publication.id)
        return publication.id

    def unadvertise(self, handle: str) -> bool:
        """Drop a publish handle. Returns False if the handle is unknown."""
        with self._lock:
            publication = self._publications.pop(handle, None)
            if publication is None:
                return False
            self._stats.total_publications -= 1
            self._release_topic(publication.topic)

        self._log.debug("unadvertised", topic=publication.topic, publication_id=handle)
        return True

    def get_subscriptions(self, topic: str | None = None) -> list[Subscription]:
        with self._lock:
            if topic is None:
                return list(self._subscriptions_by_id.values())
            return list(self._subscriptions.get(topic, []))

    def get_publications(self) -> list[Publication]:
        with self._lock:
            return list(self._publications.values())

    # --- Publishing and delivery ---

    def publish(self, handle: str, message: Any) -> bool:
        """
        Queue a message for delivery.

        Publishing through an unknown or withdrawn handle is a no-op so
        that a publisher racing shutdown does not crash.

        Returns:
            True if the message was queued
        """
        with self._lock:
            publication = self._publications.get(handle)
            if publication is not None:
                self._queue.put((publication.topic, message))
                self._stats.total_messages_published += 1

        if publication is None:
            self._log.warning("publish_without_advertise", publication_id=handle)
            return False
        return True

    def _deliver(self, topic: str, message: Any) -> int:
        with self._lock:
            subscribers = list(self._subscriptions.get(topic, []))

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.callback(message)
                delivered += 1
            except Exception:
                self._stats.total_errors += 1
                self._log.exception(
                    "handler_failed",
                    topic=topic,
                    subscription_id=subscription.id,
                )

        self._stats.total_messages_delivered += delivered
        return delivered

    def spin_once(self, timeout: float | None = 0.0) -> int:
        """
        Deliver queued messages in the calling thread.

        Waits up to ``timeout`` seconds for the first message, then drains
        whatever else is already queued.

        Returns:
            Number of messages dispatched
        """
        dispatched = 0
        block = timeout is None or timeout > 0
        while True:
            try:
                item = self._queue.get(block=block and dispatched == 0, timeout=timeout)
            except queue.Empty:
                return dispatched
            if item is _STOP:
                # Leave the sentinel for the dispatch thread that owns it
                self._queue.put(_STOP)
                return dispatched
            self._deliver(*item)
            dispatched += 1

    def spin(self) -> None:
        """Deliver messages until ``stop`` is called."""
        self._log.debug("dispatch_started")
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            self._deliver(*item)
        self._log.debug("dispatch_stopped")

    def start(self) -> None:
        """Start the background dispatch thread."""
        if self.is_running:
            return
        self._thread = threading.Thread(target=self.spin, name="message-bus", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the dispatch thread after it drains queued messages."""
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout)
        if self._thread.is_alive():
            self._log.warning("dispatch_join_timeout", timeout=timeout)
        self._thread = None

    def clear(self) -> None:
        """Remove all subscriptions and publications."""
        with self._lock:
            count = len(self._subscriptions_by_id) + len(self._publications)
            self._subscriptions.clear()
            self._subscriptions_by_id.clear()
            self._publications.clear()
            self._topic_types.clear()
            self._stats.total_subscriptions = 0
            self._stats.total_publications = 0
        self._log.info("cleared", removed=count)
