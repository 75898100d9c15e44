"""Shared fixtures: an in-memory transport and a bus that records calls."""

import queue
from typing import Any

import pytest

from topicbridge.bus.message_bus import MessageBus, MessageCallback
from topicbridge.config.schema import TopicSpec
from topicbridge.core.errors import BindError, EndpointClosed
from topicbridge.core.topics import Direction, HostTable, TopicDescriptor
from topicbridge.transport.zmq_transport import EndpointRole, SendResult

_CLOSED = object()


class FakeEndpoint:
    def __init__(self, url: str, role: EndpointRole) -> None:
        self.url = url
        self.role = role
        self.sent: list[bytes] = []
        self.inbox: queue.Queue[Any] = queue.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed


class FakeTransport:
    """
    In-memory stand-in for ZmqTransport.

    A frame sent on a publish endpoint is delivered to every open subscribe
    endpoint connected to the same URL. Closing an endpoint wakes a worker
    blocked in ``receive`` on it.
    """

    def __init__(self, events: list[tuple[str, str]] | None = None) -> None:
        self.events = events if events is not None else []
        self.endpoints: list[FakeEndpoint] = []
        self.fail_bind: set[str] = set()
        self.fail_close: set[str] = set()
        self.would_block = False
        self.shut_down = False

    def open_publish(self, url: str) -> FakeEndpoint:
        in_use = any(
            e.url == url and e.role is EndpointRole.PUBLISH and not e.closed
            for e in self.endpoints
        )
        if url in self.fail_bind or in_use:
            raise BindError(url, "Address already in use")
        endpoint = FakeEndpoint(url, EndpointRole.PUBLISH)
        self.endpoints.append(endpoint)
        self.events.append(("bind", url))
        return endpoint

    def open_subscribe(self, url: str) -> FakeEndpoint:
        endpoint = FakeEndpoint(url, EndpointRole.SUBSCRIBE)
        self.endpoints.append(endpoint)
        self.events.append(("connect", url))
        return endpoint

    def send_nonblocking(self, endpoint: FakeEndpoint, data: bytes) -> SendResult:
        if endpoint.closed:
            return SendResult.CLOSED
        if self.would_block:
            return SendResult.WOULD_BLOCK
        endpoint.sent.append(bytes(data))
        self.inject(endpoint.url, bytes(data))
        return SendResult.OK

    def receive(self, endpoint: FakeEndpoint, timeout: float) -> bytes | None:
        if endpoint.closed:
            raise EndpointClosed(endpoint.url)
        try:
            item = endpoint.inbox.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            raise EndpointClosed(endpoint.url)
        return item

    def close(self, endpoint: FakeEndpoint) -> None:
        self.events.append(("close", endpoint.url))
        if endpoint.url in self.fail_close:
            raise RuntimeError(f"close of {endpoint.url} stuck")
        if endpoint.closed:
            return
        endpoint._closed = True
        endpoint.inbox.put(_CLOSED)

    def shutdown(self) -> None:
        self.shut_down = True

    def inject(self, url: str, data: bytes) -> int:
        """Deliver raw bytes to every open subscriber of ``url``."""
        targets = [
            e for e in self.endpoints
            if e.url == url and e.role is EndpointRole.SUBSCRIBE and not e.closed
        ]
        for endpoint in targets:
            endpoint.inbox.put(data)
        return len(targets)

    def open_endpoints(self) -> list[FakeEndpoint]:
        return [e for e in self.endpoints if not e.closed]


class RecordingBus(MessageBus):
    """MessageBus that appends every registration change to a shared event list."""

    def __init__(self, events: list[tuple[str, str]]) -> None:
        super().__init__()
        self.events = events

    def subscribe(self, topic: str, type_tag: str, callback: MessageCallback) -> str:
        handle = super().subscribe(topic, type_tag, callback)
        self.events.append(("subscribe", topic))
        return handle

    def unsubscribe(self, handle: str) -> bool:
        topic = next((s.topic for s in self.get_subscriptions() if s.id == handle), "?")
        self.events.append(("unsubscribe", topic))
        return super().unsubscribe(handle)

    def advertise(self, topic: str, type_tag: str) -> str:
        handle = super().advertise(topic, type_tag)
        self.events.append(("advertise", topic))
        return handle

    def unadvertise(self, handle: str) -> bool:
        topic = next((p.topic for p in self.get_publications() if p.id == handle), "?")
        self.events.append(("unadvertise", topic))
        return super().unadvertise(handle)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: int | float = 0) -> None:
        self.now = start

    def __call__(self) -> Any:
        return self.now

    def advance(self, delta: int | float) -> None:
        self.now += delta


def make_descriptor(
    name: str = "/odom",
    *,
    direction: Direction = Direction.SEND,
    type_tag: str = "json",
    max_rate_hz: float = 0.0,
    port: int = 5001,
    address: str = "127.0.0.1",
) -> TopicDescriptor:
    return TopicDescriptor(
        name=name,
        type_tag=type_tag,
        max_rate_hz=max_rate_hz,
        remote_host="local",
        address=address,
        remote_port=port,
        direction=direction,
    )


def make_spec(name: str, port: int, host: str = "local", **kwargs: Any) -> TopicSpec:
    return TopicSpec(name=name, type=kwargs.pop("type", "json"), host=host, port=port, **kwargs)


@pytest.fixture
def events() -> list[tuple[str, str]]:
    return []


@pytest.fixture
def transport(events: list[tuple[str, str]]) -> FakeTransport:
    return FakeTransport(events)


@pytest.fixture
def bus(events: list[tuple[str, str]]) -> RecordingBus:
    return RecordingBus(events)


@pytest.fixture
def host_table() -> HostTable:
    return HostTable.from_mapping({"local": "127.0.0.1", "robot2": "10.0.0.2"})
