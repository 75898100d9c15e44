"""
Network transport over ZeroMQ PUB/SUB sockets.

ZeroMQ reconnects on its own and fans one PUB socket out to any number of
SUB peers, so the bridge never handles connection loss itself. A PUB socket
never blocks on send: when a peer cannot keep up, messages are dropped at
the high-water mark.

ZeroMQ sockets must not be used from two threads at once. Each endpoint
serializes access through a lock, and ``receive`` blocks in ``poll`` for at
most one interval while holding it, so a ``close`` from another thread
waits at most that long before the socket is released.
"""

import threading
from enum import Enum, auto
from typing import Protocol

import structlog
import zmq

from topicbridge.core.errors import BindError, ConnectError, EndpointClosed

logger = structlog.get_logger()


class EndpointRole(Enum):
    PUBLISH = auto()
    SUBSCRIBE = auto()


class SendResult(Enum):
    """Outcome of a non-blocking send."""

    OK = auto()
    WOULD_BLOCK = auto()  # Transport could not take the frame now; it is dropped
    CLOSED = auto()  # Endpoint already closed (shutdown race)


class Endpoint(Protocol):
    url: str
    role: EndpointRole

    @property
    def closed(self) -> bool: ...


class Transport(Protocol):
    """The network operations the bridge relies on."""

    def open_publish(self, url: str) -> Endpoint: ...

    def open_subscribe(self, url: str) -> Endpoint: ...

    def send_nonblocking(self, endpoint: Endpoint, data: bytes) -> SendResult: ...

    def receive(self, endpoint: Endpoint, timeout: float) -> bytes | None: ...

    def close(self, endpoint: Endpoint) -> None: ...

    def shutdown(self) -> None: ...


class ZmqEndpoint:
    """One ZeroMQ socket plus the lock that guards it."""

    def __init__(self, socket: zmq.Socket, url: str, role: EndpointRole) -> None:
        self.socket = socket
        self.url = url
        self.role = role
        self.lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"ZmqEndpoint({self.role.name} {self.url} {state})"


class ZmqTransport:
    """
    PUB/SUB transport backed by one ZeroMQ context.

    Args:
        context: Shared context; a private one is created when omitted
        send_hwm: Optional send high-water mark for PUB sockets
        recv_hwm: Optional receive high-water mark for SUB sockets
    """

    def __init__(
        self,
        context: zmq.Context | None = None,
        send_hwm: int | None = None,
        recv_hwm: int | None = None,
    ) -> None:
        self._context = context or zmq.Context()
        self._owns_context = context is None
        self._send_hwm = send_hwm
        self._recv_hwm = recv_hwm
        self._endpoints: list[ZmqEndpoint] = []
        self._lock = threading.Lock()
        self._log = logger.bind(component="zmq_transport")

    def _socket(self, kind: int) -> zmq.Socket:
        socket = self._context.socket(kind)
        # Never hold the process open for unsent messages on close
        socket.setsockopt(zmq.LINGER, 0)
        return socket

    def _track(self, endpoint: ZmqEndpoint) -> ZmqEndpoint:
        with self._lock:
            self._endpoints.append(endpoint)
        return endpoint

    def open_publish(self, url: str) -> ZmqEndpoint:
        """
        Bind a PUB socket.

        Raises:
            BindError: Address in use, unavailable or malformed
        """
        socket = self._socket(zmq.PUB)
        if self._send_hwm is not None:
            socket.setsockopt(zmq.SNDHWM, self._send_hwm)
        try:
            socket.bind(url)
        except zmq.ZMQError as exc:
            socket.close(linger=0)
            raise BindError(url, exc.strerror) from exc

        self._log.debug("socket_bound", url=url)
        return self._track(ZmqEndpoint(socket, url, EndpointRole.PUBLISH))

    def open_subscribe(self, url: str) -> ZmqEndpoint:
        """
        Connect a SUB socket accepting every message from the peer.

        Raises:
            ConnectError: Malformed address
        """
        socket = self._socket(zmq.SUB)
        if self._recv_hwm is not None:
            socket.setsockopt(zmq.RCVHWM, self._recv_hwm)
        socket.setsockopt(zmq.SUBSCRIBE, b"")
        try:
            socket.connect(url)
        except zmq.ZMQError as exc:
            socket.close(linger=0)
            raise ConnectError(url, exc.strerror) from exc

        self._log.debug("socket_connected", url=url)
        return self._track(ZmqEndpoint(socket, url, EndpointRole.SUBSCRIBE))

    def send_nonblocking(self, endpoint: ZmqEndpoint, data: bytes) -> SendResult:
        with endpoint.lock:
            if endpoint.closed:
                return SendResult.CLOSED
            try:
                endpoint.socket.send(data, zmq.NOBLOCK, copy=False)
            except zmq.Again:
                return SendResult.WOULD_BLOCK
            except zmq.ZMQError as exc:
                if exc.errno in (zmq.ETERM, zmq.ENOTSOCK):
                    return SendResult.CLOSED
                raise
        return SendResult.OK

    def receive(self, endpoint: ZmqEndpoint, timeout: float) -> bytes | None:
        """
        Wait up to ``timeout`` seconds for one transport message.

        Returns:
            The message bytes, or None if nothing arrived in time

        Raises:
            EndpointClosed: The endpoint was closed
        """
        with endpoint.lock:
            if endpoint.closed:
                raise EndpointClosed(endpoint.url)
            try:
                if not endpoint.socket.poll(int(timeout * 1000), zmq.POLLIN):
                    return None
                return endpoint.socket.recv(zmq.NOBLOCK)
            except zmq.Again:
                return None
            except zmq.ZMQError as exc:
                if exc.errno in (zmq.ETERM, zmq.ENOTSOCK):
                    raise EndpointClosed(endpoint.url) from exc
                raise

    def close(self, endpoint: ZmqEndpoint) -> None:
        """Close an endpoint. Safe to call more than once."""
        with endpoint.lock:
            if endpoint.closed:
                return
            endpoint.socket.close(linger=0)
            endpoint._closed = True

        with self._lock:
            if endpoint in self._endpoints:
                self._endpoints.remove(endpoint)
        self._log.debug("socket_closed", url=endpoint.url, role=endpoint.role.name)

    def shutdown(self) -> None:
        """Close every remaining endpoint and release the context."""
        with self._lock:
            remaining = list(self._endpoints)
        for endpoint in remaining:
            self.close(endpoint)
        if self._owns_context and not self._context.closed:
            self._context.term()
        self._log.debug("transport_shutdown", closed=len(remaining))
