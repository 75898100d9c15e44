"""
Forwarding channel base class.

A channel pairs one topic descriptor with the one endpoint it owns and with
its local-bus binding. Concrete channels add the per-direction behavior:
rate-limited forwarding for send topics, a receive worker for receive
topics.
"""

from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any

import structlog

from topicbridge.bus.codecs import Codec
from topicbridge.bus.message_bus import LocalBus
from topicbridge.core.topics import TopicDescriptor
from topicbridge.transport.pool import EndpointPool
from topicbridge.transport.zmq_transport import Endpoint

logger = structlog.get_logger()


class ChannelState(Enum):
    """Lifecycle states for a channel."""

    CREATED = auto()
    OPEN = auto()  # Endpoint open
    ATTACHED = auto()  # Bound to the local bus
    RUNNING = auto()  # Receive worker running
    CLOSED = auto()


class ForwardingChannel(ABC):
    """Base for send and receive channels."""

    def __init__(
        self,
        descriptor: TopicDescriptor,
        codec: Codec,
        pool: EndpointPool,
    ) -> None:
        self._descriptor = descriptor
        self._codec = codec
        self._pool = pool
        self._endpoint: Endpoint | None = None
        self._bus: LocalBus | None = None
        self._bus_handle: str | None = None
        self._state = ChannelState.CREATED
        self._log = logger.bind(
            component=type(self).__name__,
            topic=descriptor.name,
            direction=descriptor.direction.value,
        )

    # --- Properties ---

    @property
    def descriptor(self) -> TopicDescriptor:
        return self._descriptor

    @property
    def name(self) -> str:
        return self._descriptor.name

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def endpoint(self) -> Endpoint | None:
        return self._endpoint

    @property
    def bus_handle(self) -> str | None:
        return self._bus_handle

    # --- Lifecycle ---

    @abstractmethod
    def open_endpoint(self) -> None:
        """Open the network endpoint this channel owns."""

    @abstractmethod
    def attach(self, bus: LocalBus) -> None:
        """Bind the channel to the local bus."""

    @abstractmethod
    def _detach(self) -> None:
        """Undo ``attach``."""

    @abstractmethod
    def shutdown(self, join_timeout: float | None = None) -> None:
        """Release everything the channel holds, in the channel's own order."""

    def _close_endpoint(self) -> None:
        if self._endpoint is None:
            return
        endpoint, self._endpoint = self._endpoint, None
        self._pool.close(endpoint)

    def _step(self, event: str, action: Any, *args: Any) -> bool:
        """Run one shutdown step; failures are logged so later steps still run."""
        try:
            action(*args)
            return True
        except Exception:
            self._log.exception(event)
            return False

    @abstractmethod
    def stats_dict(self) -> dict[str, Any]:
        """Runtime statistics for health reporting."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._descriptor}, {self._state.name})"
