"""
Outbound forwarder: local bus -> network for one send topic.

``on_message`` runs inside the local bus dispatch thread. It never blocks:
rate-limited messages are dropped before encoding, and frames the
transport cannot take right away are dropped rather than queued.
"""

import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from topicbridge.bridge.channel import ChannelState, ForwardingChannel
from topicbridge.bus.codecs import Codec
from topicbridge.bus.message_bus import LocalBus
from topicbridge.core import framing
from topicbridge.core.topics import TopicDescriptor
from topicbridge.transport.pool import EndpointPool
from topicbridge.transport.zmq_transport import SendResult

NANOS_PER_SECOND = 1_000_000_000

Clock = Callable[[], int]


@dataclass
class RateState:
    """When this topic last forwarded a message, in monotonic nanoseconds."""

    last_sent_at: int | None = None


@dataclass
class SendStats:
    received: int = 0
    forwarded: int = 0
    rate_limited: int = 0
    send_dropped: int = 0
    encode_errors: int = 0
    bytes_sent: int = 0


class OutboundForwarder(ForwardingChannel):
    """
    Forwards one local-bus topic to its publish endpoint.

    Args:
        descriptor: Send topic descriptor
        codec: Serializer for the topic's type tag
        pool: Endpoint pool that opens the publish endpoint
        clock: Monotonic clock in nanoseconds
    """

    def __init__(
        self,
        descriptor: TopicDescriptor,
        codec: Codec,
        pool: EndpointPool,
        clock: Clock = time.monotonic_ns,
    ) -> None:
        super().__init__(descriptor, codec, pool)
        self._clock = clock
        self._rate = RateState()
        self._stats = SendStats()

    @property
    def rate_state(self) -> RateState:
        return self._rate

    @property
    def stats(self) -> SendStats:
        return self._stats

    def open_endpoint(self) -> None:
        self._endpoint = self._pool.open_send(self._descriptor)
        self._state = ChannelState.OPEN

    def attach(self, bus: LocalBus) -> None:
        self._bus = bus
        self._bus_handle = bus.subscribe(
            self._descriptor.name, self._descriptor.type_tag, self.on_message
        )
        self._state = ChannelState.ATTACHED
        self._log.info("forwarder_attached", max_rate_hz=self._descriptor.max_rate_hz)

    def _detach(self) -> None:
        if self._bus is not None and self._bus_handle is not None:
            self._bus.unsubscribe(self._bus_handle)
        self._bus_handle = None

    def admit(self, now: int) -> bool:
        """
        Apply the rate limit at time ``now`` (ns).

        Integer nanoseconds keep the window comparison exact: at 10 Hz a
        message exactly 100 ms after the last one is admitted.
        """
        last = self._rate.last_sent_at
        if (
            self._descriptor.is_rate_limited
            and last is not None
            and (now - last) * self._descriptor.max_rate_hz < NANOS_PER_SECOND
        ):
            return False
        self._rate.last_sent_at = now
        return True

    def on_message(self, message: Any) -> SendResult | None:
        """
        Local bus callback.

        Returns:
            The send result, or None if the message was dropped before
            reaching the transport
        """
        self._stats.received += 1

        if not self.admit(self._clock()):
            self._stats.rate_limited += 1
            self._log.debug("rate_limited")
            return None

        try:
            payload = self._codec.encode(message)
        except Exception:
            self._stats.encode_errors += 1
            self._log.exception("encode_failed", type_tag=self._descriptor.type_tag)
            return None

        frame = framing.encode(payload)
        endpoint = self._endpoint
        if endpoint is None:
            result = SendResult.CLOSED
        else:
            result = self._pool.transport.send_nonblocking(endpoint, frame)

        if result is SendResult.OK:
            self._stats.forwarded += 1
            self._stats.bytes_sent += len(frame)
        else:
            self._stats.send_dropped += 1
            self._log.debug("send_dropped", result=result.name)
        return result

    def shutdown(self, join_timeout: float | None = None) -> None:
        """Unsubscribe first so no callback races the endpoint close."""
        if self._state is ChannelState.CLOSED:
            return
        self._step("unsubscribe_failed", self._detach)
        self._step("endpoint_close_failed", self._close_endpoint)
        self._state = ChannelState.CLOSED
        self._log.info("forwarder_closed", **asdict(self._stats))

    def stats_dict(self) -> dict[str, Any]:
        return {"state": self._state.name, **asdict(self._stats)}
