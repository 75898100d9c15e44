"""
Inbound receiver: network -> local bus for one receive topic.

Each receiver owns a worker thread that blocks in the transport for at
most one poll interval at a time, reassembles frames from whatever chunks
arrive, decodes them and republishes on the local bus. Clearing the
liveness flag and closing the endpoint stops it.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from topicbridge.bridge.channel import ChannelState, ForwardingChannel
from topicbridge.bus.codecs import Codec
from topicbridge.bus.message_bus import LocalBus
from topicbridge.core.errors import EndpointClosed, FrameError
from topicbridge.core.framing import FrameBuffer
from topicbridge.core.topics import TopicDescriptor
from topicbridge.transport.pool import EndpointPool

LinkCallback = Callable[[TopicDescriptor], None]


@dataclass
class ReceiveStats:
    chunks_received: int = 0
    bytes_received: int = 0
    frames_received: int = 0
    published: int = 0
    decode_errors: int = 0
    frame_errors: int = 0
    link_established_count: int = 0


class InboundReceiver(ForwardingChannel):
    """
    Receives one topic from its subscribe endpoint and republishes it.

    Args:
        descriptor: Receive topic descriptor
        codec: Deserializer for the topic's type tag
        pool: Endpoint pool that opens the subscribe endpoint
        poll_interval: Longest single wait in the transport, in seconds
        link_idle_timeout: Silence after which the link counts as down
        max_payload_size: Reject frame headers announcing more than this
        on_link_established: Called once per link-up transition
        clock: Monotonic clock in seconds
    """

    def __init__(
        self,
        descriptor: TopicDescriptor,
        codec: Codec,
        pool: EndpointPool,
        *,
        poll_interval: float = 0.1,
        link_idle_timeout: float = 3.0,
        max_payload_size: int | None = None,
        on_link_established: LinkCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(descriptor, codec, pool)
        self._poll_interval = poll_interval
        self._link_idle_timeout = link_idle_timeout
        self._on_link_established = on_link_established
        self._clock = clock
        self._frames = FrameBuffer(max_payload_size)
        self._alive = threading.Event()
        self._thread: threading.Thread | None = None
        self._link_up = False
        self._last_frame_at: float | None = None
        self._stats = ReceiveStats()

    @property
    def stats(self) -> ReceiveStats:
        return self._stats

    @property
    def is_alive(self) -> bool:
        """Liveness flag: the worker keeps looping while this is set."""
        return self._alive.is_set()

    @property
    def link_up(self) -> bool:
        return self._link_up

    @property
    def worker(self) -> threading.Thread | None:
        return self._thread

    # --- Lifecycle ---

    def open_endpoint(self) -> None:
        self._endpoint = self._pool.open_receive(self._descriptor)
        self._state = ChannelState.OPEN

    def attach(self, bus: LocalBus) -> None:
        self._bus = bus
        self._bus_handle = bus.advertise(self._descriptor.name, self._descriptor.type_tag)
        self._state = ChannelState.ATTACHED
        self._log.info("receiver_attached", url=self._descriptor.url)

    def _detach(self) -> None:
        if self._bus is not None and self._bus_handle is not None:
            self._bus.unadvertise(self._bus_handle)
        self._bus_handle = None

    def start(self) -> None:
        """Spawn the worker thread."""
        if self._thread is not None:
            raise RuntimeError(f"Receiver for {self.name} already started")
        if self._endpoint is None:
            raise RuntimeError(f"Receiver for {self.name} has no open endpoint")

        self._alive.set()
        self._thread = threading.Thread(
            target=self.run,
            name=f"recv-{self.name}",
            daemon=True,
        )
        self._thread.start()
        self._state = ChannelState.RUNNING

    def stop_worker(self, join_timeout: float | None = None) -> bool:
        """
        Clear the liveness flag, close the endpoint and join the worker.

        Returns:
            False if the worker did not exit within ``join_timeout``
        """
        self._alive.clear()
        self._step("endpoint_close_failed", self._close_endpoint)

        if self._thread is None or self._thread is threading.current_thread():
            return True
        self._thread.join(join_timeout)
        if self._thread.is_alive():
            self._log.warning("worker_join_timeout", timeout=join_timeout)
            return False
        return True

    def shutdown(self, join_timeout: float | None = None) -> None:
        """Stop the worker, then withdraw the local-bus publication."""
        if self._state is ChannelState.CLOSED:
            return
        self.stop_worker(join_timeout)
        self._step("unadvertise_failed", self._detach)
        self._state = ChannelState.CLOSED
        self._log.info("receiver_closed", **asdict(self._stats))

    # --- Worker ---

    def run(self) -> None:
        """Worker loop: receive, reassemble, decode, republish."""
        self._log.debug("worker_started")
        transport = self._pool.transport

        while self._alive.is_set():
            endpoint = self._endpoint
            if endpoint is None:
                break
            try:
                chunk = transport.receive(endpoint, self._poll_interval)
            except EndpointClosed:
                break
            except Exception:
                self._log.exception("receive_failed")
                break

            if chunk is None:
                self._drop_stale_partial()
                self._check_idle()
                continue
            self.process_chunk(chunk)

        self._alive.clear()
        self._log.debug("worker_stopped")

    def process_chunk(self, chunk: bytes) -> int:
        """
        Feed one transport chunk and republish every frame it completes.

        Returns:
            Number of messages published
        """
        self._stats.chunks_received += 1
        self._stats.bytes_received += len(chunk)

        discards = self._frames.discards
        try:
            payloads = self._frames.feed(chunk)
        except FrameError as exc:
            self._stats.frame_errors += 1
            self._log.error("decode_failed", reason=str(exc), stage="frame")
            return 0
        if self._frames.discards > discards:
            self._stats.frame_errors += 1
            self._log.error("decode_failed", reason="truncated frame dropped", stage="frame")

        published = 0
        for payload in payloads:
            self._stats.frames_received += 1
            self._mark_link_up()
            try:
                message = self._codec.decode(payload)
            except Exception:
                self._stats.decode_errors += 1
                self._log.exception(
                    "decode_failed",
                    stage="codec",
                    type_tag=self._descriptor.type_tag,
                    size=len(payload),
                )
                continue

            if self._bus is not None and self._bus_handle is not None:
                if self._bus.publish(self._bus_handle, message):
                    self._stats.published += 1
                    published += 1
        return published

    def _drop_stale_partial(self) -> None:
        """A partial frame that saw a whole poll interval of silence will never complete."""
        dropped = self._frames.discard()
        if dropped:
            self._stats.frame_errors += 1
            self._log.error(
                "decode_failed", reason="stale partial frame dropped", stage="frame", size=dropped
            )

    def _mark_link_up(self) -> None:
        self._last_frame_at = self._clock()
        if self._link_up:
            return

        self._link_up = True
        self._stats.link_established_count += 1
        self._log.info("link_established", url=self._descriptor.url)
        if self._on_link_established is not None:
            try:
                self._on_link_established(self._descriptor)
            except Exception:
                self._log.exception("link_callback_failed")

    def _check_idle(self) -> None:
        if not self._link_up or self._last_frame_at is None:
            return
        if self._clock() - self._last_frame_at > self._link_idle_timeout:
            self._link_up = False
            self._log.warning("link_idle", idle_timeout=self._link_idle_timeout)

    def stats_dict(self) -> dict[str, Any]:
        return {
            "state": self._state.name,
            "link_up": self._link_up,
            "pending_bytes": self._frames.pending,
            **asdict(self._stats),
        }
