"""
Bridge: startup, shutdown, and lifecycle management.

Startup order:
    registry -> codecs -> bind send endpoints -> connect receive endpoints
    -> subscribe send topics -> advertise receive topics -> start workers

Shutdown order, each topic independent of the others:
    send:    unsubscribe -> close endpoint
    receive: clear liveness flag -> close endpoint -> join worker -> unadvertise
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from enum import Enum, auto
from typing import Any

import structlog
from ulid import ULID

from topicbridge.bridge.channel import ForwardingChannel
from topicbridge.bridge.forwarder import Clock, OutboundForwarder
from topicbridge.bridge.receiver import InboundReceiver, LinkCallback
from topicbridge.bus.codecs import Codec, CodecRegistry
from topicbridge.bus.message_bus import LocalBus
from topicbridge.config.schema import BridgeConfig
from topicbridge.core.registry import TopicRegistry
from topicbridge.core.topics import HostTable
from topicbridge.transport.pool import EndpointPool
from topicbridge.transport.zmq_transport import Transport

logger = structlog.get_logger()


class BridgeState(Enum):
    """Lifecycle states for the bridge."""

    CREATED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    STOPPED = auto()
    FAILED = auto()


class Bridge:
    """
    Owns every forwarding channel and drives their lifecycle.

    Responsibilities:
    - Resolve codecs and open endpoints before touching the local bus
    - Wire one forwarder per send topic and one receiver per receive topic
    - Release everything on shutdown, even when some steps fail
    - Provide health reporting
    """

    def __init__(
        self,
        registry: TopicRegistry,
        bus: LocalBus,
        transport: Transport,
        codecs: CodecRegistry | None = None,
        *,
        poll_interval: float = 0.1,
        link_idle_timeout: float = 3.0,
        join_timeout: float = 2.0,
        max_payload_size: int | None = None,
        on_link_established: LinkCallback | None = None,
        send_clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._bus = bus
        self._transport = transport
        self._codecs = codecs or CodecRegistry.with_defaults()
        self._pool = EndpointPool(transport)
        self._poll_interval = poll_interval
        self._link_idle_timeout = link_idle_timeout
        self._join_timeout = join_timeout
        self._max_payload_size = max_payload_size
        self._on_link_established = on_link_established
        self._send_clock = send_clock

        self._forwarders: list[OutboundForwarder] = []
        self._receivers: list[InboundReceiver] = []
        self._state = BridgeState.CREATED
        self._run_id = str(ULID())
        self._started_at: datetime | None = None
        self._stopped_at: datetime | None = None
        self._log = logger.bind(component="bridge", run_id=self._run_id)

    @classmethod
    def from_config(
        cls,
        config: BridgeConfig,
        bus: LocalBus,
        transport: Transport,
        codecs: CodecRegistry | None = None,
        **kwargs: Any,
    ) -> "Bridge":
        """
        Build the registry from configuration and create a bridge.

        Raises:
            ConfigError: If the configuration does not validate
        """
        registry = TopicRegistry.build(
            config.send_topics,
            config.recv_topics,
            HostTable.from_mapping(config.hosts),
            max_topics=config.max_topics,
        )
        return cls(
            registry,
            bus,
            transport,
            codecs,
            poll_interval=config.poll_interval,
            link_idle_timeout=config.link_idle_timeout,
            join_timeout=config.join_timeout,
            max_payload_size=config.max_payload_size,
            **kwargs,
        )

    # --- Properties ---

    @property
    def state(self) -> BridgeState:
        return self._state

    @property
    def registry(self) -> TopicRegistry:
        return self._registry

    @property
    def pool(self) -> EndpointPool:
        return self._pool

    @property
    def forwarders(self) -> list[OutboundForwarder]:
        return list(self._forwarders)

    @property
    def receivers(self) -> list[InboundReceiver]:
        return list(self._receivers)

    @property
    def channels(self) -> list[ForwardingChannel]:
        return [*self._forwarders, *self._receivers]

    @property
    def is_running(self) -> bool:
        return self._state == BridgeState.RUNNING

    @property
    def uptime_seconds(self) -> float | None:
        """Get bridge uptime in seconds."""
        if not self._started_at:
            return None
        end_time = self._stopped_at or datetime.now(UTC)
        return (end_time - self._started_at).total_seconds()

    # --- Lifecycle ---

    def _resolve_codecs(self) -> dict[str, Codec]:
        return {tag: self._codecs.resolve(tag) for tag in sorted(self._registry.type_tags())}

    def start(self) -> None:
        """
        Open every endpoint, bind the local bus and start the receive workers.

        Any failure releases what was already acquired and re-raises.
        """
        if self._state != BridgeState.CREATED:
            raise RuntimeError(f"Cannot start bridge in state {self._state}")

        self._state = BridgeState.STARTING
        self._started_at = datetime.now(UTC)
        self._log.info(
            "bridge_starting",
            send_topics=len(self._registry.send_topics),
            recv_topics=len(self._registry.recv_topics),
        )

        try:
            # Unknown type tags fail here, before any socket exists
            codecs = self._resolve_codecs()

            for descriptor in self._registry.send_topics:
                kwargs = {"clock": self._send_clock} if self._send_clock else {}
                forwarder = OutboundForwarder(
                    descriptor, codecs[descriptor.type_tag], self._pool, **kwargs
                )
                self._forwarders.append(forwarder)
            for descriptor in self._registry.recv_topics:
                self._receivers.append(
                    InboundReceiver(
                        descriptor,
                        codecs[descriptor.type_tag],
                        self._pool,
                        poll_interval=self._poll_interval,
                        link_idle_timeout=self._link_idle_timeout,
                        max_payload_size=self._max_payload_size,
                        on_link_established=self._on_link_established,
                    )
                )

            for forwarder in self._forwarders:
                forwarder.open_endpoint()
            for receiver in self._receivers:
                receiver.open_endpoint()

            for forwarder in self._forwarders:
                forwarder.attach(self._bus)
            for receiver in self._receivers:
                receiver.attach(self._bus)

            for receiver in self._receivers:
                receiver.start()

            self._state = BridgeState.RUNNING
            self._log.info("bridge_started", endpoints=self._pool.open_count)

        except Exception:
            self._log.exception("bridge_start_failed")
            self._release()
            self._state = BridgeState.FAILED
            raise

    def stop(self) -> None:
        """Stop every channel. Safe to call more than once."""
        if self._state != BridgeState.RUNNING:
            return

        self._state = BridgeState.STOPPING
        self._log.info("bridge_stopping")
        self._release()
        self._stopped_at = datetime.now(UTC)
        self._state = BridgeState.STOPPED
        self._log.info("bridge_stopped", uptime_seconds=self.uptime_seconds)

    def _release(self) -> None:
        for forwarder in self._forwarders:
            self._shutdown_channel(forwarder)
        for receiver in self._receivers:
            self._shutdown_channel(receiver)

        # Anything opened but not yet owned by a channel (failed startup)
        self._pool.close_all()
        try:
            self._transport.shutdown()
        except Exception:
            self._log.exception("transport_shutdown_failed")

    def _shutdown_channel(self, channel: ForwardingChannel) -> None:
        try:
            channel.shutdown(self._join_timeout)
        except Exception:
            self._log.exception("channel_shutdown_failed", topic=channel.name)

    @contextmanager
    def run_context(self) -> Iterator["Bridge"]:
        """Context manager for running the bridge."""
        self.start()
        try:
            yield self
        finally:
            self.stop()

    def get_health(self) -> dict[str, Any]:
        """Get bridge health status."""
        return {
            "state": self._state.name,
            "run_id": self._run_id,
            "uptime_seconds": self.uptime_seconds,
            "endpoints_open": self._pool.open_count,
            "send": [{"topic": f.name, **f.stats_dict()} for f in self._forwarders],
            "receive": [{"topic": r.name, **r.stats_dict()} for r in self._receivers],
        }
