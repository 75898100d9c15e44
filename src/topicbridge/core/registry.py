"""
Topic registry for the bridge.

The registry is built once from configuration and is read-only afterwards.
All validation happens in ``build`` so that a bad configuration aborts the
run before any endpoint is opened.
"""

from collections.abc import Iterator, Sequence

import structlog
from pydantic import ValidationError

from topicbridge.config.schema import TopicSpec
from topicbridge.core.errors import ConfigError, ExitCode
from topicbridge.core.topics import Direction, HostTable, TopicDescriptor

logger = structlog.get_logger()


class TopicRegistry:
    """
    Ordered, validated send and receive topic descriptors.

    Order is configuration order and drives startup order, so startup
    logs are deterministic.
    """

    def __init__(
        self,
        send_topics: Sequence[TopicDescriptor] = (),
        recv_topics: Sequence[TopicDescriptor] = (),
    ) -> None:
        self._send = tuple(send_topics)
        self._recv = tuple(recv_topics)

    @classmethod
    def build(
        cls,
        send_specs: Sequence[TopicSpec] | None,
        recv_specs: Sequence[TopicSpec] | None,
        host_table: HostTable,
        max_topics: int | None = None,
    ) -> "TopicRegistry":
        """
        Validate configuration and build the registry.

        Args:
            send_specs: Local -> remote topics, in configuration order
            recv_specs: Remote -> local topics, in configuration order
            host_table: Symbolic host name resolution table
            max_topics: Optional per-direction topic count limit

        Returns:
            The registry

        Raises:
            ConfigError: On unresolved host, negative rate, duplicate send
                port or too many topics
        """
        send_specs = list(send_specs or [])
        recv_specs = list(recv_specs or [])
        log = logger.bind(component="topic_registry")

        if max_topics is not None:
            for label, specs in (("send", send_specs), ("receive", recv_specs)):
                if len(specs) > max_topics:
                    raise ConfigError(
                        f"{len(specs)} {label} topics configured, limit is {max_topics}",
                        code=ExitCode.TOPIC_LIMIT,
                    )

        send: list[TopicDescriptor] = []
        ports: dict[int, str] = {}
        for spec in send_specs:
            descriptor = cls._describe(spec, Direction.SEND, host_table)
            if descriptor.remote_port in ports:
                raise ConfigError(
                    f"Send topics '{ports[descriptor.remote_port]}' and '{descriptor.name}' "
                    f"share port {descriptor.remote_port}",
                    code=ExitCode.DUPLICATE_PORT,
                )
            ports[descriptor.remote_port] = descriptor.name
            send.append(descriptor)

        # Receive topics may share an address; each gets its own connection.
        recv = [cls._describe(spec, Direction.RECEIVE, host_table) for spec in recv_specs]

        registry = cls(send, recv)
        for descriptor in registry:
            log.info(
                "registry_topic",
                direction=descriptor.direction.value,
                topic=descriptor.name,
                type_tag=descriptor.type_tag,
                url=descriptor.url,
                max_rate_hz=descriptor.max_rate_hz,
            )
        return registry

    @staticmethod
    def _describe(
        spec: TopicSpec,
        direction: Direction,
        host_table: HostTable,
    ) -> TopicDescriptor:
        if spec.max_rate_hz < 0:
            raise ConfigError(
                f"Topic '{spec.name}' has negative max_rate_hz {spec.max_rate_hz}",
                code=ExitCode.INVALID_CONFIG,
            )
        address = host_table.resolve(spec.host)
        try:
            return TopicDescriptor(
                name=spec.name,
                type_tag=spec.type,
                # Receive side is never rate limited
                max_rate_hz=spec.max_rate_hz if direction is Direction.SEND else 0.0,
                remote_host=spec.host,
                address=address,
                remote_port=spec.port,
                direction=direction,
            )
        except ValidationError as exc:
            raise ConfigError(f"Topic '{spec.name}': {exc}", code=ExitCode.INVALID_CONFIG) from exc

    @property
    def send_topics(self) -> tuple[TopicDescriptor, ...]:
        return self._send

    @property
    def recv_topics(self) -> tuple[TopicDescriptor, ...]:
        return self._recv

    def get(self, name: str, direction: Direction) -> TopicDescriptor | None:
        """Get a descriptor by topic name and direction."""
        topics = self._send if direction is Direction.SEND else self._recv
        for descriptor in topics:
            if descriptor.name == name:
                return descriptor
        return None

    def type_tags(self) -> set[str]:
        """All codec type tags referenced by any topic."""
        return {d.type_tag for d in self}

    def __len__(self) -> int:
        return len(self._send) + len(self._recv)

    def __iter__(self) -> Iterator[TopicDescriptor]:
        yield from self._send
        yield from self._recv
