"""
Endpoint pool: one network endpoint per topic.

Send topics get a bound publish endpoint, receive topics a connected
subscribe endpoint. The pool only opens and closes; reconnection belongs
to the transport.
"""

import structlog

from topicbridge.core.topics import Direction, TopicDescriptor
from topicbridge.transport.zmq_transport import Endpoint, Transport

logger = structlog.get_logger()


class EndpointPool:
    """Opens endpoints for topic descriptors and tracks which are still open."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._open: list[tuple[TopicDescriptor, Endpoint]] = []
        self._log = logger.bind(component="endpoint_pool")

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def open_count(self) -> int:
        return len(self._open)

    def open_send(self, descriptor: TopicDescriptor) -> Endpoint:
        """
        Bind the publish endpoint for a send topic.

        Raises:
            BindError: The address cannot be bound
        """
        if descriptor.direction is not Direction.SEND:
            raise ValueError(f"{descriptor.name} is not a send topic")
        endpoint = self._transport.open_publish(descriptor.url)
        self._open.append((descriptor, endpoint))
        self._log.info("endpoint_bound", topic=descriptor.name, url=descriptor.url)
        return endpoint

    def open_receive(self, descriptor: TopicDescriptor) -> Endpoint:
        """Connect the subscribe endpoint for a receive topic."""
        if descriptor.direction is not Direction.RECEIVE:
            raise ValueError(f"{descriptor.name} is not a receive topic")
        endpoint = self._transport.open_subscribe(descriptor.url)
        self._open.append((descriptor, endpoint))
        self._log.info("endpoint_connected", topic=descriptor.name, url=descriptor.url)
        return endpoint

    def close(self, endpoint: Endpoint) -> bool:
        """
        Close one endpoint.

        Returns:
            False if the transport failed to close it (logged, not raised)
        """
        self._open = [(d, e) for d, e in self._open if e is not endpoint]
        try:
            self._transport.close(endpoint)
        except Exception:
            self._log.exception("endpoint_close_failed", url=endpoint.url)
            return False
        return True

    def close_all(self) -> int:
        """Close every endpoint still open. Returns how many closed cleanly."""
        closed = 0
        for _, endpoint in list(self._open):
            if self.close(endpoint):
                closed += 1
        return closed
