"""Network transport and endpoint pool."""

from topicbridge.transport.pool import EndpointPool
from topicbridge.transport.zmq_transport import (
    Endpoint,
    EndpointRole,
    SendResult,
    Transport,
    ZmqEndpoint,
    ZmqTransport,
)

__all__ = [
    "Endpoint",
    "EndpointPool",
    "EndpointRole",
    "SendResult",
    "Transport",
    "ZmqEndpoint",
    "ZmqTransport",
]
