"""Core types for the bridge: errors, topics, registry, framing."""

from topicbridge.core.errors import (
    BindError,
    BridgeError,
    ConfigError,
    ConnectError,
    DecodeError,
    EncodeError,
    EndpointClosed,
    EndpointError,
    ExitCode,
    FrameError,
)
from topicbridge.core.framing import FrameBuffer, NeedMoreData
from topicbridge.core.registry import TopicRegistry
from topicbridge.core.topics import Direction, HostTable, TopicDescriptor

__all__ = [
    "BindError",
    "BridgeError",
    "ConfigError",
    "ConnectError",
    "DecodeError",
    "Direction",
    "EncodeError",
    "EndpointClosed",
    "EndpointError",
    "ExitCode",
    "FrameBuffer",
    "FrameError",
    "HostTable",
    "NeedMoreData",
    "TopicDescriptor",
    "TopicRegistry",
]
