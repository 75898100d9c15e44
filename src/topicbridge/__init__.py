"""
topic-bridge

Forwards named, typed topics between a local publish-subscribe bus and
remote peers over ZeroMQ.

- Send topics: local bus -> rate limit -> codec -> length-prefixed frame -> PUB
- Receive topics: SUB -> frame reassembly -> codec -> local bus
"""

__version__ = "0.1.0"

from topicbridge.bus.codecs import CodecRegistry
from topicbridge.bus.message_bus import LocalBus, MessageBus
from topicbridge.config.loader import load_config
from topicbridge.core.errors import BridgeError, ConfigError, ExitCode
from topicbridge.core.registry import TopicRegistry
from topicbridge.core.topics import Direction, HostTable, TopicDescriptor
from topicbridge.runtime.bridge import Bridge, BridgeState
from topicbridge.transport.zmq_transport import ZmqTransport

__all__ = [
    "__version__",
    "Bridge",
    "BridgeError",
    "BridgeState",
    "CodecRegistry",
    "ConfigError",
    "Direction",
    "ExitCode",
    "HostTable",
    "LocalBus",
    "MessageBus",
    "TopicDescriptor",
    "TopicRegistry",
    "ZmqTransport",
    "load_config",
]
