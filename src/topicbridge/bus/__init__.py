"""Local bus interface, in-process bus and message codecs."""

from topicbridge.bus.codecs import (
    BytesCodec,
    Codec,
    CodecRegistry,
    JsonCodec,
    ModelCodec,
    StringCodec,
)
from topicbridge.bus.message_bus import LocalBus, MessageBus, Publication, Subscription

__all__ = [
    "BytesCodec",
    "Codec",
    "CodecRegistry",
    "JsonCodec",
    "LocalBus",
    "MessageBus",
    "ModelCodec",
    "Publication",
    "StringCodec",
    "Subscription",
]
