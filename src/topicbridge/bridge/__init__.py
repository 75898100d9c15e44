"""Per-topic forwarding channels."""

from topicbridge.bridge.channel import ChannelState, ForwardingChannel
from topicbridge.bridge.forwarder import OutboundForwarder, RateState, SendStats
from topicbridge.bridge.receiver import InboundReceiver, ReceiveStats

__all__ = [
    "ChannelState",
    "ForwardingChannel",
    "InboundReceiver",
    "OutboundForwarder",
    "RateState",
    "ReceiveStats",
    "SendStats",
]
