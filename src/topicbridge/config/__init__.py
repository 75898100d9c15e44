"""Bridge configuration."""

from topicbridge.config.loader import load_config, parse_config
from topicbridge.config.schema import BridgeConfig, TopicSpec

__all__ = [
    "BridgeConfig",
    "TopicSpec",
    "load_config",
    "parse_config",
]
