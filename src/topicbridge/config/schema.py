"""
Configuration schema.

Field names follow this project's conventions; the key names used by
older ROS-parameter style bridge configurations (``IP``, ``topic_name``,
``msg_type``, ``max_freq``, ``srcIP``, ``srcPort``) are accepted as aliases.
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

DEFAULT_MAX_TOPICS = 50
DEFAULT_MAX_PAYLOAD_SIZE = 256 * 1024 * 1024


class TopicSpec(BaseModel):
    """A topic entry as written in configuration, before host resolution."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str = Field(validation_alias=AliasChoices("name", "topic_name"))
    type: str = Field(validation_alias=AliasChoices("type", "msg_type"))
    # Range is checked by the registry so the failure carries an exit code
    max_rate_hz: float = Field(
        default=0.0, validation_alias=AliasChoices("max_rate_hz", "max_freq")
    )
    host: str = Field(validation_alias=AliasChoices("host", "srcIP"))
    port: int = Field(ge=1, le=65535, validation_alias=AliasChoices("port", "srcPort"))


class BridgeConfig(BaseModel):
    """Top-level bridge configuration."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    hosts: dict[str, str] = Field(validation_alias=AliasChoices("hosts", "IP"))
    send_topics: list[TopicSpec] | None = None
    recv_topics: list[TopicSpec] | None = None

    max_topics: int = Field(default=DEFAULT_MAX_TOPICS, gt=0)
    poll_interval: float = Field(default=0.1, gt=0.0)
    link_idle_timeout: float = Field(default=3.0, gt=0.0)
    join_timeout: float = Field(default=2.0, gt=0.0)
    max_payload_size: int = Field(default=DEFAULT_MAX_PAYLOAD_SIZE, gt=0)
