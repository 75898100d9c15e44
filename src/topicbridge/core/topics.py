"""
Topic descriptors and the host table.

A topic descriptor is the immutable, validated description of one
forwarded topic: what it is called on the local bus, which codec carries
it, where its network endpoint lives and which way it flows.
"""

from collections.abc import Mapping
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from topicbridge.core.errors import ConfigError, ExitCode


class Direction(Enum):
    """Which way a topic flows across the bridge."""

    SEND = "send"  # local bus -> network
    RECEIVE = "receive"  # network -> local bus


class TopicDescriptor(BaseModel):
    """
    One forwarded topic.

    ``remote_host`` keeps the symbolic name used in configuration for
    logging; ``address`` is what it resolved to in the host table.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    type_tag: str = Field(min_length=1)
    max_rate_hz: float = Field(default=0.0, ge=0.0)
    remote_host: str
    address: str
    remote_port: int = Field(ge=1, le=65535)
    direction: Direction

    @property
    def url(self) -> str:
        """Transport address of the endpoint for this topic."""
        return f"tcp://{self.address}:{self.remote_port}"

    @property
    def is_rate_limited(self) -> bool:
        return self.max_rate_hz > 0

    def __str__(self) -> str:
        return f"{self.direction.value}:{self.name}@{self.url}"


class HostTable(BaseModel):
    """Symbolic host name to address mapping, read-only once built."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    hosts: dict[str, str] = Field(default_factory=dict)

    @field_validator("hosts")
    @classmethod
    def validate_addresses(cls, hosts: dict[str, str]) -> dict[str, str]:
        for name, address in hosts.items():
            if not address or not str(address).strip():
                raise ValueError(f"Host '{name}' has an empty address")
        return hosts

    @classmethod
    def from_mapping(cls, hosts: Mapping[str, str]) -> "HostTable":
        return cls(hosts={str(k): str(v) for k, v in hosts.items()})

    def resolve(self, name: str) -> str:
        """
        Resolve a symbolic host name.

        Raises:
            ConfigError: If the name is not in the table
        """
        try:
            return self.hosts[name]
        except KeyError:
            known = ", ".join(self.names()) or "none"
            raise ConfigError(
                f"Host '{name}' not found in host table (known: {known})",
                code=ExitCode.UNRESOLVED_HOST,
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self.hosts

    def names(self) -> list[str]:
        return list(self.hosts)

    def __len__(self) -> int:
        return len(self.hosts)
