"""
Error taxonomy and process exit codes.

Fatal errors (configuration, bind) abort startup and map to a distinct
exit code. Per-message errors (encode, decode) are logged by the channel
that hit them and never propagate past it.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes, one per fatal cause."""

    OK = 0
    MISSING_SECTION = 1
    TOPIC_LIMIT = 2
    DUPLICATE_PORT = 3
    UNRESOLVED_HOST = 4
    INVALID_CONFIG = 5
    BIND_FAILED = 6
    UNEXPECTED = 70
    INTERRUPTED = 130


class BridgeError(Exception):
    """Base class for all bridge errors."""

    exit_code: ExitCode = ExitCode.UNEXPECTED


class ConfigError(BridgeError):
    """Invalid or incomplete configuration. Raised before any socket opens."""

    def __init__(self, message: str, code: ExitCode = ExitCode.INVALID_CONFIG) -> None:
        super().__init__(message)
        self.exit_code = code


class TypeTagMismatch(ConfigError):
    """A topic was registered on the local bus under two different type tags."""


class EndpointError(BridgeError):
    """A network endpoint could not be opened."""

    exit_code = ExitCode.BIND_FAILED
    action = "open"

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Cannot {self.action} {url}: {reason}")
        self.url = url
        self.reason = reason


class BindError(EndpointError):
    """A publish endpoint could not bind its address."""

    action = "bind"


class ConnectError(EndpointError):
    """A subscribe endpoint could not connect (malformed address)."""

    action = "connect"


class EncodeError(BridgeError):
    """A message could not be serialized by its codec."""


class DecodeError(BridgeError):
    """A payload could not be deserialized by its codec."""


class FrameError(DecodeError):
    """A frame header is corrupt (announced length over the payload limit)."""


class EndpointClosed(BridgeError):
    """The endpoint was closed; the owning receive loop must exit."""
