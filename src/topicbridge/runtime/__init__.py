"""Bridge lifecycle and process entry point."""

from topicbridge.runtime.bridge import Bridge, BridgeState

__all__ = ["Bridge", "BridgeState"]
