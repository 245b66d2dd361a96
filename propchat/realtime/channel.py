"""Bidirectional channel abstraction between the core and the model service."""

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ChannelClosedError(Exception):
    """Raised when sending on a channel that has closed or failed."""


class Channel(Protocol):
    """Outbound half of the realtime transport (a data channel or socket)."""

    async def send(self, event: dict[str, Any]) -> None:
        ...


class InMemoryChannel:
    """Channel that records outbound events instead of transmitting them.

    Used by the console demo and the test suite.
    """

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    async def send(self, event: dict[str, Any]) -> None:
        if self.closed:
            raise ChannelClosedError(f"Channel closed, cannot send {event.get('type')}")
        self.sent.append(event)
        logger.debug("Outbound event: %s", event.get("type"))

    def close(self) -> None:
        self.closed = True

    def types(self) -> list[str]:
        """Return the outbound event types in send order."""
        return [event["type"] for event in self.sent]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [event for event in self.sent if event["type"] == event_type]

    def clear(self) -> None:
        self.sent.clear()
