import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Broadcaster(Protocol):
    """Real-time transport that fans normalized events out to subscribers."""

    def publish(self, event: dict[str, Any]) -> None:
        ...


class InMemoryBroadcaster:
    """Keeps published events in memory. Used when no transport is wired in."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def publish(self, event: dict[str, Any]) -> None:
        self.events.append(event)
        logger.info("Event published", extra={"event_type": event.get("_")})
