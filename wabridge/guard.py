import logging
from typing import Optional

from wabridge.notifications import Notification

logger = logging.getLogger(__name__)


def channel_guard(notification: Notification, configured_identity: str) -> Optional[Notification]:
    """
    Drop notifications addressed to another phone_number_id.

    Returns:
        The notification unchanged when it targets the configured channel
        identity, None otherwise.
    """
    received = notification.channel_identity
    if received is None or str(received) != str(configured_identity):
        logger.warning(
            "Ignored notification for another phone_number_id",
            extra={"received": received, "expected": str(configured_identity), "kind": notification.kind.value},
        )
        return None
    return notification
