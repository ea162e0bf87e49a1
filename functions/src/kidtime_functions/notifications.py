"""In-app notifications.

Delivery is best-effort: a failed notification is logged and never fails or
rolls back the ledger operation that raised it.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from kidtime_shared import Collection, Notification, NotificationType
from kidtime_shared.firestore import model_to_firestore
from kidtime_shared.store import DocumentStore

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def create(self, notification: Notification) -> None:
        ...


class StoreNotificationSink:
    """Writes notifications to the notifications collection.

    The apps listen on that collection; push delivery happens downstream.
    """

    def __init__(self, store: DocumentStore):
        self._store = store

    def create(self, notification: Notification) -> None:
        notification_id = self._store.add(
            Collection.NOTIFICATIONS, model_to_firestore(notification)
        )
        logger.debug(
            "Created %s notification %s for %s",
            notification.type,
            notification_id,
            notification.recipient_id,
        )


def notify(
    sink: NotificationSink,
    clock: Callable[[], datetime],
    type: NotificationType,
    recipient_id: str,
    payload: dict[str, Any],
) -> bool:
    """Send a notification, swallowing and logging any failure.

    Returns True if the sink accepted the notification.
    """
    try:
        sink.create(
            Notification(
                type=type,
                recipient_id=recipient_id,
                payload=payload,
                created_at=clock(),
            )
        )
        return True
    except Exception:
        logger.exception("Failed to send %s notification to %s", type, recipient_id)
        return False
