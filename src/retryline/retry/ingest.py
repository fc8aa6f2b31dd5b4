"""Notification ingestion - the entry point from business logic into the ledger.

Two ways in:

- ``NotificationConsumer.submit(batch)``: synchronous, in-process. Also a
  ``NotificationSink``, so it can be bound to a ``HandlerRegistry``.
- ``publish_notifications(bus, batch)`` + ``EventBusIngestor``: the batch
  travels as one ``retry.notifications`` event; the ingestor subscribed to
  that type hands it to a consumer.

Neither raises on a failed batch: the persistence error is logged and
returned as ``Err``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from retryline.core.errors import PersistenceError, RetrylineError
from retryline.core.events import Event, EventBus
from retryline.core.logging import get_logger
from retryline.core.result import Err, Ok, Result

from .ledger import RetryLedger
from .models import FailureNotification, RetryLogRecord

logger = get_logger(__name__)

NOTIFICATIONS_EVENT = "retry.notifications"


class NotificationConsumer:
    """Hands notification batches to the ledger, one transaction per batch."""

    def __init__(self, ledger: RetryLedger):
        self._ledger = ledger
        self.batches_applied = 0
        self.batches_failed = 0

    def submit(self, notifications: Iterable[FailureNotification]) -> Result[list[RetryLogRecord]]:
        """Reconcile one batch.

        Returns:
            Ok(records written) or Err(PersistenceError) when the batch was
            rolled back
        """
        batch = list(notifications)
        if not batch:
            return Ok([])
        try:
            records = self._ledger.reconcile(batch)
        except PersistenceError as e:
            self.batches_failed += 1
            logger.error("notification_batch_failed", batch_size=len(batch), **e.to_dict())
            return Err(e)
        self.batches_applied += 1
        return Ok(records)

    def __call__(self, notifications: Sequence[FailureNotification]) -> Result[list[RetryLogRecord]]:
        return self.submit(notifications)


def notifications_event(
    notifications: Iterable[FailureNotification],
    *,
    source: str = "retryline",
    correlation_id: str | None = None,
) -> Event:
    """Wrap a batch in a ``retry.notifications`` event."""
    return Event(
        event_type=NOTIFICATIONS_EVENT,
        source=source,
        payload={"notifications": [n.to_dict() for n in notifications]},
        correlation_id=correlation_id,
    )


async def publish_notifications(
    bus: EventBus,
    notifications: Iterable[FailureNotification],
    *,
    source: str = "retryline",
    correlation_id: str | None = None,
) -> Event:
    """Publish a batch of notifications as a single event."""
    event = notifications_event(notifications, source=source, correlation_id=correlation_id)
    await bus.publish(event)
    logger.debug(
        "notifications_published",
        event_id=event.event_id,
        batch_size=len(event.payload["notifications"]),
    )
    return event


class EventBusIngestor:
    """Subscribes to ``retry.notifications`` and feeds each batch to a consumer.

    Example:
        >>> ingestor = EventBusIngestor(bus, NotificationConsumer(ledger))
        >>> await ingestor.start()
        >>> await publish_notifications(bus, [notification])
    """

    def __init__(
        self,
        bus: EventBus,
        consumer: NotificationConsumer,
        event_type: str = NOTIFICATIONS_EVENT,
    ):
        self._bus = bus
        self._consumer = consumer
        self._event_type = event_type
        self._subscription_id: str | None = None
        self.last_result: Result[list[RetryLogRecord]] | None = None

    @property
    def is_running(self) -> bool:
        return self._subscription_id is not None

    async def start(self) -> str:
        if self._subscription_id is None:
            self._subscription_id = await self._bus.subscribe(self._event_type, self.handle_event)
            logger.info("notification_ingestor_started", event_type=self._event_type)
        return self._subscription_id

    async def stop(self) -> None:
        if self._subscription_id is not None:
            await self._bus.unsubscribe(self._subscription_id)
            self._subscription_id = None
            logger.info("notification_ingestor_stopped")

    async def handle_event(self, event: Event) -> None:
        batch = _parse_batch(event)
        if batch is None:
            return
        self.last_result = self._consumer.submit(batch)


def _parse_batch(event: Event) -> list[FailureNotification] | None:
    items: Any = event.payload.get("notifications")
    if not isinstance(items, list):
        logger.warning("malformed_notification_event", event_id=event.event_id, reason="no notifications list")
        return None
    try:
        return [FailureNotification.from_dict(item) for item in items]
    except (RetrylineError, KeyError, TypeError, ValueError) as e:
        logger.warning("malformed_notification_event", event_id=event.event_id, reason=str(e))
        return None


__all__ = [
    "EventBusIngestor",
    "NOTIFICATIONS_EVENT",
    "NotificationConsumer",
    "notifications_event",
    "publish_notifications",
]
