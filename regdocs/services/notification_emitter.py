"""Publishes ingestion events to the downstream consumer."""

from abc import ABC, abstractmethod
from typing import Optional

import inngest

from ..core.config import Settings, get_settings
from ..core.errors import NotificationError
from ..core.logging import get_logger
from ..models.ingestion import IngestionEvent

logger = get_logger(__name__)


class NotificationEmitter(ABC):
    """Delivers an ``IngestionEvent`` at least once.

    Implementations raise ``NotificationError`` on failure and never retry;
    the pipeline owns the retry policy. Any other exception is not retried
    within the cycle; the event stays pending for redelivery.
    """

    @abstractmethod
    async def publish(self, event: IngestionEvent) -> None:
        ...


class InngestNotificationEmitter(NotificationEmitter):
    """Sends ingestion events through Inngest.

    The event id is the idempotency key, so a redelivered event is collapsed
    by the channel instead of reaching the consumer twice.
    """

    def __init__(
        self,
        client: Optional[inngest.Inngest] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        if client is None:
            from ..ingestion_functions.client import inngest_client
            client = inngest_client
        self.client = client
        self.event_name = self.settings.notification_event_name

    def build_event(self, event: IngestionEvent) -> inngest.Event:
        return inngest.Event(
            name=self.event_name,
            data=event.model_dump(mode="json"),
            id=event.idempotency_key,
        )

    async def publish(self, event: IngestionEvent) -> None:
        try:
            await self.client.send(self.build_event(event))
        except Exception as e:
            raise NotificationError(
                f"Failed to publish {self.event_name} for {event.document_id}: {e}"
            ) from e

        logger.debug(
            "Published ingestion event",
            event_name=self.event_name,
            document_id=event.document_id,
        )
