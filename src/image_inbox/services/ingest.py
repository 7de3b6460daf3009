"""Ingestion of inbound image events into the store."""

import logging
from dataclasses import dataclass

from image_inbox.domain.errors import DuplicateImageError
from image_inbox.domain.events import ImageEvent, InboundEvent
from image_inbox.domain.images import DEFAULT_CONTENT_TYPE, ImageRecord
from image_inbox.services.images import ImageService
from image_inbox.services.session import MessagingConnection

FAILURE_NOTICE = "Error processing image. Please try again."

_logger = logging.getLogger(__name__)


@dataclass
class ImageIngestHandler:
    """Stores image events and tells the sender when that fails."""

    image_service: ImageService

    async def __call__(
        self, event: InboundEvent, connection: MessagingConnection
    ) -> None:
        await self.handle(event, connection)

    async def handle(
        self, event: InboundEvent, connection: MessagingConnection
    ) -> None:
        """Persist an image event; ignore everything else."""
        if not isinstance(event, ImageEvent):
            return
        try:
            image_data = await connection.download(event)
            record = ImageRecord(
                message_id=event.message_id,
                sender=event.sender,
                image_data=image_data,
                content_type=event.content_type or DEFAULT_CONTENT_TYPE,
                caption=event.caption or "",
            )
            await self.image_service.save(record)
        except DuplicateImageError:
            _logger.warning(
                "Duplicate image ignored", extra={"message_id": event.message_id}
            )
            await self._notify_failure(event, connection)
        except Exception:
            _logger.exception(
                "Failed to process image", extra={"message_id": event.message_id}
            )
            await self._notify_failure(event, connection)

    async def _notify_failure(
        self, event: ImageEvent, connection: MessagingConnection
    ) -> None:
        try:
            await connection.send_text(event.sender, FAILURE_NOTICE)
        except Exception:
            _logger.warning(
                "Failed to notify sender",
                extra={"message_id": event.message_id},
                exc_info=True,
            )
