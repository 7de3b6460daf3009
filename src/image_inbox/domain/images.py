"""Domain models for stored images."""

from dataclasses import dataclass, field
from datetime import UTC, datetime

DEFAULT_CONTENT_TYPE = "image/jpeg"


@dataclass(frozen=True)
class ImageRecord:
    """An inbound image persisted in the store."""

    message_id: str
    sender: str
    image_data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE
    caption: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def size(self) -> int:
        return len(self.image_data)
