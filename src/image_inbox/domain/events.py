"""Inbound messaging events."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ImageEvent:
    """An inbound message that carries an image payload."""

    message_id: str
    sender: str
    file_id: str
    content_type: str | None = None
    caption: str | None = None


@dataclass(frozen=True)
class OtherEvent:
    """Any inbound event the inbox does not act on."""

    kind: str
    message_id: str | None = None


InboundEvent = ImageEvent | OtherEvent
