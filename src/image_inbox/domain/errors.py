"""Error taxonomy for the image inbox."""

from enum import Enum


class ImageInboxError(Exception):
    """Base class for image inbox errors."""


class StoreConnectionError(ImageInboxError):
    """The backing store is unreachable or did not answer in time."""


class DuplicateImageError(ImageInboxError):
    """An image with the same message id is already stored."""

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Image {message_id!r} already exists")
        self.message_id = message_id


class MalformedEventError(ImageInboxError):
    """An inbound event is missing fields required to process it."""


class CloseReason(str, Enum):
    """Why the messaging transport closed."""

    LOGGED_OUT = "logged_out"
    CONNECTION_LOST = "connection_lost"
    CONFLICT = "conflict"
    SERVER_ERROR = "server_error"


class TransportClosedError(ImageInboxError):
    """The messaging transport closed its session."""

    def __init__(self, reason: CloseReason, detail: str = "") -> None:
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)
        self.reason = reason
        self.detail = detail

    @property
    def is_logged_out(self) -> bool:
        return self.reason is CloseReason.LOGGED_OUT
