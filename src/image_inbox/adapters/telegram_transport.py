"""Long-polling messaging transport over the Telegram Bot API."""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

import httpx
from pydantic import ValidationError

from image_inbox.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramApiError,
    TelegramClient,
)
from image_inbox.adapters.telegram_file_client import (
    HttpxTelegramFileClient,
    TelegramFileClient,
)
from image_inbox.api.telegram_models import TelegramMessage, TelegramUpdate
from image_inbox.domain.errors import (
    CloseReason,
    MalformedEventError,
    TransportClosedError,
)
from image_inbox.domain.events import ImageEvent, InboundEvent, OtherEvent
from image_inbox.services.credentials import SessionCredentials
from image_inbox.services.session import MessagingConnection, MessagingTransport

_logger = logging.getLogger(__name__)


@dataclass
class TelegramPollingConnection(MessagingConnection):
    """An open getUpdates long-polling session."""

    client: TelegramClient
    file_client: TelegramFileClient
    bot_token: str
    offset: int | None = None
    poll_timeout: int = 30
    _closed: bool = field(default=False, init=False)

    @property
    def credentials(self) -> SessionCredentials:
        return SessionCredentials(bot_token=self.bot_token, update_offset=self.offset)

    async def events(self) -> AsyncIterator[InboundEvent]:
        """Yield decoded updates until the session closes."""
        while not self._closed:
            try:
                updates = await self.client.get_updates(self.offset, self.poll_timeout)
            except Exception as exc:
                if self._closed:
                    return
                raise closed_error_from(exc) from exc
            for raw in updates:
                update_id = raw.get("update_id")
                if isinstance(update_id, int):
                    self.offset = update_id + 1
                yield decode_update(raw)

    async def download(self, event: ImageEvent) -> bytes:
        return await self.file_client.download_file_bytes(event.file_id)

    async def send_text(self, recipient: str, text: str) -> None:
        chat_id: int | str = recipient
        if recipient.lstrip("-").isdigit():
            chat_id = int(recipient)
        await self.client.send_message(chat_id, text)

    async def close(self) -> None:
        self._closed = True


@dataclass
class TelegramPollingTransport(MessagingTransport):
    """Opens Telegram sessions that share one httpx client."""

    http_client: httpx.AsyncClient
    poll_timeout: int = 30

    @classmethod
    def create(cls, poll_timeout: int = 30) -> "TelegramPollingTransport":
        return cls(http_client=httpx.AsyncClient(), poll_timeout=poll_timeout)

    async def connect(
        self, credentials: SessionCredentials
    ) -> TelegramPollingConnection:
        """Verify the bot token with getMe and return an open session."""
        client = HttpxTelegramClient(
            bot_token=credentials.bot_token, http_client=self.http_client
        )
        try:
            me = await client.get_me()
        except Exception as exc:
            raise closed_error_from(exc) from exc
        _logger.info("Telegram session opened as @%s", me.get("username", "?"))
        return TelegramPollingConnection(
            client=client,
            file_client=HttpxTelegramFileClient(
                bot_token=credentials.bot_token, http_client=self.http_client
            ),
            bot_token=credentials.bot_token,
            offset=credentials.update_offset,
            poll_timeout=self.poll_timeout,
        )

    async def close(self) -> None:
        await self.http_client.aclose()


def closed_error_from(exc: Exception) -> TransportClosedError:
    """Classify a Bot API failure as a transport closure."""
    if isinstance(exc, TransportClosedError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        if status_code == httpx.codes.UNAUTHORIZED:
            return TransportClosedError(CloseReason.LOGGED_OUT, "bot token revoked")
        if status_code == httpx.codes.CONFLICT:
            return TransportClosedError(
                CloseReason.CONFLICT, "another poller is active"
            )
        return TransportClosedError(CloseReason.SERVER_ERROR, f"HTTP {status_code}")
    if isinstance(exc, TelegramApiError):
        return TransportClosedError(CloseReason.SERVER_ERROR, exc.description)
    return TransportClosedError(
        CloseReason.CONNECTION_LOST, f"{type(exc).__name__}: {exc}"
    )


def decode_update(raw: dict[str, object]) -> InboundEvent:
    """Decode a raw update, mapping anything unusable to OtherEvent."""
    try:
        return event_from_update(TelegramUpdate.model_validate(raw))
    except (ValidationError, MalformedEventError) as exc:
        _logger.debug("Dropping malformed update: %s", exc)
        return OtherEvent(kind="malformed")


def event_from_update(update: TelegramUpdate) -> InboundEvent:
    """Return an ImageEvent for photos and image documents."""
    message = update.message or update.channel_post
    if message is None:
        return OtherEvent(kind="unsupported")
    message_id = f"{message.chat.id}:{message.message_id}"
    if message.photo is not None:
        return _photo_event(message, message_id)
    document = message.document
    if document is not None and (document.mime_type or "").startswith("image/"):
        return ImageEvent(
            message_id=message_id,
            sender=str(message.chat.id),
            file_id=document.file_id,
            content_type=document.mime_type,
            caption=message.caption,
        )
    if message.text is not None:
        return OtherEvent(kind="text", message_id=message_id)
    return OtherEvent(kind="other", message_id=message_id)


def _photo_event(message: TelegramMessage, message_id: str) -> ImageEvent:
    if not message.photo:
        raise MalformedEventError(f"Photo message {message_id} has no sizes")
    largest = max(message.photo, key=lambda photo: photo.width * photo.height)
    return ImageEvent(
        message_id=message_id,
        sender=str(message.chat.id),
        file_id=largest.file_id,
        caption=message.caption,
    )
