"""Shared test fixtures."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from image_inbox.config import Settings
from image_inbox.containers import AppContainer
from image_inbox.domain.errors import (
    CloseReason,
    DuplicateImageError,
    TransportClosedError,
)
from image_inbox.domain.events import ImageEvent, InboundEvent
from image_inbox.domain.images import ImageRecord
from image_inbox.services.cache import InMemoryCache
from image_inbox.services.connection import ConnectionManager
from image_inbox.services.credentials import SessionCredentials
from image_inbox.services.images import ImageRepository, ImageService
from image_inbox.services.session import MessagingConnection, MessagingTransport


@dataclass
class InMemoryImageRepository(ImageRepository):
    """In-memory image repository for tests."""

    records: dict[str, ImageRecord] = field(default_factory=dict)
    get_calls: int = 0
    list_calls: int = 0
    fail_with: Exception | None = None

    def insert(self, record: ImageRecord) -> None:
        self._maybe_fail()
        if record.message_id in self.records:
            raise DuplicateImageError(record.message_id)
        self.records[record.message_id] = record

    def get_by_message_id(self, message_id: str) -> ImageRecord | None:
        self._maybe_fail()
        self.get_calls += 1
        return self.records.get(message_id)

    def list_page(self, offset: int, limit: int) -> list[ImageRecord]:
        self._maybe_fail()
        self.list_calls += 1
        return self._ordered()[offset : offset + limit]

    def list_all(self) -> list[ImageRecord]:
        self._maybe_fail()
        self.list_calls += 1
        return self._ordered()

    def _ordered(self) -> list[ImageRecord]:
        return sorted(
            self.records.values(),
            key=lambda record: (record.timestamp, record.message_id),
            reverse=True,
        )

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with


@dataclass
class FakeClock:
    """Manually advanced monotonic clock."""

    now: float = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class FakeMessagingConnection(MessagingConnection):
    """Scripted messaging session that replays events then closes."""

    scripted_events: list[InboundEvent] = field(default_factory=list)
    close_with: TransportClosedError | None = field(
        default_factory=lambda: TransportClosedError(CloseReason.LOGGED_OUT)
    )
    payloads: dict[str, bytes] = field(default_factory=dict)
    sent: list[tuple[str, str]] = field(default_factory=list)
    fail_send: bool = False
    closed: bool = False
    offset: int = 0

    @property
    def credentials(self) -> SessionCredentials:
        return SessionCredentials(bot_token="test-token", update_offset=self.offset)

    async def events(self) -> AsyncIterator[InboundEvent]:
        for event in self.scripted_events:
            self.offset += 1
            yield event
        # Let dispatched handlers run before the session closes.
        await asyncio.sleep(0)
        if self.close_with is not None:
            raise self.close_with

    async def download(self, event: ImageEvent) -> bytes:
        if event.file_id not in self.payloads:
            raise RuntimeError(f"missing payload for {event.file_id}")
        return self.payloads[event.file_id]

    async def send_text(self, recipient: str, text: str) -> None:
        if self.fail_send:
            raise RuntimeError("send failed")
        self.sent.append((recipient, text))

    async def close(self) -> None:
        self.closed = True


@dataclass
class FakeTransport(MessagingTransport):
    """Transport returning scripted connect outcomes in order."""

    outcomes: list[FakeMessagingConnection | Exception] = field(default_factory=list)
    connect_calls: int = 0
    seen_credentials: list[SessionCredentials] = field(default_factory=list)

    async def connect(self, credentials: SessionCredentials) -> MessagingConnection:
        self.connect_calls += 1
        self.seen_credentials.append(credentials)
        if not self.outcomes:
            raise TransportClosedError(CloseReason.LOGGED_OUT, "no more outcomes")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_record(
    message_id: str,
    minutes_ago: int = 0,
    *,
    image_data: bytes = b"image-bytes",
    content_type: str = "image/jpeg",
    caption: str = "",
) -> ImageRecord:
    base = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    return ImageRecord(
        message_id=message_id,
        sender="chat-1",
        image_data=image_data,
        content_type=content_type,
        caption=caption,
        timestamp=base - timedelta(minutes=minutes_ago),
    )


def make_connection_manager(
    repository: ImageRepository,
) -> ConnectionManager[ImageRepository]:
    async def connect() -> ImageRepository:
        return repository

    return ConnectionManager(connect, name="memory", timeout_seconds=1)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        environment="production",
        messaging_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryImageRepository:
    return InMemoryImageRepository()


@pytest.fixture
def image_service(
    repository: InMemoryImageRepository, clock: FakeClock
) -> ImageService:
    return ImageService(
        connection=make_connection_manager(repository),
        cache=InMemoryCache(ttl_seconds=300, clock=clock),
        query_timeout_seconds=5,
    )


@pytest.fixture
def container(settings: Settings, image_service: ImageService) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        cache=image_service.cache,
        store_connection=image_service.connection,
        image_service=image_service,
        session_controller=None,
        close_resources=close_resources,
    )
