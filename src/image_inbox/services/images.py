"""Image persistence and read-through queries."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from image_inbox.domain.errors import StoreConnectionError
from image_inbox.domain.images import ImageRecord
from image_inbox.services.cache import Cache
from image_inbox.services.connection import ConnectionManager

_logger = logging.getLogger(__name__)

R = TypeVar("R")

ALL_IMAGES_KEY = "images:all"


class ImageRepository(Protocol):
    """Persistence interface for image records."""

    def insert(self, record: ImageRecord) -> None:
        """Insert a record, raising DuplicateImageError on a taken message id."""

    def get_by_message_id(self, message_id: str) -> ImageRecord | None:
        """Return the record for a message id, if present."""

    def list_page(self, offset: int, limit: int) -> list[ImageRecord]:
        """Return records newest first, starting at offset."""

    def list_all(self) -> list[ImageRecord]:
        """Return every record newest first."""


def image_key(message_id: str) -> str:
    return f"image:{message_id}"


def page_key(page: int, page_size: int) -> str:
    return f"images:page:{page}:{page_size}"


@dataclass
class ImageService:
    """Cached image queries on top of a lazily connected repository."""

    connection: ConnectionManager[ImageRepository]
    cache: Cache
    query_timeout_seconds: float = 45

    async def get_by_id(self, message_id: str) -> ImageRecord | None:
        """Return a single image, caching hits only."""
        cache_key = image_key(message_id)
        cached = self.cache.get(cache_key)
        if isinstance(cached, ImageRecord):
            return cached

        record = await self._run(lambda repo: repo.get_by_message_id(message_id))
        if record is not None:
            self.cache.set(cache_key, record)
        return record

    async def list_page(self, page: int, page_size: int) -> list[ImageRecord]:
        """Return one page of images ordered newest first."""
        if page < 1:
            raise ValueError("page must be >= 1")
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        cache_key = page_key(page, page_size)
        cached = self.cache.get(cache_key)
        if isinstance(cached, list):
            return cached

        offset = (page - 1) * page_size
        records = await self._run(lambda repo: repo.list_page(offset, page_size))
        self.cache.set(cache_key, records)
        return records

    async def list_all(self) -> list[ImageRecord]:
        """Return all images ordered newest first."""
        cached = self.cache.get(ALL_IMAGES_KEY)
        if isinstance(cached, list):
            return cached

        records = await self._run(lambda repo: repo.list_all())
        if len(records) > 500:
            _logger.warning("Listing %s images without pagination", len(records))
        self.cache.set(ALL_IMAGES_KEY, records)
        return records

    async def save(self, record: ImageRecord) -> None:
        """Persist a new image record."""
        await self._run(lambda repo: repo.insert(record))
        _logger.info(
            "Stored image",
            extra={
                "message_id": record.message_id,
                "content_type": record.content_type,
                "size": record.size,
            },
        )

    async def _run(self, query: Callable[[ImageRepository], R]) -> R:
        """Run a blocking repository call off the event loop with a timeout."""
        repository = await self.connection.ensure_connected()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(query, repository),
                timeout=self.query_timeout_seconds,
            )
        except TimeoutError as exc:
            self.connection.reset()
            raise StoreConnectionError(
                f"Query timed out after {self.query_timeout_seconds}s"
            ) from exc
