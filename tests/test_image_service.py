"""Tests for the image query service."""

import asyncio
import time

import pytest

from image_inbox.domain.errors import DuplicateImageError, StoreConnectionError
from image_inbox.services.cache import InMemoryCache
from image_inbox.services.connection import ConnectionManager
from image_inbox.services.images import ImageService
from tests.conftest import FakeClock, InMemoryImageRepository, make_record


def test_duplicate_insert_fails_and_keeps_original(
    image_service: ImageService, repository: InMemoryImageRepository
) -> None:
    original = make_record("m1", image_data=b"first")
    asyncio.run(image_service.save(original))

    with pytest.raises(DuplicateImageError):
        asyncio.run(image_service.save(make_record("m1", image_data=b"second")))

    stored = asyncio.run(image_service.get_by_id("m1"))
    assert stored == original
    assert len(repository.records) == 1


def test_pages_are_newest_first_without_gaps(
    image_service: ImageService, repository: InMemoryImageRepository
) -> None:
    for index in range(15):
        repository.insert(make_record(f"m{index:02d}", minutes_ago=index))

    first = asyncio.run(image_service.list_page(1, 10))
    second = asyncio.run(image_service.list_page(2, 10))

    assert len(first) == 10
    assert len(second) == 5
    ids = [record.message_id for record in first + second]
    assert ids == [f"m{index:02d}" for index in range(15)]
    timestamps = [record.timestamp for record in first + second]
    assert timestamps == sorted(timestamps, reverse=True)


def test_equal_timestamps_break_ties_by_message_id(
    image_service: ImageService, repository: InMemoryImageRepository
) -> None:
    for message_id in ("a", "c", "b"):
        repository.insert(make_record(message_id))

    records = asyncio.run(image_service.list_all())

    assert [record.message_id for record in records] == ["c", "b", "a"]


def test_get_by_id_uses_cache(
    image_service: ImageService, repository: InMemoryImageRepository
) -> None:
    repository.insert(make_record("m1"))

    asyncio.run(image_service.get_by_id("m1"))
    asyncio.run(image_service.get_by_id("m1"))

    assert repository.get_calls == 1


def test_cached_page_expires_after_ttl(
    image_service: ImageService,
    repository: InMemoryImageRepository,
    clock: FakeClock,
) -> None:
    repository.insert(make_record("m1"))
    assert len(asyncio.run(image_service.list_page(1, 10))) == 1

    repository.insert(make_record("m2"))
    assert len(asyncio.run(image_service.list_page(1, 10))) == 1

    clock.advance(300)
    assert len(asyncio.run(image_service.list_page(1, 10))) == 2


def test_missing_image_is_not_cached(
    image_service: ImageService, repository: InMemoryImageRepository
) -> None:
    assert asyncio.run(image_service.get_by_id("late")) is None

    repository.insert(make_record("late"))

    found = asyncio.run(image_service.get_by_id("late"))
    assert found is not None
    assert found.message_id == "late"


def test_invalid_page_arguments(image_service: ImageService) -> None:
    with pytest.raises(ValueError):
        asyncio.run(image_service.list_page(0, 10))
    with pytest.raises(ValueError):
        asyncio.run(image_service.list_page(1, 0))


def test_connection_failure_propagates(clock: FakeClock) -> None:
    async def connect() -> InMemoryImageRepository:
        raise OSError("connection refused")

    service = ImageService(
        connection=ConnectionManager(connect, timeout_seconds=1),
        cache=InMemoryCache(ttl_seconds=60, clock=clock),
    )

    with pytest.raises(StoreConnectionError):
        asyncio.run(service.get_by_id("m1"))


def test_slow_query_times_out(clock: FakeClock) -> None:
    class SlowRepository(InMemoryImageRepository):
        def list_all(self):  # type: ignore[no-untyped-def]
            time.sleep(0.3)
            return []

    repository = SlowRepository()

    async def connect() -> InMemoryImageRepository:
        return repository

    connection = ConnectionManager(connect, timeout_seconds=1)
    service = ImageService(
        connection=connection,
        cache=InMemoryCache(ttl_seconds=60, clock=clock),
        query_timeout_seconds=0.05,
    )

    with pytest.raises(StoreConnectionError, match="timed out"):
        asyncio.run(service.list_all())
