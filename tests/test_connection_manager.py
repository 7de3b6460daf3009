"""Tests for the de-duplicated connection manager."""

import asyncio

import pytest

from image_inbox.domain.errors import StoreConnectionError
from image_inbox.services.connection import ConnectionManager, ConnectionStatus


class CountingConnector:
    def __init__(self, fail_times: int = 0, delay: float = 0.01) -> None:
        self.calls = 0
        self.fail_times = fail_times
        self.delay = delay

    async def __call__(self) -> str:
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.calls <= self.fail_times:
            raise OSError("store unreachable")
        return f"connection-{self.calls}"


def test_concurrent_callers_share_one_attempt() -> None:
    connector = CountingConnector()
    manager = ConnectionManager(connector, timeout_seconds=1)

    async def scenario() -> list[str]:
        return await asyncio.gather(*(manager.ensure_connected() for _ in range(10)))

    results = asyncio.run(scenario())

    assert connector.calls == 1
    assert results == ["connection-1"] * 10
    assert manager.status is ConnectionStatus.CONNECTED


def test_failed_attempt_reaches_every_waiter_then_retries() -> None:
    connector = CountingConnector(fail_times=1)
    manager = ConnectionManager(connector, timeout_seconds=1)

    async def scenario() -> tuple[list[object], str]:
        outcomes = await asyncio.gather(
            *(manager.ensure_connected() for _ in range(5)), return_exceptions=True
        )
        assert manager.status is ConnectionStatus.DISCONNECTED
        return outcomes, await manager.ensure_connected()

    outcomes, retried = asyncio.run(scenario())

    assert all(isinstance(outcome, StoreConnectionError) for outcome in outcomes)
    assert len({id(outcome) for outcome in outcomes}) == 1
    assert isinstance(outcomes[0].__cause__, OSError)
    assert retried == "connection-2"
    assert connector.calls == 2


def test_connected_manager_does_not_reconnect() -> None:
    connector = CountingConnector()
    manager = ConnectionManager(connector, timeout_seconds=1)

    async def scenario() -> None:
        await manager.ensure_connected()
        await manager.ensure_connected()

    asyncio.run(scenario())

    assert connector.calls == 1
    assert manager.attempts == 1


def test_attempt_times_out() -> None:
    connector = CountingConnector(delay=1)
    manager = ConnectionManager(connector, timeout_seconds=0.05)

    with pytest.raises(StoreConnectionError, match="Timed out"):
        asyncio.run(manager.ensure_connected())

    assert manager.status is ConnectionStatus.DISCONNECTED


def test_cancelled_waiter_does_not_cancel_shared_attempt() -> None:
    connector = CountingConnector(delay=0.05)
    manager = ConnectionManager(connector, timeout_seconds=1)

    async def scenario() -> str:
        first = asyncio.create_task(manager.ensure_connected())
        second = asyncio.create_task(manager.ensure_connected())
        await asyncio.sleep(0)
        first.cancel()
        return await second

    assert asyncio.run(scenario()) == "connection-1"
    assert connector.calls == 1


def test_reset_forces_a_new_attempt() -> None:
    connector = CountingConnector()
    manager = ConnectionManager(connector, timeout_seconds=1)

    async def scenario() -> str:
        await manager.ensure_connected()
        manager.reset()
        return await manager.ensure_connected()

    assert asyncio.run(scenario()) == "connection-2"
