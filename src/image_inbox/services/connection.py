"""Lazy, de-duplicated connection to a backing store."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Generic, TypeVar

from image_inbox.domain.errors import StoreConnectionError

T = TypeVar("T")

_logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    """Lifecycle of a managed connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionManager(Generic[T]):
    """Holds a single connected resource built by an async factory.

    Concurrent callers of ``ensure_connected`` share one in-flight attempt.
    Every waiter of a failed attempt sees the same ``StoreConnectionError``
    and the next call starts a fresh attempt.
    """

    def __init__(
        self,
        connect: Callable[[], Awaitable[T]],
        *,
        name: str = "store",
        timeout_seconds: float = 10,
    ) -> None:
        self._connect = connect
        self.name = name
        self.timeout_seconds = timeout_seconds
        self.attempts = 0
        self._status = ConnectionStatus.DISCONNECTED
        self._resource: T | None = None
        self._pending: asyncio.Task[T] | None = None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    async def ensure_connected(self) -> T:
        """Return the connected resource, connecting at most once at a time."""
        if self._status is ConnectionStatus.CONNECTED and self._resource is not None:
            return self._resource
        if self._pending is None:
            self._pending = asyncio.create_task(self._attempt())
        # Shielded so a cancelled waiter does not cancel the shared attempt.
        return await asyncio.shield(self._pending)

    def reset(self) -> None:
        """Forget the current resource so the next call reconnects."""
        if self._pending is not None:
            return
        self._resource = None
        self._status = ConnectionStatus.DISCONNECTED

    async def _attempt(self) -> T:
        self._status = ConnectionStatus.CONNECTING
        self.attempts += 1
        try:
            resource = await asyncio.wait_for(
                self._connect(), timeout=self.timeout_seconds
            )
        except TimeoutError as exc:
            self._fail()
            _logger.error(
                "Connection to %s timed out after %ss", self.name, self.timeout_seconds
            )
            raise StoreConnectionError(
                f"Timed out connecting to {self.name}"
            ) from exc
        except asyncio.CancelledError:
            self._fail()
            raise
        except Exception as exc:
            self._fail()
            _logger.error("Connection to %s failed: %s", self.name, exc)
            raise StoreConnectionError(
                f"Could not connect to {self.name}: {exc}"
            ) from exc
        self._resource = resource
        self._status = ConnectionStatus.CONNECTED
        self._pending = None
        _logger.info("Connected to %s", self.name)
        return resource

    def _fail(self) -> None:
        self._resource = None
        self._status = ConnectionStatus.DISCONNECTED
        self._pending = None
