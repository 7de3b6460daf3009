"""Messaging session lifecycle: connect, consume, reconnect or halt."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from image_inbox.domain.errors import CloseReason, TransportClosedError
from image_inbox.domain.events import ImageEvent, InboundEvent
from image_inbox.services.credentials import CredentialStore, SessionCredentials

_logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """States of the messaging session."""

    INIT = "init"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_RECOVERABLE = "closed_recoverable"
    CLOSED_TERMINAL = "closed_terminal"


class MessagingConnection(Protocol):
    """An open session with the messaging service."""

    @property
    def credentials(self) -> SessionCredentials:
        """Credentials including the latest resume state."""

    def events(self) -> AsyncIterator[InboundEvent]:
        """Yield inbound events; raise TransportClosedError when the session ends."""

    async def download(self, event: ImageEvent) -> bytes:
        """Fetch the image payload of an event."""

    async def send_text(self, recipient: str, text: str) -> None:
        """Send a text message."""

    async def close(self) -> None:
        """Stop the session."""


class MessagingTransport(Protocol):
    """Factory for messaging sessions."""

    async def connect(self, credentials: SessionCredentials) -> MessagingConnection:
        """Open a session or raise TransportClosedError."""


EventHandler = Callable[[InboundEvent, MessagingConnection], Awaitable[None]]


@dataclass(frozen=True)
class ReconnectPolicy:
    """How recoverable closures are retried.

    The defaults retry immediately and forever. ``max_attempts`` bounds
    consecutive failed attempts; delays grow exponentially from
    ``base_delay_seconds`` up to ``max_delay_seconds``.
    """

    max_attempts: int | None = None
    base_delay_seconds: float = 0.0
    max_delay_seconds: float = 60.0

    def allows(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt <= self.max_attempts

    def delay_for(self, attempt: int) -> float:
        if self.base_delay_seconds <= 0:
            return 0.0
        return min(
            self.max_delay_seconds, self.base_delay_seconds * 2 ** (attempt - 1)
        )


class MessagingSessionController:
    """Drives a messaging session through its states in a single loop.

    Inbound events are handled in their own tasks so a slow download or
    insert never delays receipt of the next event.
    """

    def __init__(  # noqa: PLR0913
        self,
        transport: MessagingTransport,
        credential_store: CredentialStore,
        handler: EventHandler,
        policy: ReconnectPolicy | None = None,
        notify_chat_id: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.credential_store = credential_store
        self.handler = handler
        self.policy = policy or ReconnectPolicy()
        self.notify_chat_id = notify_chat_id
        self._sleep = sleep
        self.state = SessionState.INIT
        self.attempt_count = 0
        self.connect_calls = 0
        self.last_close: TransportClosedError | None = None
        self._credentials: SessionCredentials | None = None
        self._announced = False
        self._run_task: asyncio.Task[SessionState] | None = None
        self._event_tasks: set[asyncio.Task[None]] = set()

    def start(self) -> "asyncio.Task[SessionState]":
        """Run the session loop in a background task."""
        if self._run_task is None or self._run_task.done():
            self._run_task = asyncio.create_task(self.run())
        return self._run_task

    async def stop(self) -> None:
        """Cancel the session loop and wait for in-flight events."""
        if self._run_task is not None and not self._run_task.done():
            self._run_task.cancel()
            try:
                await self._run_task
            except asyncio.CancelledError:
                pass
        await self.drain()

    async def drain(self) -> None:
        """Wait for all dispatched event tasks to finish."""
        if self._event_tasks:
            await asyncio.gather(*self._event_tasks, return_exceptions=True)

    async def run(self) -> SessionState:
        """Connect and consume events until the session closes terminally."""
        self._credentials = self.credential_store.load()
        self._transition(SessionState.CONNECTING)
        while self.state is not SessionState.CLOSED_TERMINAL:
            if self.state is SessionState.CLOSED_RECOVERABLE:
                if not await self._prepare_reconnect():
                    break
            await self._connect_and_consume()
        return self.state

    async def _prepare_reconnect(self) -> bool:
        self.attempt_count += 1
        if not self.policy.allows(self.attempt_count):
            _logger.error(
                "Giving up after %s reconnect attempts", self.attempt_count - 1
            )
            self._transition(SessionState.CLOSED_TERMINAL)
            return False
        delay = self.policy.delay_for(self.attempt_count)
        if delay > 0:
            await self._sleep(delay)
        _logger.info("Reconnecting (attempt %s)", self.attempt_count)
        self._transition(SessionState.CONNECTING)
        return True

    async def _connect_and_consume(self) -> None:
        credentials = self._credentials or self.credential_store.load()
        self.connect_calls += 1
        try:
            connection = await self.transport.connect(credentials)
        except TransportClosedError as exc:
            self._on_closed(exc)
            return
        except Exception as exc:
            _logger.exception("Messaging connect failed")
            self._on_closed(
                TransportClosedError(CloseReason.CONNECTION_LOST, str(exc))
            )
            return

        self._transition(SessionState.OPEN)
        self.attempt_count = 0
        await self._announce(connection)
        try:
            async for event in connection.events():
                await self._remember(connection.credentials)
                self._dispatch(event, connection)
        except TransportClosedError as exc:
            self._on_closed(exc)
        except Exception as exc:
            _logger.exception("Messaging event stream failed")
            self._on_closed(
                TransportClosedError(CloseReason.CONNECTION_LOST, str(exc))
            )
        else:
            self._on_closed(
                TransportClosedError(CloseReason.CONNECTION_LOST, "event stream ended")
            )
        finally:
            await connection.close()

    def _on_closed(self, exc: TransportClosedError) -> None:
        self.last_close = exc
        if exc.is_logged_out:
            _logger.error("Logged out of messaging service, re-authentication needed")
            self._transition(SessionState.CLOSED_TERMINAL)
            return
        _logger.warning("Messaging session closed: %s", exc)
        self._transition(SessionState.CLOSED_RECOVERABLE)

    async def _remember(self, credentials: SessionCredentials) -> None:
        if credentials == self._credentials:
            return
        self._credentials = credentials
        try:
            await asyncio.to_thread(self.credential_store.save, credentials)
        except OSError:
            _logger.exception("Failed to persist session state")

    def _dispatch(self, event: InboundEvent, connection: MessagingConnection) -> None:
        task = asyncio.create_task(self._handle(event, connection))
        self._event_tasks.add(task)
        task.add_done_callback(self._event_tasks.discard)

    async def _handle(
        self, event: InboundEvent, connection: MessagingConnection
    ) -> None:
        try:
            await self.handler(event, connection)
        except Exception:
            _logger.exception("Unhandled error while processing inbound event")

    async def _announce(self, connection: MessagingConnection) -> None:
        if self.notify_chat_id is None or self._announced:
            return
        self._announced = True
        try:
            await connection.send_text(
                str(self.notify_chat_id), "Image inbox connected."
            )
        except Exception:
            _logger.warning("Failed to send connection notice", exc_info=True)

    def _transition(self, state: SessionState) -> None:
        _logger.debug("Session state %s -> %s", self.state.value, state.value)
        self.state = state
