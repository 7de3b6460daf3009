"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from image_inbox.adapters.supabase_image_repository import connect_supabase
from image_inbox.adapters.telegram_transport import TelegramPollingTransport
from image_inbox.config import Settings
from image_inbox.services.cache import Cache, InMemoryCache
from image_inbox.services.connection import ConnectionManager
from image_inbox.services.credentials import FileCredentialStore
from image_inbox.services.images import ImageRepository, ImageService
from image_inbox.services.ingest import ImageIngestHandler
from image_inbox.services.session import MessagingSessionController, ReconnectPolicy


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    cache: Cache
    store_connection: ConnectionManager[ImageRepository]
    image_service: ImageService
    session_controller: MessagingSessionController | None
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    cache = InMemoryCache(ttl_seconds=resolved_settings.cache_ttl_seconds)
    store_connection: ConnectionManager[ImageRepository] = ConnectionManager(
        partial(
            connect_supabase,
            resolved_settings.supabase_url,
            resolved_settings.supabase_service_key,
            resolved_settings.images_table,
        ),
        name="supabase",
        timeout_seconds=resolved_settings.db_connect_timeout_seconds,
    )
    image_service = ImageService(
        connection=store_connection,
        cache=cache,
        query_timeout_seconds=resolved_settings.db_query_timeout_seconds,
    )
    transport = TelegramPollingTransport.create(
        poll_timeout=resolved_settings.poll_timeout_seconds
    )
    session_controller = None
    if resolved_settings.messaging_enabled:
        session_controller = MessagingSessionController(
            transport=transport,
            credential_store=FileCredentialStore(
                auth_dir=Path(resolved_settings.auth_dir),
                default_token=resolved_settings.telegram_bot_token,
            ),
            handler=ImageIngestHandler(image_service),
            policy=ReconnectPolicy(
                max_attempts=resolved_settings.reconnect_max_attempts,
                base_delay_seconds=resolved_settings.reconnect_base_delay_seconds,
                max_delay_seconds=resolved_settings.reconnect_max_delay_seconds,
            ),
            notify_chat_id=resolved_settings.notify_chat_id,
        )

    async def close_resources() -> None:
        await transport.close()

    return AppContainer(
        settings=resolved_settings,
        cache=cache,
        store_connection=store_connection,
        image_service=image_service,
        session_controller=session_controller,
        close_resources=close_resources,
    )
