"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Query, Request, Response, status
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from image_inbox.api.gallery import download_filename, image_url, render_gallery
from image_inbox.api.middleware import (
    FixedWindowRateLimiter,
    apply_security_headers,
    install_middleware,
)
from image_inbox.app_logging import configure_logging
from image_inbox.config import is_development
from image_inbox.containers import AppContainer
from image_inbox.domain.errors import StoreConnectionError
from image_inbox.domain.images import ImageRecord

IMAGE_CACHE_CONTROL = "public, max-age=31536000"
LISTING_CACHE_CONTROL = "public, max-age=300"

_logger = logging.getLogger(__name__)


def create_app(
    container: AppContainer, limiter: FixedWindowRateLimiter | None = None
) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    show_details = is_development(container.settings.environment)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        controller = app.state.container.session_controller
        if controller is not None:
            controller.start()
        yield
        if controller is not None:
            await controller.stop()
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container
    install_middleware(app, container.settings, limiter)

    @app.exception_handler(StoreConnectionError)
    async def store_unavailable(
        request: Request, exc: StoreConnectionError
    ) -> JSONResponse:
        _logger.error(
            "Store unavailable on %s %s: %s", request.method, request.url.path, exc
        )
        return _error_response("Database unavailable", exc, show_details)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        _logger.error(
            "Unhandled exception on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return _error_response("Something went wrong!", exc, show_details)

    @app.get("/health")
    async def health(request: Request) -> dict[str, str]:
        """Report store and messaging session state."""
        state_container: AppContainer = request.app.state.container
        controller = state_container.session_controller
        return {
            "status": "ok",
            "databaseConnectionState": state_container.store_connection.status.value,
            "messagingState": controller.state.value if controller else "disabled",
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }

    @app.get("/api/image/{image_id}")
    async def get_image(image_id: str, request: Request) -> Response:
        """Serve the raw bytes of a stored image."""
        state_container: AppContainer = request.app.state.container
        record = await state_container.image_service.get_by_id(image_id)
        if record is None:
            return PlainTextResponse(
                "Image not found", status_code=status.HTTP_404_NOT_FOUND
            )
        return Response(
            content=record.image_data,
            media_type=record.content_type,
            headers={
                "Cache-Control": IMAGE_CACHE_CONTROL,
                "Content-Disposition": (
                    f'inline; filename="{download_filename(record)}"'
                ),
            },
        )

    @app.get("/api/images")
    async def list_images(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1, le=100),
    ) -> JSONResponse:
        """Return one page of image metadata, newest first."""
        state_container: AppContainer = request.app.state.container
        records = await state_container.image_service.list_page(page, limit)
        return JSONResponse(
            content=[_summarize(record) for record in records],
            headers={"Cache-Control": LISTING_CACHE_CONTROL},
        )

    @app.get("/", response_class=HTMLResponse)
    async def gallery(request: Request) -> HTMLResponse:
        """Render every stored image with a download link."""
        state_container: AppContainer = request.app.state.container
        records = await state_container.image_service.list_all()
        return HTMLResponse(
            render_gallery(records),
            headers={"Cache-Control": LISTING_CACHE_CONTROL},
        )

    return app


def _summarize(record: ImageRecord) -> dict[str, object]:
    return {
        "messageId": record.message_id,
        "sender": record.sender,
        "timestamp": record.timestamp.isoformat(),
        "contentType": record.content_type,
        "caption": record.caption,
        "size": record.size,
        "url": image_url(record.message_id),
    }


def _error_response(
    message: str, exc: Exception, show_details: bool
) -> JSONResponse:
    """Build a 500 body, with exception details only in development.

    Unhandled exceptions are answered outside the http middleware, so the
    security headers are set here as well.
    """
    content: dict[str, str] = {"error": message}
    if show_details:
        content["message"] = f"{type(exc).__name__}: {exc}"
    response = JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content
    )
    apply_security_headers(response)
    return response
