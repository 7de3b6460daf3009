"""Process entrypoint for running the image inbox locally."""

import logging

import uvicorn

from image_inbox.api.app import create_app
from image_inbox.app_logging import configure_logging
from image_inbox.config import Settings
from image_inbox.containers import build_container

_logger = logging.getLogger(__name__)


def main(settings: Settings | None = None) -> None:
    """Serve the app unless running in production, where the host serves asgi.app."""
    configure_logging()
    resolved_settings = settings or Settings()
    if resolved_settings.environment == "production":
        _logger.info("Production environment: serve image_inbox.api.asgi:app instead")
        return
    app = create_app(build_container(resolved_settings))
    _logger.info(
        "View your images at http://localhost:%s", resolved_settings.port
    )
    uvicorn.run(app, host=resolved_settings.host, port=resolved_settings.port)


if __name__ == "__main__":
    main()
