"""ASGI entrypoint for the image inbox API."""

from image_inbox.api.app import create_app
from image_inbox.containers import build_container

app = create_app(build_container())
