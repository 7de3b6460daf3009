"""Telegram Bot API client adapter."""

from dataclasses import dataclass
from typing import Protocol

import httpx

_API_BASE = "https://api.telegram.org"


class TelegramClient(Protocol):
    """Interface for Telegram Bot API interactions."""

    async def send_message(self, chat_id: int | str, text: str) -> None:
        """Send a text message to a Telegram chat."""

    async def get_me(self) -> dict[str, object]:
        """Return the bot account, verifying the token."""

    async def get_updates(
        self, offset: int | None, timeout: int
    ) -> list[dict[str, object]]:
        """Long-poll for updates newer than offset."""


class TelegramApiError(RuntimeError):
    """Telegram answered with ok=false."""

    def __init__(self, method: str, description: str) -> None:
        super().__init__(f"Telegram {method} failed: {description}")
        self.method = method
        self.description = description


@dataclass
class HttpxTelegramClient:
    """Telegram client implemented with httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    base_url: str = _API_BASE

    async def send_message(self, chat_id: int | str, text: str) -> None:
        """Send a message using Telegram's sendMessage API."""
        await self._call("sendMessage", {"chat_id": chat_id, "text": text}, 10)

    async def get_me(self) -> dict[str, object]:
        """Call getMe; a revoked token answers 401."""
        result = await self._call("getMe", {}, 10)
        return result if isinstance(result, dict) else {}

    async def get_updates(
        self, offset: int | None, timeout: int
    ) -> list[dict[str, object]]:
        """Long-poll getUpdates for message updates."""
        payload: dict[str, object] = {
            "timeout": timeout,
            "allowed_updates": ["message", "channel_post"],
        }
        if offset is not None:
            payload["offset"] = offset
        result = await self._call("getUpdates", payload, timeout + 10)
        return result if isinstance(result, list) else []

    async def _call(
        self, method: str, payload: dict[str, object], timeout: float
    ) -> object:
        url = f"{self.base_url}/bot{self.bot_token}/{method}"
        response = await self.http_client.post(url, json=payload, timeout=timeout)
        response.raise_for_status()
        body = response.json()
        if not body.get("ok"):
            raise TelegramApiError(method, str(body.get("description", "")))
        return body.get("result")
