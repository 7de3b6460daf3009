"""Telegram file download client."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from image_inbox.adapters.telegram_client import TelegramApiError


class TelegramFileClient(Protocol):
    """Interface for downloading Telegram files."""

    async def download_file_bytes(self, file_id: str) -> bytes:
        """Download a Telegram file and return its bytes."""


@dataclass
class HttpxTelegramFileClient(TelegramFileClient):
    """Telegram file client using httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    base_url: str = "https://api.telegram.org"
    max_bytes: int = 20 * 1024 * 1024

    async def download_file_bytes(self, file_id: str) -> bytes:
        """Resolve a file id with getFile, then fetch its content."""
        response = await self.http_client.get(
            f"{self.base_url}/bot{self.bot_token}/getFile",
            params={"file_id": file_id},
            timeout=10,
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("ok"):
            raise TelegramApiError("getFile", str(payload.get("description", "")))
        result = payload["result"]
        file_size = result.get("file_size")
        if isinstance(file_size, int) and file_size > self.max_bytes:
            raise ValueError(f"File {file_id} is {file_size} bytes, too large")
        file_response = await self.http_client.get(
            f"{self.base_url}/file/bot{self.bot_token}/{result['file_path']}",
            timeout=30,
        )
        file_response.raise_for_status()
        return file_response.content
