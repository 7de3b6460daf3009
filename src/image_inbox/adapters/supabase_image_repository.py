"""Supabase-backed image repository."""

import asyncio
import base64
from dataclasses import dataclass
from datetime import datetime

from postgrest.exceptions import APIError
from supabase import Client, create_client

from image_inbox.domain.errors import DuplicateImageError
from image_inbox.domain.images import DEFAULT_CONTENT_TYPE, ImageRecord
from image_inbox.services.images import ImageRepository

_UNIQUE_VIOLATION = "23505"

_COLUMNS = "message_id, sender, timestamp, image_data, content_type, caption"


@dataclass
class SupabaseImageRepository(ImageRepository):
    """Supabase implementation for image persistence."""

    client: Client
    table_name: str = "images"

    def insert(self, record: ImageRecord) -> None:
        """Insert an image row."""
        try:
            response = (
                self.client.table(self.table_name)
                .insert(_to_row(record))
                .execute()
            )
        except APIError as exc:
            if exc.code == _UNIQUE_VIOLATION:
                raise DuplicateImageError(record.message_id) from exc
            raise
        if not response.data:
            raise RuntimeError("Failed to store image in Supabase")

    def get_by_message_id(self, message_id: str) -> ImageRecord | None:
        """Return the image row for a message id, if present."""
        response = (
            self.client.table(self.table_name)
            .select(_COLUMNS)
            .eq("message_id", message_id)
            .limit(1)
            .execute()
        )
        if response.data:
            return _from_row(response.data[0])
        return None

    def list_page(self, offset: int, limit: int) -> list[ImageRecord]:
        """Return a page of image rows, newest first."""
        response = (
            self.client.table(self.table_name)
            .select(_COLUMNS)
            .order("timestamp", desc=True)
            .order("message_id", desc=True)
            .range(offset, offset + limit - 1)
            .execute()
        )
        return [_from_row(row) for row in response.data or []]

    def list_all(self) -> list[ImageRecord]:
        """Return all image rows, newest first."""
        response = (
            self.client.table(self.table_name)
            .select(_COLUMNS)
            .order("timestamp", desc=True)
            .order("message_id", desc=True)
            .execute()
        )
        return [_from_row(row) for row in response.data or []]

    def ping(self) -> None:
        """Issue a minimal query to verify the table is reachable."""
        self.client.table(self.table_name).select("message_id").limit(1).execute()


async def connect_supabase(
    url: str, service_key: str, table_name: str = "images"
) -> SupabaseImageRepository:
    """Create a Supabase client and verify it can reach the images table."""

    def _connect() -> SupabaseImageRepository:
        repository = SupabaseImageRepository(
            client=create_client(url, service_key), table_name=table_name
        )
        repository.ping()
        return repository

    return await asyncio.to_thread(_connect)


def _to_row(record: ImageRecord) -> dict[str, object]:
    return {
        "message_id": record.message_id,
        "sender": record.sender,
        "timestamp": record.timestamp.isoformat(),
        "image_data": base64.b64encode(record.image_data).decode("ascii"),
        "content_type": record.content_type,
        "caption": record.caption,
    }


def _from_row(row: dict[str, object]) -> ImageRecord:
    return ImageRecord(
        message_id=str(row["message_id"]),
        sender=str(row["sender"]),
        timestamp=datetime.fromisoformat(str(row["timestamp"])),
        image_data=base64.b64decode(str(row["image_data"])),
        content_type=str(row.get("content_type") or DEFAULT_CONTENT_TYPE),
        caption=str(row.get("caption") or ""),
    )
