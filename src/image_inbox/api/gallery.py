"""HTML gallery of stored images."""

from html import escape
from urllib.parse import quote

from image_inbox.domain.images import ImageRecord

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


def image_url(message_id: str) -> str:
    return f"/api/image/{quote(message_id, safe='')}"


def download_filename(record: ImageRecord) -> str:
    extension = _EXTENSIONS.get(record.content_type, "bin")
    safe_id = "".join(ch if ch.isalnum() else "-" for ch in record.message_id)
    return f"image-{safe_id}.{extension}"


def render_gallery(records: list[ImageRecord]) -> str:
    """Render every record as a card with a download link."""
    if records:
        cards = "\n".join(_render_card(record) for record in records)
    else:
        cards = '<p class="empty">No images received yet.</p>'
    return _GALLERY_HTML.replace("{cards}", cards)


def _render_card(record: ImageRecord) -> str:
    url = escape(image_url(record.message_id))
    caption = escape(record.caption) if record.caption else "No caption"
    return f"""      <div class="image-card">
        <img src="{url}" alt="Received image" loading="lazy" />
        <div class="image-info">
          <p><strong>Sender:</strong> {escape(record.sender)}</p>
          <p><strong>Caption:</strong> {caption}</p>
          <p class="timestamp"><strong>Date:</strong> {record.timestamp:%Y-%m-%d %H:%M:%S %Z}</p>
          <a href="{url}" download="{escape(download_filename(record))}" class="download-btn">Download Image</a>
        </div>
      </div>"""


_GALLERY_HTML = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>Image Inbox</title>
    <style>
      body { font-family: ui-sans-serif, system-ui, sans-serif; margin: 2rem; background: #f5f5f5; }
      h1 { text-align: center; color: #333; }
      .image-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(300px, 1fr)); gap: 20px; }
      .image-card { background: white; border: 1px solid #ddd; border-radius: 8px; padding: 10px; }
      .image-card img { width: 100%; height: 300px; object-fit: cover; border-radius: 4px; }
      .timestamp { color: #666; font-size: 0.9em; }
      .download-btn { display: inline-block; padding: 8px 16px; background: #4caf50; color: white; text-decoration: none; border-radius: 4px; }
      .empty { text-align: center; color: #666; }
    </style>
  </head>
  <body>
    <h1>Image Inbox</h1>
    <div class="image-grid">
{cards}
    </div>
  </body>
</html>
"""
