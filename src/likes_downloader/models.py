"""Data models shared by the adapters and the download pipeline."""

import asyncio
from dataclasses import dataclass, field

from .retry import RATE_LIMIT_DELAY, fetch_bytes
from .transport import H1Client


def build_filename(author: str, post_id: str, index: int, ext: str) -> str:
    """Name a media file after its post: ``"{author} {post_id} {index}.{ext}"``."""
    return f"{author} {post_id} {index}.{ext}"


@dataclass
class Item:
    url: str  # permalink of the liked post
    media_url: str  # direct media URL
    filename: str
    client: H1Client = field(repr=False)
    limiter: asyncio.Semaphore = field(repr=False)
    is_last: bool = False  # last media of its post, progress display only
    retry_delay: float = field(default=RATE_LIMIT_DELAY, repr=False)

    async def get(self) -> bytes:
        """Fetch the media bytes, retrying on rate limits and network errors."""
        return await fetch_bytes(
            self.client, self.media_url, retry_delay=self.retry_delay
        )
