"""Bluesky XRPC adapter for an account's liked posts.

Logs in with ``com.atproto.server.createSession`` (identifier + app password)
and pages ``app.bsky.feed.getActorLikes`` on the account's own PDS.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from ..errors import ApiShapeError, AuthenticationError
from ..models import Item, build_filename
from ..retry import RATE_LIMIT_DELAY, request_json
from ..transport import H1Client
from .base import (
    USER_AGENT,
    Page,
    Paginator,
    require_dict,
    require_list,
    require_str,
)

logger = logging.getLogger(__name__)

SESSION_URL = "https://bsky.social/xrpc/com.atproto.server.createSession"
LIKES_PATH = "/xrpc/app.bsky.feed.getActorLikes"

IMAGES_EMBED = "app.bsky.embed.images#view"
RECORD_WITH_MEDIA_EMBED = "app.bsky.embed.recordWithMedia#view"
# Embeds without downloadable images
SKIPPED_EMBEDS = (
    "app.bsky.embed.external#view",
    "app.bsky.embed.record#view",
    "app.bsky.embed.video#view",
)

AUTH_FAILURE_STATUSES = (400, 401, 403, 404)


@dataclass
class BlueskyAuth:
    token: str
    did: str
    endpoint: str


def embed_images(embed: dict) -> list[dict]:
    """Return the image views of a post embed."""
    embed_type = require_str(embed, "$type")
    if embed_type == IMAGES_EMBED:
        return require_list(embed, "images")
    if embed_type == RECORD_WITH_MEDIA_EMBED:
        return embed_images(require_dict(embed, "media"))
    if embed_type in SKIPPED_EMBEDS:
        return []
    raise ApiShapeError(f"Unknown embed type {embed_type}.", payload=embed)


class BlueskyAdapter:
    """Pull liked posts' images of one Bluesky account."""

    def __init__(
        self,
        identifier: str,
        password: str,
        *,
        page_size: int = 50,
        concurrency: int = 50,
        path: Path = Path("media/bluesky"),
        proxy: str | None = None,
        retry_delay: float = RATE_LIMIT_DELAY,
        empty_page_retries: int = 5,
    ):
        self.identifier = identifier
        self._password = password
        self._path = Path(path)
        self._page_size = page_size
        self._retry_delay = retry_delay
        self._auth: BlueskyAuth | None = None
        self._pages = Paginator(self._fetch_page, empty_page_retries)
        self._limiter = asyncio.Semaphore(concurrency)
        self._client = httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            proxy=proxy,
            timeout=30.0,
            follow_redirects=True,
        )
        self._files = H1Client(proxy=proxy, headers={"User-Agent": USER_AGENT})

    def platform(self) -> str:
        return "bluesky"

    def name(self) -> str:
        return self.identifier

    def path(self) -> Path:
        return self._path

    @property
    def cursor(self) -> str | None:
        return self._pages.cursor

    async def next(self) -> Item | None:
        return await self._pages.next()

    async def count(self) -> int | None:
        return None

    async def _authenticate(self) -> BlueskyAuth:
        if self._auth is not None:
            return self._auth

        logger.info("Creating Bluesky session for %s...", self.identifier)
        data = await request_json(
            self._client,
            "POST",
            SESSION_URL,
            json={"identifier": self.identifier, "password": self._password},
            retry_delay=self._retry_delay,
            fatal_statuses=AUTH_FAILURE_STATUSES,
        )
        if "error" in data:
            raise AuthenticationError(f"{data['error']} {data.get('message', '')}".strip())

        self._auth = BlueskyAuth(
            token=require_str(data, "accessJwt"),
            did=require_str(data, "did"),
            endpoint=require_str(data, "didDoc", "service", 0, "serviceEndpoint"),
        )
        logger.debug("%s is %s on %s", self.identifier, self._auth.did, self._auth.endpoint)
        return self._auth

    async def _fetch_page(self, cursor: str | None) -> Page:
        auth = await self._authenticate()
        params = {"actor": auth.did, "limit": str(self._page_size)}
        if cursor:
            params["cursor"] = cursor

        logger.debug("Fetching likes of %s after cursor %s", self.identifier, cursor)
        data = await request_json(
            self._client,
            "GET",
            auth.endpoint.rstrip("/") + LIKES_PATH,
            params=params,
            headers={"authorization": f"Bearer {auth.token}"},
            retry_delay=self._retry_delay,
        )
        return self.expand_page(data)

    def expand_page(self, data: dict) -> Page:
        """Turn one getActorLikes response into items and the next cursor."""
        feed = require_list(data, "feed")
        cursor = data.get("cursor")
        if cursor is not None and not isinstance(cursor, str):
            raise ApiShapeError("`cursor` is not a string", payload=data)

        page = Page(cursor=cursor, post_count=len(feed))
        for entry in feed:
            page.items.extend(self._expand_post(require_dict(entry, "post")))
        return page

    def _expand_post(self, post: dict) -> list[Item]:
        author = require_str(post, "author", "handle")
        post_id = require_str(post, "uri").rsplit("/", 1)[-1]
        embed = post.get("embed")
        if not embed:
            return []

        items = []
        for index, image in enumerate(embed_images(embed), start=1):
            fullsize = require_str(image, "fullsize")
            items.append(
                Item(
                    url=f"https://bsky.app/profile/{author}/post/{post_id}",
                    media_url=fullsize.replace("@jpeg", "@png"),
                    filename=build_filename(author, post_id, index, "png"),
                    client=self._files,
                    limiter=self._limiter,
                    retry_delay=self._retry_delay,
                )
            )
        if items:
            items[-1].is_last = True
        return items

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()
