"""The adapter contract and the paging state shared by both platforms.

An adapter turns one account's paginated "likes" API into a sequence of
``Item`` objects, pulled one at a time with ``await adapter.next()``.
"""

import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..errors import ApiShapeError
from ..models import Item

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/16.1 Safari/605.1.15"
)

# Consecutive pages without a single post before a source counts as exhausted
EMPTY_PAGE_RETRIES = 5


class Adapter(Protocol):
    def platform(self) -> str: ...

    def name(self) -> str: ...

    def path(self) -> Path: ...

    async def next(self) -> Item | None: ...

    async def count(self) -> int | None: ...

    async def aclose(self) -> None: ...


@dataclass
class Page:
    """One fetched page, already expanded into items."""

    items: list[Item] = field(default_factory=list)
    cursor: str | None = None
    post_count: int = 0


class Paginator:
    """Serve items one by one, fetching the next page when the buffer is empty.

    Pagination ends when a page returns the cursor it was asked with (that
    page is dropped), after a page without a cursor (that page is served), or
    after ``empty_page_retries`` pages in a row without any post.
    """

    def __init__(
        self,
        fetch_page: Callable[[str | None], Awaitable[Page]],
        empty_page_retries: int = EMPTY_PAGE_RETRIES,
    ):
        self._fetch_page = fetch_page
        self._empty_page_retries = empty_page_retries
        self._buffer: deque[Item] = deque()
        self.cursor: str | None = None
        self.exhausted = False

    async def next(self) -> Item | None:
        if self._buffer:
            return self._buffer.popleft()

        empty_pages = 0
        while not self.exhausted:
            page = await self._fetch_page(self.cursor)

            if page.cursor is not None and page.cursor == self.cursor:
                logger.debug("Cursor did not advance, pagination complete.")
                self.exhausted = True
                break

            self._buffer.extend(page.items)
            if page.cursor is None:
                # Last page: serve what it brought, then stop.
                self.exhausted = True
            else:
                self.cursor = page.cursor
            if self._buffer:
                return self._buffer.popleft()
            if self.exhausted:
                break

            if page.post_count:
                # Posts without media; keep paging.
                empty_pages = 0
                continue

            empty_pages += 1
            if empty_pages > self._empty_page_retries:
                logger.debug(
                    "%d empty pages in a row, pagination complete.", empty_pages
                )
                self.exhausted = True
        return None


def require(data: object, *keys: str | int) -> object:
    """Walk ``data`` along ``keys``, raising ``ApiShapeError`` on a gap."""
    node = data
    for key in keys:
        try:
            node = node[key]  # type: ignore[index]
        except (KeyError, IndexError, TypeError):
            path = ".".join(str(k) for k in keys)
            raise ApiShapeError(f"Response is missing `{path}`", payload=data) from None
        if node is None:
            path = ".".join(str(k) for k in keys)
            raise ApiShapeError(f"Response has null `{path}`", payload=data)
    return node


def require_str(data: object, *keys: str | int) -> str:
    value = require(data, *keys)
    if not isinstance(value, str):
        path = ".".join(str(k) for k in keys)
        raise ApiShapeError(f"`{path}` is not a string", payload=data)
    return value


def require_list(data: object, *keys: str | int) -> list:
    value = require(data, *keys)
    if not isinstance(value, list):
        path = ".".join(str(k) for k in keys)
        raise ApiShapeError(f"`{path}` is not a list", payload=data)
    return value


def require_dict(data: object, *keys: str | int) -> dict:
    value = require(data, *keys)
    if not isinstance(value, dict):
        path = ".".join(str(k) for k in keys)
        raise ApiShapeError(f"`{path}` is not an object", payload=data)
    return value
