"""Shared test fixtures."""

import asyncio
from pathlib import Path

import pytest

from likes_downloader.models import Item
from likes_downloader.transport import Response


class FakeClient:
    """Stands in for H1Client: answers from a per-URL script of responses.

    A script entry is an int status (body ``data:<url>``), a ``Response`` or
    an exception to raise. The last entry repeats once the script runs out.
    """

    def __init__(self, scripts: dict[str, list] | None = None, delay: float = 0):
        self.scripts = scripts or {}
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get(self, url: str, headers=None) -> Response:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            script = self.scripts.get(url, [200])
            step = script.pop(0) if len(script) > 1 else script[0]
        finally:
            self.in_flight -= 1
        if isinstance(step, Exception):
            raise step
        if isinstance(step, Response):
            return step
        return Response(status=step, body=f"data:{url}".encode(), url=url)


class FakeAdapter:
    """Serves a fixed list of items, like an adapter over an exhausted feed."""

    def __init__(
        self,
        items: list[Item],
        path: Path,
        error: Exception | None = None,
        total: int | None = None,
    ):
        self._items = list(items)
        self._path = path
        self._error = error
        self._total = total
        self.closed = False

    def platform(self) -> str:
        return "fake"

    def name(self) -> str:
        return "tester"

    def path(self) -> Path:
        return self._path

    async def next(self) -> Item | None:
        if self._items:
            return self._items.pop(0)
        if self._error is not None:
            raise self._error
        return None

    async def count(self) -> int | None:
        return self._total

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def make_item():
    """Build an Item for ``(author, post_id, index)`` served by a client."""

    def _make(
        client,
        author: str = "alice",
        post_id: str = "100",
        index: int = 1,
        limiter: asyncio.Semaphore | None = None,
        is_last: bool = True,
    ) -> Item:
        return Item(
            url=f"https://x.com/{author}/status/{post_id}/photo/{index}",
            media_url=f"https://cdn.example.com/{author}/{post_id}/{index}.jpg",
            filename=f"{author} {post_id} {index}.jpg",
            client=client,
            limiter=limiter or asyncio.Semaphore(4),
            is_last=is_last,
            retry_delay=5.0,
        )

    return _make
