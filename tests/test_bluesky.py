"""Tests for the Bluesky likes adapter."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from likes_downloader.adapters.bluesky import SESSION_URL, BlueskyAdapter, embed_images
from likes_downloader.errors import ApiShapeError, AuthenticationError
from payloads import feed_response, image_post, session_response, text_post

LIKES_URL = "https://pds.example.com/xrpc/app.bsky.feed.getActorLikes"
CDN = "https://cdn.bsky.app/img/feed_fullsize/plain/did:plc:alice"


def _adapter(**kwargs) -> BlueskyAdapter:
    return BlueskyAdapter("alice.bsky.social", "app-password", **kwargs)


def _drain(adapter: BlueskyAdapter) -> list:
    async def run():
        items = []
        async with adapter:
            while (item := await adapter.next()) is not None:
                items.append(item)
        return items

    return asyncio.run(run())


class TestEmbedImages:
    def test_images_embed(self):
        embed = {
            "$type": "app.bsky.embed.images#view",
            "images": [{"fullsize": "a"}, {"fullsize": "b"}],
        }
        assert len(embed_images(embed)) == 2

    def test_record_with_media(self):
        embed = {
            "$type": "app.bsky.embed.recordWithMedia#view",
            "record": {},
            "media": {
                "$type": "app.bsky.embed.images#view",
                "images": [{"fullsize": "a"}],
            },
        }
        assert embed_images(embed) == [{"fullsize": "a"}]

    def test_external_link_has_no_images(self):
        assert embed_images({"$type": "app.bsky.embed.external#view"}) == []

    def test_unknown_embed_is_fatal(self):
        with pytest.raises(ApiShapeError, match="Unknown embed type"):
            embed_images({"$type": "app.bsky.embed.hologram#view"})


class TestExpandPage:
    def test_png_items(self):
        data = feed_response(
            [
                image_post(
                    "alice.bsky.social",
                    "3kabc",
                    [f"{CDN}/one@jpeg", f"{CDN}/two@jpeg"],
                ),
                text_post("bob.bsky.social", "3kdef"),
            ],
            cursor="c1",
        )

        page = _adapter().expand_page(data)

        assert page.cursor == "c1"
        assert page.post_count == 2
        assert [i.filename for i in page.items] == [
            "alice.bsky.social 3kabc 1.png",
            "alice.bsky.social 3kabc 2.png",
        ]
        assert page.items[0].media_url == f"{CDN}/one@png"
        assert page.items[0].url == "https://bsky.app/profile/alice.bsky.social/post/3kabc"
        assert [i.is_last for i in page.items] == [False, True]

    def test_missing_feed_is_fatal(self):
        with pytest.raises(ApiShapeError, match="feed"):
            _adapter().expand_page({"cursor": "c1"})


class TestBlueskyAdapter:
    @respx.mock
    def test_session_and_pages(self):
        session = respx.post(SESSION_URL).mock(
            return_value=httpx.Response(200, json=session_response())
        )
        likes = respx.get(LIKES_URL).mock(
            side_effect=[
                httpx.Response(
                    200,
                    json=feed_response(
                        [image_post("alice.bsky.social", "p1", [f"{CDN}/a@jpeg"])],
                        cursor="c1",
                    ),
                ),
                httpx.Response(
                    200,
                    json=feed_response(
                        [image_post("bob.bsky.social", "p2", [f"{CDN}/b@jpeg"])],
                        cursor=None,
                    ),
                ),
            ]
        )

        items = _drain(_adapter(page_size=1))

        assert [i.filename for i in items] == [
            "alice.bsky.social p1 1.png",
            "bob.bsky.social p2 1.png",
        ]
        assert json.loads(session.calls[0].request.content) == {
            "identifier": "alice.bsky.social",
            "password": "app-password",
        }
        first, second = (call.request for call in likes.calls)
        assert first.headers["authorization"] == "Bearer jwt-token"
        assert first.url.params["actor"] == "did:plc:alice"
        assert first.url.params["limit"] == "1"
        assert "cursor" not in first.url.params
        assert second.url.params["cursor"] == "c1"

    @respx.mock
    def test_empty_pages_advance_cursor(self):
        respx.post(SESSION_URL).mock(return_value=httpx.Response(200, json=session_response()))
        likes = respx.get(LIKES_URL).mock(
            side_effect=[
                httpx.Response(200, json=feed_response([], cursor="c1")),
                httpx.Response(200, json=feed_response([], cursor="c2")),
                httpx.Response(
                    200,
                    json=feed_response(
                        [image_post("carol.bsky.social", "p3", [f"{CDN}/c@jpeg"])],
                        cursor="c3",
                    ),
                ),
                httpx.Response(200, json=feed_response([], cursor="c3")),
            ]
        )

        items = _drain(_adapter())

        assert [i.filename for i in items] == ["carol.bsky.social p3 1.png"]
        assert [c.request.url.params.get("cursor") for c in likes.calls] == [
            None,
            "c1",
            "c2",
            "c3",
        ]

    @respx.mock
    def test_gives_up_after_empty_page_retries(self):
        respx.post(SESSION_URL).mock(return_value=httpx.Response(200, json=session_response()))
        counter = iter(range(100))
        likes = respx.get(LIKES_URL).mock(
            side_effect=lambda request: httpx.Response(
                200, json=feed_response([], cursor=f"c{next(counter)}")
            )
        )

        assert _drain(_adapter(empty_page_retries=2)) == []
        assert likes.call_count == 3

    @respx.mock
    def test_bad_password_is_fatal(self):
        respx.post(SESSION_URL).mock(
            return_value=httpx.Response(
                401,
                json={
                    "error": "AuthenticationRequired",
                    "message": "Invalid identifier or password",
                },
            )
        )

        with pytest.raises(AuthenticationError, match="Invalid identifier or password"):
            _drain(_adapter())

    @respx.mock
    def test_error_body_is_fatal(self):
        respx.post(SESSION_URL).mock(
            return_value=httpx.Response(
                200, json={"error": "AccountTakedown", "message": "Account has been taken down"}
            )
        )

        with pytest.raises(AuthenticationError, match="AccountTakedown"):
            _drain(_adapter())

    @respx.mock
    @patch("likes_downloader.retry.sleep", new_callable=AsyncMock)
    def test_rate_limited_session(self, mock_sleep):
        respx.post(SESSION_URL).mock(
            side_effect=[
                httpx.Response(429),
                httpx.Response(200, json=session_response()),
            ]
        )
        respx.get(LIKES_URL).mock(
            return_value=httpx.Response(200, json=feed_response([], cursor=None))
        )

        assert _drain(_adapter(retry_delay=2.5)) == []
        mock_sleep.assert_awaited_once_with(2.5)

    @respx.mock
    def test_count_is_unknown(self):
        async def run():
            async with _adapter() as adapter:
                return await adapter.count()

        assert asyncio.run(run()) is None
