"""Twitter GraphQL adapter for an account's liked tweets.

Authentication uses cookie-based auth (auth_token + ct0) matching Twitter's
web client behavior. The bearer token is a static, public token embedded in
Twitter's web client JS, shared by all web clients.

The query IDs and feature flags are hardcoded and may need updating when
Twitter deploys changes. Override with environment variables if needed:
    TWITTER_LIKES_QUERY_ID
    TWITTER_USER_QUERY_ID
    TWITTER_BEARER_TOKEN
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import urlsplit

import httpx

from ..errors import ApiShapeError
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

# Static bearer token used by Twitter's web client (public, not a user secret)
BEARER_TOKEN = os.environ.get(
    "TWITTER_BEARER_TOKEN",
    "AAAAAAAAAAAAAAAAAAAAANRILgAAAAAAnNwIzUejRCOuH5E6I8xnZz4puTs"
    "%3D1Zv7ttfk8LF81IUq16cHjhLTvJu4FA33AGWWjCpTnA",
)

# GraphQL query IDs rotate every few weeks
LIKES_QUERY_ID = os.environ.get("TWITTER_LIKES_QUERY_ID", "QK8AVO3RpcnbLPKXLAiVog")
USER_QUERY_ID = os.environ.get("TWITTER_USER_QUERY_ID", "Yka-W8dz7RaEuQNkroPkYw")

LIKES_URL = f"https://x.com/i/api/graphql/{LIKES_QUERY_ID}/Likes"
USER_URL = f"https://x.com/i/api/graphql/{USER_QUERY_ID}/UserByScreenName"

USER_FEATURES = {
    "hidden_profile_subscriptions_enabled": True,
    "rweb_tipjar_consumption_enabled": True,
    "responsive_web_graphql_exclude_directive_enabled": True,
    "verified_phone_label_enabled": False,
    "subscriptions_verification_info_is_identity_verified_enabled": True,
    "subscriptions_verification_info_verified_since_enabled": True,
    "highlights_tweets_tab_ui_enabled": True,
    "responsive_web_twitter_article_notes_tab_enabled": True,
    "subscriptions_feature_can_gift_premium": True,
    "creator_subscriptions_tweet_preview_api_enabled": True,
    "responsive_web_graphql_skip_user_profile_image_extensions_enabled": False,
    "responsive_web_graphql_timeline_navigation_enabled": True,
}

# Feature flags sent with each Likes request; must match the web client
LIKES_FEATURES = {
    "responsive_web_twitter_blue_verified_badge_is_enabled": True,
    "verified_phone_label_enabled": False,
    "responsive_web_graphql_timeline_navigation_enabled": True,
    "view_counts_public_visibility_enabled": True,
    "view_counts_everywhere_api_enabled": True,
    "longform_notetweets_consumption_enabled": False,
    "tweetypie_unmention_optimization_enabled": True,
    "responsive_web_uc_gql_enabled": True,
    "vibe_api_enabled": True,
    "responsive_web_edit_tweet_api_enabled": True,
    "graphql_is_translatable_rweb_tweet_is_translatable_enabled": True,
    "standardized_nudges_misinfo": True,
    "tweet_with_visibility_results_prefer_gql_limited_actions_policy_enabled": False,
    "interactive_text_enabled": True,
    "responsive_web_text_conversations_enabled": False,
    "responsive_web_enhance_cards_enabled": False,
}

AUTH_FAILURE_STATUSES = (400, 401, 403, 404)


@dataclass
class TwitterAuth:
    user_id: str
    likes_count: int | None = None


def likes_variables(user_id: str, cursor: str | None, page_size: int) -> dict:
    return {
        "userId": user_id,
        "count": page_size,
        "cursor": cursor,
        "includePromotedContent": False,
        "withSuperFollowsUserFields": False,
        "withDownvotePerspective": False,
        "withReactionsMetadata": False,
        "withReactionsPerspective": False,
        "withSuperFollowsTweetFields": False,
        "withClientEventToken": False,
        "withBirdwatchNotes": False,
        "withVoice": False,
        "withV2Timeline": False,
    }


def _unwrap_tweet(entry: dict) -> dict | None:
    """Return the tweet result of a timeline entry, or None if deleted."""
    results = require_dict(entry, "content", "itemContent", "tweet_results")
    result = results.get("result")
    if not result:
        return None
    if not isinstance(result, dict):
        raise ApiShapeError("`tweet_results.result` is not an object", payload=entry)

    # Unwrap TweetWithVisibilityResults wrapper
    if result.get("__typename") == "TweetWithVisibilityResults":
        result = result.get("tweet")
        if result is not None and not isinstance(result, dict):
            raise ApiShapeError("Visibility wrapper has no tweet object", payload=entry)

    if not result or result.get("__typename") == "TweetTombstone":
        return None
    return result


def _object(node: object) -> dict:
    return node if isinstance(node, dict) else {}


def _screen_name(tweet: dict) -> str:
    user = require_dict(tweet, "core", "user_results", "result")
    # Newer responses moved screen_name from legacy to core
    name = _object(user.get("legacy")).get("screen_name")
    if not name:
        name = _object(user.get("core")).get("screen_name")
    if not isinstance(name, str) or not name:
        raise ApiShapeError("Tweet author has no screen_name", payload=tweet)
    return name


def _timeline_entries(data: dict) -> list[dict]:
    user = require_dict(data, "data", "user", "result")
    timeline = user.get("timeline") or user.get("timeline_v2")
    if timeline is None:
        raise ApiShapeError(
            "Likes response has no timeline, please check your user name.",
            payload=data,
        )
    instructions = require_list(timeline, "timeline", "instructions")
    for instruction in instructions:
        if not isinstance(instruction, dict):
            raise ApiShapeError("Timeline instruction is not an object", payload=data)
        if instruction.get("type") == "TimelineAddEntries":
            entries = require_list(instruction, "entries")
            if not all(isinstance(entry, dict) for entry in entries):
                raise ApiShapeError("Timeline entry is not an object", payload=data)
            return entries
    raise ApiShapeError("Likes response has no TimelineAddEntries", payload=data)


def media_source(media: dict) -> tuple[str, str]:
    """Return the download URL and file extension of one media entity."""
    media_type = require_str(media, "type")
    if media_type == "photo":
        source = require_str(media, "media_url_https")
        ext = PurePosixPath(urlsplit(source).path).suffix.lstrip(".")
        if not ext:
            raise ApiShapeError(f"Photo URL has no extension: {source}", payload=media)
        return f"{source}?name=orig", ext
    if media_type in ("video", "animated_gif"):
        variants = require_list(media, "video_info", "variants")
        if not variants:
            raise ApiShapeError("Video has no variants", payload=media)
        return require_str(variants[-1], "url"), "mp4"
    raise ApiShapeError(f"Unknown media type {media_type}.", payload=media)


class TwitterAdapter:
    """Pull liked tweets' media of one Twitter account."""

    def __init__(
        self,
        user_name: str,
        auth_token: str,
        ct0: str,
        *,
        authorization: str | None = None,
        page_size: int = 100,
        concurrency: int = 50,
        path: Path = Path("media/twitter"),
        proxy: str | None = None,
        retry_delay: float = RATE_LIMIT_DELAY,
    ):
        self.user_name = user_name
        self._path = Path(path)
        self._page_size = page_size
        self._retry_delay = retry_delay
        self._auth: TwitterAuth | None = None
        self._pages = Paginator(self._fetch_page)
        self._limiter = asyncio.Semaphore(concurrency)
        self._xhr = httpx.AsyncClient(
            headers={
                "authorization": authorization or f"Bearer {BEARER_TOKEN}",
                "x-csrf-token": ct0,
                "x-twitter-active-user": "yes",
                "x-twitter-auth-type": "OAuth2Session",
                "x-twitter-client-language": "en",
                "content-type": "application/json",
                "User-Agent": USER_AGENT,
            },
            cookies={"auth_token": auth_token, "ct0": ct0},
            proxy=proxy,
            timeout=30.0,
            follow_redirects=True,
        )
        self._files = H1Client(proxy=proxy, headers={"User-Agent": USER_AGENT})

    def platform(self) -> str:
        return "twitter"

    def name(self) -> str:
        return self.user_name

    def path(self) -> Path:
        return self._path

    @property
    def cursor(self) -> str | None:
        return self._pages.cursor

    async def next(self) -> Item | None:
        return await self._pages.next()

    async def count(self) -> int | None:
        auth = await self._authenticate()
        return auth.likes_count

    async def _authenticate(self) -> TwitterAuth:
        if self._auth is not None:
            return self._auth

        logger.info("Resolving Twitter user @%s...", self.user_name)
        params = {
            "variables": json.dumps(
                {"screen_name": self.user_name, "withSafetyModeUserFields": True}
            ),
            "features": json.dumps(USER_FEATURES),
            "fieldToggles": json.dumps({"withAuxiliaryUserLabels": False}),
        }
        data = await request_json(
            self._xhr,
            "GET",
            USER_URL,
            params=params,
            retry_delay=self._retry_delay,
            fatal_statuses=AUTH_FAILURE_STATUSES,
        )
        result = require_dict(data, "data", "user", "result")
        user_id = require_str(result, "rest_id")
        likes_count = _object(result.get("legacy")).get("favourites_count")
        if not isinstance(likes_count, int):
            likes_count = None

        self._auth = TwitterAuth(user_id=user_id, likes_count=likes_count)
        logger.debug("@%s has user id %s", self.user_name, user_id)
        return self._auth

    async def _fetch_page(self, cursor: str | None) -> Page:
        auth = await self._authenticate()
        params = {
            "variables": json.dumps(
                likes_variables(auth.user_id, cursor, self._page_size)
            ),
            "features": json.dumps(LIKES_FEATURES),
        }
        logger.debug("Fetching likes of @%s after cursor %s", self.user_name, cursor)
        data = await request_json(
            self._xhr,
            "GET",
            LIKES_URL,
            params=params,
            retry_delay=self._retry_delay,
        )
        return self.expand_page(data)

    def expand_page(self, data: dict) -> Page:
        """Turn one Likes response into items and the next cursor."""
        page = Page()
        for entry in _timeline_entries(data):
            entry_id = entry.get("entryId")
            if not isinstance(entry_id, str):
                continue
            if entry_id.startswith("cursor-bottom"):
                page.cursor = require_str(entry, "content", "value")
                continue
            if not entry_id.startswith("tweet-"):
                continue

            page.post_count += 1
            tweet = _unwrap_tweet(entry)
            if tweet is None:
                continue
            page.items.extend(self._expand_tweet(tweet))

        if page.cursor is None:
            raise ApiShapeError("Likes response has no bottom cursor", payload=data)
        return page

    def _expand_tweet(self, tweet: dict) -> list[Item]:
        legacy = require_dict(tweet, "legacy")
        tweet_id = legacy.get("id_str") or tweet.get("rest_id")
        if not isinstance(tweet_id, str) or not tweet_id.isdigit():
            raise ApiShapeError("Tweet has no numeric id", payload=tweet)
        username = _screen_name(tweet)

        media = _object(legacy.get("extended_entities")).get("media")
        if not media:
            media = _object(legacy.get("entities")).get("media") or []
        if not isinstance(media, list):
            raise ApiShapeError("Tweet media is not a list", payload=tweet)

        items = []
        for index, entity in enumerate(media, start=1):
            media_url, ext = media_source(entity)
            items.append(
                Item(
                    url=f"https://x.com/{username}/status/{tweet_id}/photo/{index}",
                    media_url=media_url,
                    filename=build_filename(username, tweet_id, index, ext),
                    client=self._files,
                    limiter=self._limiter,
                    retry_delay=self._retry_delay,
                )
            )
        if items:
            items[-1].is_last = True
        return items

    async def aclose(self) -> None:
        await self._xhr.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()
