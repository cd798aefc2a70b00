"""Retry policy shared by the API clients and the media downloads.

"Too many requests" answers are retried after a fixed delay; any other
transient failure is retried right away with a warning. Neither loop has an
overall budget, only errors that retrying cannot fix are raised.
"""

import logging
from asyncio import sleep

import httpx

from .errors import ApiShapeError, AuthenticationError
from .transport import H1Client, HttpError

logger = logging.getLogger(__name__)

RATE_LIMIT_DELAY = 5.0
TOO_MANY_REQUESTS = 429


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    retry_delay: float = RATE_LIMIT_DELAY,
    fatal_statuses: tuple[int, ...] = (),
    **kwargs,
) -> dict:
    """Send an API request until it yields a JSON object.

    Statuses listed in ``fatal_statuses`` raise ``AuthenticationError``
    instead of being retried.
    """
    while True:
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.warning("Request to %s failed (%s), retrying...", url, e)
            continue

        if response.status_code == TOO_MANY_REQUESTS:
            logger.warning(
                "Too many requests to %s, sleeping %.0fs before retrying...",
                url,
                retry_delay,
            )
            await sleep(retry_delay)
            continue

        if response.status_code in fatal_statuses:
            raise AuthenticationError(
                f"{url} answered {response.status_code}: {response.text[:500]}"
            )

        if response.is_error:
            logger.warning(
                "Unexpected status %d from %s, retrying...",
                response.status_code,
                url,
            )
            continue

        try:
            data = response.json()
        except ValueError:
            logger.warning("Response from %s is not JSON, retrying...", url)
            continue

        if not isinstance(data, dict):
            raise ApiShapeError(f"Expected a JSON object from {url}", payload=data)
        return data


async def fetch_bytes(
    client: H1Client, url: str, *, retry_delay: float = RATE_LIMIT_DELAY
) -> bytes:
    """Download ``url`` with the transport client and return the body."""
    while True:
        try:
            response = await client.get(url)
        except HttpError as e:
            if not e.retryable:
                raise
            logger.warning("Download of %s failed (%s), retrying...", url, e)
            continue

        if response.status == TOO_MANY_REQUESTS:
            logger.warning(
                "Too many requests to %s, sleeping %.0fs before retrying...",
                url,
                retry_delay,
            )
            await sleep(retry_delay)
            continue

        if not response.is_success:
            logger.warning(
                "Unexpected status %d for %s, retrying...", response.status, url
            )
            continue

        return response.body
