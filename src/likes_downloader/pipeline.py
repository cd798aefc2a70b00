"""Download every liked media item of one or more accounts.

Each account is paged by its adapter in a single task; every new item gets a
task of its own, limited by the account's semaphore. Items already on disk
are skipped using a ``DedupIndex`` built before the first page is fetched.
"""

import asyncio
import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .adapters.base import Adapter
from .dedup import PARTIAL_SUFFIX, DedupIndex
from .errors import ApiShapeError, AuthenticationError
from .models import Item
from .transport import HttpError

logger = logging.getLogger(__name__)

WRITE_RETRIES = 3


class ProgressListener(Protocol):
    def discovered(self, item: Item) -> None: ...

    def completed(self, item: Item) -> None: ...


@dataclass
class ProgressCounter:
    """Counts queued and finished items, and finished posts via ``is_last``."""

    discovered_items: int = 0
    completed_items: int = 0
    completed_posts: int = 0

    def discovered(self, item: Item) -> None:
        self.discovered_items += 1

    def completed(self, item: Item) -> None:
        self.completed_items += 1
        if item.is_last:
            self.completed_posts += 1
        logger.debug(
            "%d/%d items done: %s",
            self.completed_items,
            self.discovered_items,
            item.filename,
        )


@dataclass
class AccountReport:
    platform: str
    name: str
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0
    # Likes reported by the platform, when it tells
    total: int | None = None


def _write_file(path: Path, data: bytes) -> None:
    partial = path.with_name(path.name + PARTIAL_SUFFIX)
    try:
        partial.write_bytes(data)
        os.replace(partial, path)
    except OSError:
        partial.unlink(missing_ok=True)
        raise


async def download_item(
    item: Item, directory: Path, write_retries: int = WRITE_RETRIES
) -> bool:
    """Fetch one item and store it, returning False if it had to be skipped."""
    path = directory / item.filename
    async with item.limiter:
        for attempt in range(1, write_retries + 1):
            data = await item.get()
            try:
                await asyncio.to_thread(_write_file, path, data)
            except OSError as e:
                logger.warning(
                    "Writing %s failed (attempt %d/%d): %s",
                    item.filename,
                    attempt,
                    write_retries,
                    e,
                )
                continue
            logger.debug("Saved %s (%d bytes)", path, len(data))
            return True

    logger.warning("Cannot write %s, skipped.", item.filename)
    return False


async def download_account(
    adapter: Adapter,
    index: DedupIndex | None = None,
    progress: ProgressListener | None = None,
    write_retries: int = WRITE_RETRIES,
) -> AccountReport:
    """Drive ``adapter`` to exhaustion and download what is not on disk yet.

    Errors from the adapter (``ApiShapeError``, ``AuthenticationError``)
    propagate after every download already started has finished.
    """
    directory = adapter.path()
    if index is None:
        index = DedupIndex.scan(directory)
    directory.mkdir(parents=True, exist_ok=True)
    progress = progress or ProgressCounter()
    report = AccountReport(platform=adapter.platform(), name=adapter.name())
    report.total = await adapter.count()
    if report.total is not None:
        logger.info("%s %s has %d likes", report.platform, report.name, report.total)

    async def run(item: Item) -> None:
        try:
            saved = await download_item(item, directory, write_retries)
        except HttpError as e:
            logger.error("Download of %s failed: %s", item.media_url, e)
            saved = False
        if saved:
            report.downloaded += 1
        else:
            report.failed += 1
        progress.completed(item)

    tasks: list[asyncio.Task] = []
    try:
        while (item := await adapter.next()) is not None:
            if item in index:
                report.skipped += 1
                continue
            progress.discovered(item)
            tasks.append(asyncio.create_task(run(item)))
    finally:
        if tasks:
            await asyncio.gather(*tasks)

    logger.info(
        "%s %s: %d downloaded, %d already present, %d failed",
        report.platform,
        report.name,
        report.downloaded,
        report.skipped,
        report.failed,
    )
    return report


def dump_payload(dump_dir: Path, adapter: Adapter, payload: object) -> Path:
    """Save the response an adapter choked on, for inspection."""
    dump_dir.mkdir(parents=True, exist_ok=True)
    path = dump_dir / f"{adapter.platform()}-{adapter.name()}.json"
    path.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"
    )
    return path


async def run_accounts(
    adapters: Iterable[Adapter],
    progress: ProgressListener | None = None,
    dump_dir: Path | None = None,
) -> list[AccountReport | None]:
    """Download all accounts concurrently.

    An account that fails for any reason is logged and yields ``None``; the
    others run to completion. Adapters are closed afterwards.
    """
    progress = progress or ProgressCounter()

    async def run_one(adapter: Adapter) -> AccountReport | None:
        label = f"{adapter.platform()} {adapter.name()}"
        try:
            return await download_account(adapter, progress=progress)
        except ApiShapeError as e:
            logger.error("%s: unexpected API response: %s", label, e)
            if dump_dir is not None and e.payload is not None:
                path = dump_payload(dump_dir, adapter, e.payload)
                logger.error("%s: offending response saved to %s", label, path)
        except AuthenticationError as e:
            logger.error("%s: authentication failed: %s", label, e)
        except Exception:
            logger.exception("%s: download aborted", label)
        finally:
            await adapter.aclose()
        return None

    return await asyncio.gather(*(run_one(adapter) for adapter in adapters))
