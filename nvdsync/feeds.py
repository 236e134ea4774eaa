"""Per-feed fetch task: meta file, staleness check, conditional download.

Each configured feed gets its own ``FetchContext``.  The task for a feed
runs three steps in order and stops at the first failure:

1. download ``{prefix}-{feed}.meta`` and parse it,
2. hash the cached JSON and compare against the meta ``sha256``,
3. if stale (or missing), download ``{prefix}-{feed}.json.gz`` and
   decompress it over the cached JSON.

All network I/O goes through an ``aiohttp.ClientSession``; blocking file
I/O is pushed to a worker thread so feeds interleave on one event loop.
"""

from __future__ import annotations

import asyncio
import gzip
import hashlib
import logging
import shutil
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import aiohttp

from .config import SyncConfig
from .exceptions import FeedFetchError
from .metafile import parse_meta_file

logger = logging.getLogger(__name__)

USER_AGENT = "nvdsync/0.3 (+https://github.com/)"
CHUNK_SIZE = 1024 * 1024
CONNECT_TIMEOUT = 15

# Errors that fail a single feed without affecting its siblings.
FETCH_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, EOFError, zlib.error)

ProgressCallback = Callable[[], None]


@dataclass
class FetchContext:
    """Unit of work for one feed.

    Attributes:
        feed: Feed name (``2019``, ``modified``...).
        config: Shared read-only configuration.
        progress: Called once with no arguments when the feed finishes
            successfully.
        metadata: Parsed remote meta file, set by ``fetch_meta_file``.
        fetch_remote: Whether the feed needs downloading, set by
            ``check_local_feed_file``.
    """

    feed: str
    config: SyncConfig
    progress: ProgressCallback | None = None
    metadata: dict[str, str] | None = None
    fetch_remote: bool | None = None

    def to_result(self) -> FeedResult:
        """Strip the shared config and callback off for the caller."""
        return FeedResult(
            feed=self.feed,
            metadata=dict(self.metadata or {}),
            fetch_remote=bool(self.fetch_remote),
        )


@dataclass(frozen=True)
class FeedResult:
    """Outcome of a successful feed task.

    Attributes:
        feed: Feed name.
        metadata: Remote meta fields (``sha256``, ``size``, ...).
        fetch_remote: ``True`` if the feed was downloaded this run,
            ``False`` if the cached copy was already current.
    """

    feed: str
    metadata: dict[str, str] = field(default_factory=dict)
    fetch_remote: bool = False


def open_session(config: SyncConfig) -> aiohttp.ClientSession:
    """Create the HTTP session used for a sync run.

    Args:
        config: Sync configuration (supplies the request timeout).

    Returns:
        A new ``aiohttp.ClientSession``; the caller closes it.
    """
    timeout = aiohttp.ClientTimeout(total=config.request_timeout, connect=CONNECT_TIMEOUT)
    headers = {"User-Agent": USER_AGENT, "Accept": "*/*"}
    return aiohttp.ClientSession(headers=headers, timeout=timeout)


# ─── Helpers ─────────────────────────────────────────────────────────────────


def sha256_file(path: Path) -> str:
    """Return the uppercase hex SHA-256 of a file, read in chunks."""
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest().upper()


def gunzip_file(src: Path, dest: Path) -> None:
    """Decompress ``src`` into ``dest``, replacing any existing content."""
    with gzip.open(src, "rb") as fin, dest.open("wb") as fout:
        shutil.copyfileobj(fin, fout, CHUNK_SIZE)


class _Gunzipper:
    """Incremental gzip decoder that also handles multi-member archives."""

    def __init__(self) -> None:
        self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)

    def feed(self, data: bytes) -> bytes:
        out = []
        while data:
            out.append(self._decompressor.decompress(data))
            if not self._decompressor.eof:
                break
            data = self._decompressor.unused_data
            if data:
                self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
        return b"".join(out)

    def finish(self) -> bytes:
        tail = self._decompressor.flush()
        if not self._decompressor.eof:
            raise EOFError("compressed feed ended before the end-of-stream marker")
        return tail


async def _stream_to_file(
    session: aiohttp.ClientSession,
    url: str,
    dest: Path,
    decompress: bool,
) -> None:
    """Stream ``url`` into ``dest``, optionally gunzipping on the way."""
    gunzipper = _Gunzipper() if decompress else None
    async with session.get(url) as resp:
        resp.raise_for_status()
        f = await asyncio.to_thread(dest.open, "wb")
        try:
            async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                data = gunzipper.feed(chunk) if gunzipper else chunk
                if data:
                    await asyncio.to_thread(f.write, data)
            if gunzipper:
                await asyncio.to_thread(f.write, gunzipper.finish())
        finally:
            await asyncio.to_thread(f.close)


# ─── Task steps ──────────────────────────────────────────────────────────────


async def fetch_meta_file(session: aiohttp.ClientSession, ctx: FetchContext) -> FetchContext:
    """Download and parse the feed's ``.meta`` file into ``ctx.metadata``.

    With ``persist_all`` the raw meta file is also written to the cache.
    """
    url = ctx.config.meta_url(ctx.feed)
    logger.debug("Fetching %s", url)
    async with session.get(url) as resp:
        resp.raise_for_status()
        raw = await resp.read()

    ctx.metadata = parse_meta_file(raw.decode("utf-8", errors="replace"))

    if ctx.config.persist_all:
        await asyncio.to_thread(ctx.config.meta_path(ctx.feed).write_bytes, raw)
    return ctx


async def check_local_feed_file(ctx: FetchContext) -> FetchContext:
    """Decide whether the cached feed is stale.

    Sets ``ctx.fetch_remote`` to ``True`` when the cached JSON is missing
    or its SHA-256 differs from the meta file's ``sha256``.  Any read
    error other than a missing file propagates.

    Args:
        ctx: Context with ``metadata`` already populated.

    Returns:
        The same context.
    """
    path = ctx.config.feed_path(ctx.feed)
    try:
        local_digest = await asyncio.to_thread(sha256_file, path)
    except FileNotFoundError:
        ctx.fetch_remote = True
        return ctx

    remote_digest = (ctx.metadata or {}).get("sha256", "").upper()
    ctx.fetch_remote = local_digest != remote_digest
    return ctx


async def fetch_remote_feed_file(session: aiohttp.ClientSession, ctx: FetchContext) -> FetchContext:
    """Download and decompress the feed when ``ctx.fetch_remote`` is set.

    Without ``persist_all`` the response is gunzipped while streaming
    straight into the cached JSON.  With ``persist_all`` the ``.json.gz``
    is written to the cache first and then decompressed from disk.
    """
    if not ctx.fetch_remote:
        return ctx

    cfg = ctx.config
    url = cfg.archive_url(ctx.feed)
    if cfg.persist_all:
        archive = cfg.archive_path(ctx.feed)
        await _stream_to_file(session, url, archive, decompress=False)
        await asyncio.to_thread(gunzip_file, archive, cfg.feed_path(ctx.feed))
    else:
        await _stream_to_file(session, url, cfg.feed_path(ctx.feed), decompress=True)
    return ctx


async def fetch_feed(session: aiohttp.ClientSession, ctx: FetchContext) -> FeedResult:
    """Run the whole meta → check → download sequence for one feed.

    The progress callback fires only after every step succeeded.

    Args:
        session: HTTP session.
        ctx: The feed's context.

    Returns:
        ``FeedResult`` without the shared config.

    Raises:
        FeedFetchError: if any network, filesystem or decompression step
            fails.
    """
    try:
        await fetch_meta_file(session, ctx)
        await check_local_feed_file(ctx)
        if ctx.fetch_remote:
            logger.info("Downloading feed %s", ctx.feed)
            await fetch_remote_feed_file(session, ctx)
        else:
            logger.info("Feed %s is up to date", ctx.feed)
    except FETCH_ERRORS as e:
        raise FeedFetchError(ctx.feed, e) from e

    if ctx.progress is not None:
        ctx.progress()
    return ctx.to_result()
