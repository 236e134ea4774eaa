"""Public entry point: the ``NVD`` mirror object.

Usage::

    from nvdsync import NVD

    nvd = NVD(feeds=["2019", "modified"], cache_dir="/tmp/nvd")
    results = nvd.sync(progress=lambda: print("."))
    hit = nvd.search("CVE-2019-0001")
    if hit.found:
        print(hit.data["cve"]["description"])
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from .config import SyncConfig
from .exceptions import SyncError
from .feeds import FeedResult, FetchContext, ProgressCallback, open_session
from .scheduler import fetch_feeds_bounded
from .search import SearchResult, search_feeds

logger = logging.getLogger(__name__)


class NVD:
    """Local mirror of the NVD JSON feeds.

    Attributes:
        config: The immutable ``SyncConfig`` for this instance.
    """

    def __init__(self, config: SyncConfig | None = None, **options: Any):
        if config is None:
            config = SyncConfig(**options)
        elif options:
            config = SyncConfig.model_validate({**config.model_dump(), **options})
        self.config = config

    def _contexts(self, progress: ProgressCallback | None) -> list[FetchContext]:
        return [FetchContext(feed=feed, config=self.config, progress=progress) for feed in self.config.feeds]

    async def sync_async(
        self,
        progress: ProgressCallback | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> list[FeedResult]:
        """Bring every configured feed up to date.

        Args:
            progress: Called with no arguments each time a feed finishes.
            session: HTTP session to use; a new one is opened (and closed)
                when omitted.

        Returns:
            One ``FeedResult`` per feed, in completion order.

        Raises:
            SyncError: if the cache directory can't be created or any feed
                fails.  ``results`` carries the feeds that did finish.
        """
        try:
            await asyncio.to_thread(self.config.cache_dir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise SyncError(e, []) from e

        contexts = self._contexts(progress)
        if session is not None:
            results = await fetch_feeds_bounded(session, contexts, self.config.fetch_limit)
        else:
            async with open_session(self.config) as own_session:
                results = await fetch_feeds_bounded(own_session, contexts, self.config.fetch_limit)

        fetched = sum(1 for r in results if r.fetch_remote)
        logger.info("Synced %d feeds (%d downloaded, %d up to date)", len(results), fetched, len(results) - fetched)
        return results

    def sync(self, progress: ProgressCallback | None = None) -> list[FeedResult]:
        """Blocking wrapper around ``sync_async``."""
        return asyncio.run(self.sync_async(progress))

    def search(self, cve_id: str) -> SearchResult:
        """Find ``cve_id`` in the cached feeds.

        Only reads what is already on disk; call ``sync`` first.

        Raises:
            SearchError: if a cached feed can't be read or parsed.
        """
        return search_feeds(self.config, cve_id)

    async def search_async(self, cve_id: str) -> SearchResult:
        return await asyncio.to_thread(search_feeds, self.config, cve_id)
