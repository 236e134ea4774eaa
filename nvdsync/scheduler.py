"""Bounded-concurrency runner for feed fetch tasks.

A fixed pool of ``fetch_limit`` workers pulls feed contexts off a shared
queue, so no more than ``fetch_limit`` feeds ever have a request or a
file write in flight.  Every feed is attempted at most once; there are
no retries here.

Failure policy: once any feed fails, workers stop taking new feeds but
the feeds already in flight run to completion.  The first failure is
then raised as ``SyncError`` together with every result that finished.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Sequence

import aiohttp

from .exceptions import FeedFetchError, SyncError
from .feeds import FeedResult, FetchContext, fetch_feed

logger = logging.getLogger(__name__)


async def fetch_feeds_bounded(
    session: aiohttp.ClientSession,
    contexts: Sequence[FetchContext],
    limit: int,
) -> list[FeedResult]:
    """Fetch every feed with at most ``limit`` running at once.

    Args:
        session: HTTP session shared by all workers.
        contexts: One context per feed.
        limit: Maximum concurrent feed tasks (>= 1).

    Returns:
        Per-feed results in completion order.

    Raises:
        SyncError: if any feed failed.  ``failure`` is the first
            ``FeedFetchError``; ``results`` holds the feeds that finished.
    """
    if limit < 1:
        raise ValueError(f"fetch limit must be >= 1, got {limit}")

    pending = deque(contexts)
    completed: list[FeedResult] = []
    failures: list[FeedFetchError] = []

    async def worker() -> None:
        while pending and not failures:
            ctx = pending.popleft()
            try:
                completed.append(await fetch_feed(session, ctx))
            except FeedFetchError as e:
                failure = e
            except Exception as e:
                failure = FeedFetchError(ctx.feed, e)
                failure.__cause__ = e
            else:
                continue
            if not failures:
                logger.error("Fetching feed %s failed: %s", failure.feed, failure.cause)
            else:
                logger.debug("Additional failure for feed %s: %s", failure.feed, failure.cause)
            failures.append(failure)

    workers = [worker() for _ in range(min(limit, len(contexts)))]
    await asyncio.gather(*workers)

    if failures:
        skipped = [ctx.feed for ctx in pending]
        if skipped:
            logger.info("Not attempted after failure: %s", ", ".join(skipped))
        raise SyncError(failures[0], completed) from failures[0]
    return completed
