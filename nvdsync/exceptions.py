"""Exception hierarchy for nvdsync.

Every error raised on purpose by this package derives from
``NvdSyncError`` so callers can catch one type at the outer edge and the
more specific ones where they care about the failure domain.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .feeds import FeedResult


class NvdSyncError(Exception):
    """Base exception for all nvdsync errors."""


# ─── Configuration ───────────────────────────────────────────────────────────


class ConfigurationError(NvdSyncError):
    """Raised when a config file cannot be read or fails validation."""


# ─── Sync ────────────────────────────────────────────────────────────────────


class FeedFetchError(NvdSyncError):
    """Raised when one feed's fetch task fails.

    Attributes:
        feed: Name of the feed whose task failed.
        cause: The underlying transport, filesystem or decompression error.
    """

    def __init__(self, feed: str, cause: BaseException):
        super().__init__(f"feed {feed!r} failed: {cause}")
        self.feed = feed
        self.cause = cause


class SyncError(NvdSyncError):
    """Raised when a sync run does not complete for every feed.

    The feeds that did finish are still available on ``results`` so the
    caller does not lose the work that succeeded.

    Attributes:
        failure: The first error observed (usually a ``FeedFetchError``).
        results: Per-feed results for the feeds that completed.
    """

    def __init__(self, failure: BaseException, results: list[FeedResult] | None = None):
        super().__init__(f"sync failed: {failure}")
        self.failure = failure
        self.results: list[FeedResult] = list(results or [])


# ─── Search ──────────────────────────────────────────────────────────────────


class SearchError(NvdSyncError):
    """Raised when a cached feed cannot be read or parsed during a search.

    Attributes:
        cve_id: The identifier being searched for.
        feed: The feed that was being scanned.
        cause: The underlying I/O or JSON error.
    """

    def __init__(self, cve_id: str, feed: str, cause: BaseException):
        super().__init__(f"search for {cve_id} failed reading feed {feed!r}: {cause}")
        self.cve_id = cve_id
        self.feed = feed
        self.cause = cause
