"""Look up a single CVE record in the cached feed files.

There is no index: each candidate feed is streamed with ``ijson`` from
the start until the record turns up.  The feed named after the year in
the identifier (``CVE-2015-1234`` → ``2015``) is tried first, since that
is almost always where the record lives.
"""

from __future__ import annotations

import logging
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator

import ijson

from .config import SyncConfig
from .exceptions import SearchError

logger = logging.getLogger(__name__)

# ijson prefix of the record array in NVD JSON 1.x feeds.
FEED_ITEMS_PREFIX = "CVE_Items.item"

READ_ERRORS = (OSError, ijson.JSONError, ValueError)


@dataclass
class SearchResult:
    """Outcome of a search.

    Attributes:
        cve_id: The identifier searched for.
        data: The matching feed item, or ``None`` if no feed had it.
        feed: Name of the feed the item was found in.
        searched: Feeds scanned, in the order they were scanned.
    """

    cve_id: str
    data: dict[str, Any] | None = None
    feed: str | None = None
    searched: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.data is not None


def year_hint(cve_id: str) -> str | None:
    """Return the second hyphen-separated part of ``cve_id``, if any.

    Nothing checks that it is really a year.
    """
    parts = cve_id.split("-")
    if len(parts) > 1 and parts[1]:
        return parts[1]
    return None


def search_order(cve_id: str, feeds: Iterable[str]) -> Iterator[str]:
    """Yield feed names in the order a search visits them.

    The hinted year goes first when it is one of ``feeds``; the rest are
    taken from the end of the list backwards.

    Example::

        >>> list(search_order("CVE-2015-1234", ["2014", "2015", "2016", "modified"]))
        ['2015', 'modified', '2016', '2014']
    """
    hint = year_hint(cve_id)
    haystacks = list(feeds)
    while haystacks:
        if hint and hint in haystacks:
            haystacks.remove(hint)
            yield hint
        else:
            yield haystacks.pop()


def iter_feed_items(path: Path) -> Iterator[dict[str, Any]]:
    """Stream the items of a cached feed file one at a time."""
    with path.open("rb") as f:
        yield from ijson.items(f, FEED_ITEMS_PREFIX, use_float=True)


def record_id(item: dict[str, Any]) -> str | None:
    """Extract ``cve.CVE_data_meta.ID`` from a feed item."""
    try:
        return item["cve"]["CVE_data_meta"]["ID"]
    except (KeyError, TypeError):
        return None


def search_feeds(config: SyncConfig, cve_id: str) -> SearchResult:
    """Find the feed item for ``cve_id`` in the cached feeds.

    Stops reading as soon as a match is found.  A feed that can't be
    opened or parsed ends the whole search rather than being skipped.

    Args:
        config: Sync configuration (feed list and cache layout).
        cve_id: Identifier such as ``CVE-2019-0001``.

    Returns:
        ``SearchResult``; ``data`` is ``None`` if no feed contained it.

    Raises:
        SearchError: if a candidate feed could not be read.
    """
    result = SearchResult(cve_id=cve_id)
    for feed in search_order(cve_id, config.feeds):
        logger.debug("Searching feed %s for %s", feed, cve_id)
        result.searched.append(feed)
        try:
            with closing(iter_feed_items(config.feed_path(feed))) as items:
                for item in items:
                    if record_id(item) == cve_id:
                        result.data = item
                        result.feed = feed
                        break
        except READ_ERRORS as e:
            logger.error("Reading feed %s failed: %s", feed, e)
            raise SearchError(cve_id, feed, e) from e

        if result.found:
            logger.info("Found %s in feed %s", cve_id, feed)
            break
    return result
