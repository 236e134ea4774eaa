"""nvdsync — local mirror and lookup for the NVD JSON vulnerability feeds.

This package keeps an on-disk copy of the NIST NVD yearly and rolling
feeds up to date (checksum-gated, with bounded download concurrency) and
looks individual CVE records up in that copy.
"""

from .config import SyncConfig, default_cache_dir, load_config
from .exceptions import (
    ConfigurationError,
    FeedFetchError,
    NvdSyncError,
    SearchError,
    SyncError,
)
from .feeds import FeedResult, FetchContext
from .metafile import parse_meta_file
from .nvd import NVD
from .search import SearchResult

__version__ = "0.3.0"

__all__ = [
    "NVD",
    "ConfigurationError",
    "FeedFetchError",
    "FeedResult",
    "FetchContext",
    "NvdSyncError",
    "SearchError",
    "SearchResult",
    "SyncConfig",
    "SyncError",
    "default_cache_dir",
    "load_config",
    "parse_meta_file",
]
