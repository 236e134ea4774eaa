"""Configuration model using Pydantic.

``SyncConfig`` is built once per ``NVD`` instance and shared read-only by
every feed task and every search, so it is frozen after validation.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

NVD_FEED_ROOT_URL = "https://nvd.nist.gov/feeds/json/cve/"
TESTED_SCHEMA_VERSIONS = ("1.0", "1.1")

DEFAULT_FEEDS: tuple[str, ...] = (
    *(str(year) for year in range(2002, 2021)),
    "modified",
    "recent",
)


def default_cache_dir() -> Path:
    """Pick a cache directory following the XDG base directory spec.

    ``$NVDSYNC_CACHE_DIR`` wins when set.  Otherwise ``$XDG_CACHE_HOME/nvd``
    is used, falling back to ``~/.cache/nvd`` when ``XDG_CACHE_HOME`` is
    unset or empty.

    Returns:
        Path to the cache directory (not created).
    """
    override = os.environ.get("NVDSYNC_CACHE_DIR")
    if override:
        return Path(override)
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return Path(xdg) / "nvd"
    return Path.home() / ".cache" / "nvd"


def _normalize_feeds(v: Any) -> Any:
    """YAML reads ``- 2015`` as an int; feed names are always strings."""
    if isinstance(v, str):
        return tuple(part.strip() for part in v.split(",") if part.strip())
    if isinstance(v, (list, tuple)):
        return tuple(str(item) for item in v)
    return v


def _with_current_years(feeds: list[str], current_year: int) -> list[str]:
    """Insert every year after the last yearly feed up to ``current_year``."""
    year_positions = [i for i, f in enumerate(feeds) if len(f) == 4 and f.isdigit()]
    if not year_positions:
        return feeds
    last = year_positions[-1]
    extra = [str(y) for y in range(int(feeds[last]) + 1, current_year + 1) if str(y) not in feeds]
    return feeds[: last + 1] + extra + feeds[last + 1 :]


class SyncConfig(BaseModel):
    """Validated, immutable sync configuration.

    Attributes:
        feeds: Ordered feed names to mirror and search (years,
            ``modified``, ``recent``).
        root_path: URL prefix the feeds are published under.  Point this
            at a private mirror to sync from there instead.
        cache_dir: Directory the feed files are stored in.
        schema_version: NVD JSON schema version, used in both the remote
            URL and the local file names.
        fetch_limit: Maximum number of feeds fetched at the same time.
            Kept small by default; the NVD servers drop clients that open
            many parallel connections.
        persist_all: Also keep the downloaded ``.json.gz`` and ``.meta``
            files next to the decompressed JSON (useful for mirroring).
        include_current_yearly_feeds: Extend ``feeds`` with every year
            after the last yearly feed up to the current year.
        request_timeout: Total seconds allowed per HTTP request, or
            ``None`` for no limit.

    Example YAML::

        feeds: ["2021", "2022", "modified", "recent"]
        cache_dir: /var/cache/nvd
        fetch_limit: 2
        persist_all: true
    """

    model_config = ConfigDict(frozen=True)

    feeds: tuple[str, ...] = DEFAULT_FEEDS
    root_path: str = NVD_FEED_ROOT_URL
    cache_dir: Path = Field(default_factory=default_cache_dir)
    schema_version: str = "1.1"
    fetch_limit: int = Field(default=2, ge=1)
    persist_all: bool = False
    include_current_yearly_feeds: bool = False
    request_timeout: float | None = Field(default=300.0, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _expand_yearly_feeds(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not data.get("include_current_yearly_feeds"):
            return data
        feeds = _normalize_feeds(data.get("feeds", DEFAULT_FEEDS))
        if not isinstance(feeds, tuple):
            return data
        return {**data, "feeds": _with_current_years(list(feeds), dt.date.today().year)}

    @field_validator("feeds", mode="before")
    @classmethod
    def _feeds_as_strings(cls, v: Any) -> Any:
        return _normalize_feeds(v)

    @field_validator("schema_version")
    @classmethod
    def _warn_untested_schema(cls, v: str) -> str:
        if v not in TESTED_SCHEMA_VERSIONS:
            logger.warning('NIST feed schema version "%s" has not been tested', v)
        return v

    @property
    def feed_url_prefix(self) -> str:
        """URL prefix shared by every feed, e.g. ``.../cve/1.1/nvdcve-1.1``."""
        return f"{self.root_path}{self.schema_version}/nvdcve-{self.schema_version}"

    def meta_url(self, feed: str) -> str:
        return f"{self.feed_url_prefix}-{feed}.meta"

    def archive_url(self, feed: str) -> str:
        return f"{self.feed_url_prefix}-{feed}.json.gz"

    def feed_path(self, feed: str) -> Path:
        """Local path of the decompressed JSON for ``feed``."""
        return self.cache_dir / f"nvdcve-{self.schema_version}-{feed}.json"

    def archive_path(self, feed: str) -> Path:
        return self.cache_dir / f"nvdcve-{self.schema_version}-{feed}.json.gz"

    def meta_path(self, feed: str) -> Path:
        return self.cache_dir / f"nvdcve-{self.schema_version}-{feed}.meta"


def load_config(path: Path, **overrides: Any) -> SyncConfig:
    """Load a ``SyncConfig`` from a YAML or JSON file.

    Args:
        path: Path to the config file.
        **overrides: Values that take precedence over the file (``None``
            values are ignored so CLI flags can be passed straight through).

    Returns:
        Validated ``SyncConfig`` instance.

    Raises:
        ConfigurationError: if the file can't be read, parsed, or validated.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"cannot read config {path}: {e}") from e

    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            raw = yaml.safe_load(content) or {}
        elif suffix == ".json":
            raw = json.loads(content)
        else:
            try:
                raw = yaml.safe_load(content) or {}
            except yaml.YAMLError:
                raw = json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"cannot parse config {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"config {path} must be a mapping, got {type(raw).__name__}")

    raw.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return SyncConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"invalid config {path}: {e}") from e
