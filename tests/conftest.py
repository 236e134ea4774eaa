"""Shared fixtures: fake aiohttp session, feed documents, configs."""

import asyncio
import gzip
import hashlib
import json
from pathlib import Path
from unittest.mock import MagicMock

import aiohttp
import pytest

from nvdsync.config import SyncConfig

# ── Feed documents ───────────────────────────────────────────────────────────


def build_feed(*cve_ids: str) -> bytes:
    """A minimal NVD JSON 1.1 feed containing the given CVE ids."""
    doc = {
        "CVE_data_type": "CVE",
        "CVE_data_format": "MITRE",
        "CVE_data_version": "4.0",
        "CVE_data_numberOfCVEs": str(len(cve_ids)),
        "CVE_Items": [
            {
                "cve": {
                    "data_type": "CVE",
                    "CVE_data_meta": {"ID": cve_id, "ASSIGNER": "cve@mitre.org"},
                    "description": {"description_data": [{"lang": "en", "value": f"Issue {cve_id}"}]},
                },
                "impact": {"baseMetricV3": {"cvssV3": {"baseScore": 7.5}}},
            }
            for cve_id in cve_ids
        ],
    }
    return json.dumps(doc).encode()


def build_meta(content: bytes, sha256: str | None = None) -> bytes:
    """A CRLF meta file describing ``content``."""
    digest = sha256 if sha256 is not None else hashlib.sha256(content).hexdigest().upper()
    gz = gzip.compress(content)
    return (
        "lastModifiedDate:2019-07-22T14:02:09-04:00\r\n"
        f"size:{len(content)}\r\n"
        f"zipSize:{len(gz)}\r\n"
        f"gzSize:{len(gz)}\r\n"
        f"sha256:{digest}\r\n"
    ).encode()


# ── Fake aiohttp session ─────────────────────────────────────────────────────


class FakeStream:
    def __init__(self, body: bytes):
        self.body = body

    async def iter_chunked(self, n: int):
        for i in range(0, len(self.body), 64):
            await asyncio.sleep(0)
            yield self.body[i : i + 64]


class FakeResponse:
    def __init__(self, url: str, status: int, body: bytes):
        self.url = url
        self.status = status
        self.body = body
        self.content = FakeStream(body)

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientResponseError(
                request_info=MagicMock(),
                history=(),
                status=self.status,
                message="Not Found",
            )

    async def read(self) -> bytes:
        await asyncio.sleep(0)
        return self.body


class FakeRequest:
    """Async context manager returned by ``FakeSession.get``."""

    def __init__(self, session: "FakeSession", url: str):
        self.session = session
        self.url = url

    async def __aenter__(self) -> FakeResponse:
        s = self.session
        s.requested.append(self.url)
        s.active += 1
        s.max_active = max(s.max_active, s.active)
        await asyncio.sleep(0)
        route = s.routes.get(self.url)
        if isinstance(route, BaseException):
            s.active -= 1
            raise route
        if route is None:
            return FakeResponse(self.url, 404, b"")
        return FakeResponse(self.url, 200, route)

    async def __aexit__(self, *args) -> None:
        self.session.active -= 1


class FakeSession:
    """Stands in for ``aiohttp.ClientSession``; serves bytes from ``routes``.

    Tracks how many requests are open at once in ``max_active``.
    """

    def __init__(self, routes: dict | None = None):
        self.routes: dict = dict(routes or {})
        self.requested: list[str] = []
        self.active = 0
        self.max_active = 0

    def get(self, url: str) -> FakeRequest:
        return FakeRequest(self, url)

    def serve(self, config: SyncConfig, feed: str, content: bytes, sha256: str | None = None) -> None:
        """Publish ``content`` as ``feed`` (meta file plus gzip archive)."""
        self.routes[config.meta_url(feed)] = build_meta(content, sha256)
        self.routes[config.archive_url(feed)] = gzip.compress(content)

    def archive_requests(self) -> list[str]:
        return [u for u in self.requested if u.endswith(".json.gz")]


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "nvd"


@pytest.fixture
def make_config(cache_dir: Path):
    def _make(**kwargs) -> SyncConfig:
        kwargs.setdefault("cache_dir", cache_dir)
        return SyncConfig(**kwargs)

    return _make


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def feed_doc():
    return build_feed


@pytest.fixture
def meta_doc():
    return build_meta


@pytest.fixture
def write_feed(cache_dir: Path):
    """Write a decompressed feed straight into the cache."""

    def _write(config: SyncConfig, feed: str, content: bytes) -> Path:
        path = config.feed_path(feed)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return _write
