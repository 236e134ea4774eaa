"""Command-line interface: ``nvdsync sync`` and ``nvdsync search``."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Sequence

from .config import SyncConfig, load_config
from .exceptions import ConfigurationError, SearchError, SyncError
from .feeds import FeedResult
from .nvd import NVD

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 2


def _split_feeds(value: str) -> list[str]:
    return [f.strip() for f in value.split(",") if f.strip()]


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="nvdsync", description="Mirror and search the NVD JSON feeds")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=None, help="YAML or JSON config file")
    p.add_argument("--cache-dir", type=Path, default=None, help="Directory the feeds are cached in")
    p.add_argument("--feeds", type=_split_feeds, default=None, help="Comma-separated feed names")
    p.add_argument("--fetch-limit", type=int, default=None, help="Feeds fetched in parallel")
    p.add_argument(
        "--persist-all",
        action="store_true",
        default=None,
        help="Also keep the .json.gz and .meta files",
    )

    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("sync", help="Download feeds whose checksum changed")
    search = sub.add_parser("search", help="Look up a CVE in the cached feeds")
    search.add_argument("cve_id", help="Identifier, e.g. CVE-2019-0001")
    search.add_argument("--json", action="store_true", help="Print the whole record as JSON")
    return p


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "cache_dir": args.cache_dir,
        "feeds": args.feeds,
        "fetch_limit": args.fetch_limit,
        "persist_all": args.persist_all,
    }


def _load(args: argparse.Namespace) -> SyncConfig:
    overrides = _overrides(args)
    if args.config is not None:
        return load_config(args.config, **overrides)
    return SyncConfig(**{k: v for k, v in overrides.items() if v is not None})


def _print_results(results: list[FeedResult]) -> None:
    for r in results:
        state = "downloaded" if r.fetch_remote else "up to date"
        print(f"  {r.feed}: {state}")


def _run_sync(nvd: NVD) -> int:
    total = len(nvd.config.feeds)
    done = 0

    def progress() -> None:
        nonlocal done
        done += 1
        print(f"  [{done}/{total}] feeds synced")

    print(f"Syncing {total} feeds into {nvd.config.cache_dir}...")
    try:
        results = nvd.sync(progress=progress)
    except SyncError as e:
        print(f"❌ Sync failed: {e.failure}")
        if e.results:
            print(f"Completed before the failure ({len(e.results)}):")
            _print_results(e.results)
        return EXIT_ERROR

    _print_results(results)
    fetched = sum(1 for r in results if r.fetch_remote)
    print(f"✅ {len(results)} feeds synced, {fetched} downloaded")
    return EXIT_OK


def _describe(item: dict[str, Any]) -> str:
    descriptions = ((item.get("cve") or {}).get("description") or {}).get("description_data") or []
    for d in descriptions:
        if d.get("lang") == "en" and d.get("value"):
            return d["value"]
    return ""


def _run_search(nvd: NVD, cve_id: str, as_json: bool) -> int:
    try:
        result = nvd.search(cve_id)
    except SearchError as e:
        print(f"❌ {e}")
        return EXIT_ERROR

    if not result.found:
        print(f"{cve_id} not found in {len(result.searched)} feeds")
        return EXIT_NOT_FOUND

    if as_json:
        print(json.dumps(result.data, indent=2))
    else:
        print(f"{cve_id} (feed {result.feed})")
        summary = _describe(result.data)
        if summary:
            print(f"  {summary}")
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _load(args)
    except (ConfigurationError, ValueError) as e:
        print(f"❌ {e}")
        return EXIT_ERROR

    nvd = NVD(config)
    if args.command == "sync":
        return _run_sync(nvd)
    return _run_search(nvd, args.cve_id, args.json)


if __name__ == "__main__":
    raise SystemExit(main())
