"""Unit tests for nvdsync.search — identifier lookup across cached feeds."""

import asyncio
from unittest.mock import patch

import pytest

from nvdsync import NVD
from nvdsync import search as search_mod
from nvdsync.exceptions import SearchError
from nvdsync.search import record_id, search_feeds, search_order, year_hint

# ── search_order ─────────────────────────────────────────────────────────────


class TestYearHint:
    def test_cve_id(self):
        assert year_hint("CVE-2015-1234") == "2015"

    def test_no_hyphen(self):
        assert year_hint("CVE20151234") is None

    def test_empty_second_part(self):
        assert year_hint("CVE--1234") is None

    def test_not_validated(self):
        assert year_hint("GHSA-abcd-efgh") == "abcd"


class TestSearchOrder:
    def test_hinted_year_first(self):
        order = list(search_order("CVE-2015-1234", ["2014", "2015", "2016", "modified"]))
        assert order == ["2015", "modified", "2016", "2014"]

    def test_hint_not_configured(self):
        order = list(search_order("CVE-2099-0001", ["2014", "2015", "modified"]))
        assert order == ["modified", "2015", "2014"]

    def test_hint_last_in_list(self):
        order = list(search_order("CVE-2016-0001", ["2015", "2016"]))
        assert order == ["2016", "2015"]

    def test_no_hint(self):
        assert list(search_order("nothing", ["a", "b", "c"])) == ["c", "b", "a"]

    def test_empty_feeds(self):
        assert list(search_order("CVE-2015-1234", [])) == []

    def test_does_not_mutate_input(self):
        feeds = ["2014", "2015"]
        list(search_order("CVE-2015-1", feeds))
        assert feeds == ["2014", "2015"]


class TestRecordId:
    def test_nested_id(self):
        assert record_id({"cve": {"CVE_data_meta": {"ID": "CVE-2019-0001"}}}) == "CVE-2019-0001"

    def test_missing_path(self):
        assert record_id({"cve": {}}) is None
        assert record_id({}) is None


# ── search_feeds ─────────────────────────────────────────────────────────────


@pytest.fixture
def cached(make_config, write_feed, feed_doc):
    """Feeds 2015, 2016 and modified written to the cache."""
    config = make_config(feeds=["2015", "2016", "modified"])
    write_feed(config, "2015", feed_doc("CVE-2015-0001", "CVE-2015-0002"))
    write_feed(config, "2016", feed_doc("CVE-2016-0001", "CVE-2016-0002", "CVE-2016-0003"))
    write_feed(config, "modified", feed_doc("CVE-2017-0042", "CVE-2015-0002"))
    return config


def _tracking(opened: list, consumed: list):
    """Wrap iter_feed_items to record which files were opened and read."""
    real = search_mod.iter_feed_items

    def wrapper(path):
        opened.append(path.name)
        for item in real(path):
            consumed.append(record_id(item))
            yield item

    return wrapper


class TestSearchFeeds:
    def test_found_in_hinted_year(self, cached):
        result = search_feeds(cached, "CVE-2016-0002")
        assert result.found
        assert result.feed == "2016"
        assert result.data["cve"]["CVE_data_meta"]["ID"] == "CVE-2016-0002"
        assert result.searched == ["2016"]

    def test_hinted_year_scanned_first_and_others_skipped(self, cached):
        opened: list = []
        consumed: list = []
        with patch("nvdsync.search.iter_feed_items", _tracking(opened, consumed)):
            result = search_feeds(cached, "CVE-2016-0001")
        assert result.found
        assert opened == ["nvdcve-1.1-2016.json"]

    def test_stops_reading_after_match(self, cached):
        opened: list = []
        consumed: list = []
        with patch("nvdsync.search.iter_feed_items", _tracking(opened, consumed)):
            search_feeds(cached, "CVE-2016-0002")
        assert consumed == ["CVE-2016-0001", "CVE-2016-0002"]

    def test_falls_back_to_other_feeds(self, cached):
        result = search_feeds(cached, "CVE-2017-0042")
        assert result.feed == "modified"
        assert result.searched == ["modified"]

    def test_unconfigured_hint_scans_in_reverse(self, cached):
        opened: list = []
        with patch("nvdsync.search.iter_feed_items", _tracking(opened, [])):
            result = search_feeds(cached, "CVE-2014-0001")
        assert not result.found
        assert opened == ["nvdcve-1.1-modified.json", "nvdcve-1.1-2016.json", "nvdcve-1.1-2015.json"]

    def test_duplicate_returns_hinted_copy(self, cached):
        result = search_feeds(cached, "CVE-2015-0002")
        assert result.feed == "2015"

    def test_exhausted_without_match(self, cached):
        result = search_feeds(cached, "CVE-2099-9999")
        assert not result.found
        assert result.data is None
        assert result.feed is None
        assert sorted(result.searched) == ["2015", "2016", "modified"]

    def test_missing_feed_is_fatal(self, cached):
        cached.feed_path("2016").unlink()
        with pytest.raises(SearchError) as exc_info:
            search_feeds(cached, "CVE-2016-0001")
        assert exc_info.value.feed == "2016"
        assert isinstance(exc_info.value.cause, FileNotFoundError)

    def test_parse_error_does_not_skip_to_next_feed(self, cached):
        cached.feed_path("modified").write_bytes(b'{"CVE_Items": [{"cve": ')
        opened: list = []
        with patch("nvdsync.search.iter_feed_items", _tracking(opened, [])):
            with pytest.raises(SearchError) as exc_info:
                search_feeds(cached, "CVE-2099-0001")
        assert exc_info.value.feed == "modified"
        assert opened == ["nvdcve-1.1-modified.json"]

    def test_empty_feed_list(self, make_config):
        result = search_feeds(make_config(feeds=[]), "CVE-2016-0001")
        assert not result.found
        assert result.searched == []

    def test_feed_without_items(self, make_config, write_feed):
        config = make_config(feeds=["recent"])
        write_feed(config, "recent", b'{"CVE_data_type": "CVE", "CVE_Items": []}')
        assert not search_feeds(config, "CVE-2016-0001").found


class TestNvdSearch:
    def test_search(self, cached):
        assert NVD(cached).search("CVE-2015-0001").feed == "2015"

    def test_search_async(self, cached):
        result = asyncio.run(NVD(cached).search_async("CVE-2016-0003"))
        assert result.feed == "2016"
