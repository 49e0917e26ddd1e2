"""Tests for the identity-addressed package store."""

import json
import re
import shutil
from datetime import datetime, timedelta, timezone

import pytest

from fastcache.errors import StoreError
from fastcache.store import PackageStore
from fastcache.store.models import parse_iso

ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def _iso_days_ago(days):
    stamp = datetime.now(timezone.utc) - timedelta(days=days)
    return stamp.strftime("%Y-%m-%dT%H:%M:%S.000Z")


@pytest.fixture
def store(tmp_path):
    s = PackageStore(tmp_path / "cache")
    s.init()
    return s


@pytest.fixture
def source(tmp_path):
    src = tmp_path / "src-pkg"
    (src / "lib").mkdir(parents=True)
    (src / "package.json").write_text('{"name": "demo"}')
    (src / "lib" / "index.js").write_text("module.exports = 1;\n")
    return src


class TestLayout:
    """Paths derived from (name, version)."""

    def test_init_creates_directories(self, store):
        for directory in (store.store_dir, store.metadata_dir, store.analytics_dir, store.temp_dir):
            assert directory.is_dir()

    def test_package_path_is_deterministic(self, store):
        first = store.package_path("lodash", "4.17.21")
        assert first == store.package_path("lodash", "4.17.21")
        assert first.parent == store.store_dir
        assert re.fullmatch(r"lodash@4\.17\.21-[0-9a-f]{16}", first.name)

    def test_distinct_identities_distinct_slots(self, store):
        assert store.package_path("a", "1.0.0") != store.package_path("a", "1.0.1")

    def test_scoped_name_is_one_component(self, store):
        path = store.package_path("@types/node", "20.1.0")
        assert path.parent == store.store_dir
        assert path.name.startswith("@types+node@20.1.0-")
        assert store.metadata_path("@types/node", "20.1.0").name == "@types+node@20.1.0.json"


class TestStorePackage:
    """Populating slots."""

    def test_copies_and_records_metadata(self, store, source):
        slot = store.store_package("demo", "1.0.0", source)

        assert slot == store.package_path("demo", "1.0.0")
        assert (slot / "lib" / "index.js").read_text() == "module.exports = 1;\n"
        assert store.has_package("demo", "1.0.0")

        meta = store.read_metadata("demo", "1.0.0")
        assert ISO_RE.match(meta["installedAt"])
        assert meta["lastUsed"] == meta["installedAt"]
        assert meta["size"] == len('{"name": "demo"}') + len("module.exports = 1;\n")

    def test_existing_slot_not_overwritten(self, store, source):
        slot = store.store_package("demo", "1.0.0", source)
        (source / "package.json").write_text("changed")

        again = store.store_package("demo", "1.0.0", source)

        assert again == slot
        assert (slot / "package.json").read_text() == '{"name": "demo"}'

    def test_missing_source(self, store, tmp_path):
        with pytest.raises(StoreError):
            store.store_package("demo", "1.0.0", tmp_path / "nope")
        assert not store.has_package("demo", "1.0.0")

    def test_no_staging_left_behind(self, store, source):
        store.store_package("demo", "1.0.0", source)
        assert list(store.temp_dir.iterdir()) == []

    def test_has_package_false_for_unknown(self, store):
        assert store.has_package("nope", "1.0.0") is False


class TestMetadata:
    """Metadata records."""

    def test_update_merges(self, store):
        store.update_metadata("demo", "1.0.0", {"installedAt": "x", "size": 3})
        merged = store.update_metadata("demo", "1.0.0", {"size": 5})
        assert merged == {"installedAt": "x", "size": 5}
        assert store.read_metadata("demo", "1.0.0") == merged

    def test_touch_updates_last_used(self, store):
        store.update_metadata("demo", "1.0.0", {"lastUsed": _iso_days_ago(10)})
        store.touch_package("demo", "1.0.0")
        last_used = parse_iso(store.read_metadata("demo", "1.0.0")["lastUsed"])
        assert datetime.now(timezone.utc) - last_used < timedelta(minutes=1)

    def test_corrupt_metadata_reads_as_none(self, store):
        store.metadata_path("demo", "1.0.0").write_text("{not json")
        assert store.read_metadata("demo", "1.0.0") is None

    def test_missing_metadata(self, store):
        assert store.read_metadata("demo", "1.0.0") is None


class TestQueries:
    """Stats, listings and unused detection."""

    def test_stats_and_listing(self, store, source):
        store.store_package("demo", "1.0.0", source)
        store.store_package("demo", "2.0.0", source)
        (store.store_dir / ".staging-junk").mkdir()

        stats = store.get_stats()
        assert stats.package_count == 2
        assert stats.total_size > 0
        assert stats.total_size_formatted.endswith(" B")
        assert stats.cache_dir == str(store.cache_dir)

        listed = store.list_packages()
        assert [p.slot for p in listed] == sorted(p.slot for p in listed)
        assert all(p.size > 0 for p in listed)

    def test_empty_store(self, tmp_path):
        stats = PackageStore(tmp_path / "absent").get_stats()
        assert stats.package_count == 0
        assert stats.total_size_formatted == "0.00 B"

    def test_find_unused(self, store):
        store.update_metadata("old", "1.0.0", {"lastUsed": _iso_days_ago(40), "size": 10})
        store.update_metadata("@scope/old", "2.0.0", {"lastUsed": _iso_days_ago(31)})
        store.update_metadata("fresh", "1.0.0", {"lastUsed": _iso_days_ago(1)})
        store.update_metadata("undated", "1.0.0", {"size": 1})
        store.metadata_path("broken", "1.0.0").write_text("nope")

        unused = store.find_unused(30)

        assert sorted(p.spec for p in unused) == ["@scope/old@2.0.0", "old@1.0.0"]
        old = next(p for p in unused if p.name == "old")
        assert old.size == 10

    def test_find_unused_respects_days(self, store):
        store.update_metadata("old", "1.0.0", {"lastUsed": _iso_days_ago(40)})
        assert store.find_unused(60) == []


class TestDelete:
    """Removing slots and metadata."""

    def test_delete_removes_both(self, store, source):
        store.store_package("demo", "1.0.0", source)
        result = store.delete_package("demo", "1.0.0")

        assert result.ok and not result.partial
        assert not store.has_package("demo", "1.0.0")
        assert store.read_metadata("demo", "1.0.0") is None

    def test_delete_absent_is_ok(self, store):
        assert store.delete_package("ghost", "1.0.0").ok

    def test_partial_delete_reported(self, store, source, monkeypatch):
        store.store_package("demo", "1.0.0", source)

        def _fail(*_args, **_kwargs):
            raise OSError("busy")

        monkeypatch.setattr(shutil, "rmtree", _fail)
        result = store.delete_package("demo", "1.0.0")
        monkeypatch.undo()

        assert result.slot_removed is False
        assert result.metadata_removed is True
        assert result.partial
        assert not result
        assert store.has_package("demo", "1.0.0")


def test_metadata_file_is_pretty_json(store):
    store.update_metadata("demo", "1.0.0", {"size": 1})
    text = store.metadata_path("demo", "1.0.0").read_text()
    assert json.loads(text) == {"size": 1}
    assert "\n" in text
