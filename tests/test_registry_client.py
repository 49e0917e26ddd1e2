"""Tests for the registry client with network seams replaced."""

import asyncio

import pytest

aiohttp_mod = pytest.importorskip("aiohttp")

from fastcache.errors import DownloadError, RegistryError
from fastcache.registry.client import RegistryClient


class TestUrls:
    """URL building."""

    def test_plain_name(self):
        client = RegistryClient("https://registry.example.com/")
        assert client.package_url("lodash") == "https://registry.example.com/lodash"

    def test_scoped_name_keeps_at(self):
        client = RegistryClient("https://registry.example.com")
        assert client.package_url("@types/node") == "https://registry.example.com/@types%2Fnode"

    def test_default_registry(self):
        assert RegistryClient().registry_url == "https://registry.npmjs.org"


class TestMetadata:
    """Packument fetching and caching."""

    def test_concurrent_fetches_coalesce(self, registry_factory):
        client = registry_factory({"a": {"1.0.0": {}}})

        async def scenario():
            results = await asyncio.gather(*(client.get_package_metadata("a") for _ in range(5)))
            again = await client.get_package_metadata("a")
            return results, again

        results, again = asyncio.run(scenario())
        assert len(client.json_calls) == 1
        assert all(r is results[0] for r in results)
        assert again is results[0]

    def test_scoped_metadata(self, registry_factory):
        client = registry_factory({"@scope/pkg": {"1.0.0": {}}})
        metadata = asyncio.run(client.get_package_metadata("@scope/pkg"))
        assert "1.0.0" in metadata["versions"]

    def test_not_found(self, registry_factory):
        client = registry_factory({})
        with pytest.raises(RegistryError):
            asyncio.run(client.get_package_metadata("missing"))

    def test_malformed_metadata(self, registry_factory):
        client = registry_factory({})
        client.packuments["broken"] = {"name": "broken"}
        with pytest.raises(RegistryError):
            asyncio.run(client.get_package_metadata("broken"))

    def test_failed_fetch_not_cached(self, registry_factory):
        client = registry_factory({})
        with pytest.raises(RegistryError):
            asyncio.run(client.get_package_metadata("late"))
        client.packuments["late"] = {"versions": {"1.0.0": {}}}
        assert asyncio.run(client.get_package_metadata("late"))["versions"]

    def test_latest_from_dist_tag(self, registry_factory):
        client = registry_factory(
            {"a": {"1.0.0": {}, "2.0.0": {}}}, dist_tags={"a": {"latest": "1.0.0"}}
        )
        assert asyncio.run(client.get_latest_version("a")) == "1.0.0"

    def test_latest_falls_back_to_highest(self, registry_factory):
        client = registry_factory({"a": {"1.0.0": {}, "2.0.0": {}, "3.0.0-rc.1": {}}})
        assert asyncio.run(client.get_latest_version("a")) == "2.0.0"


class TestDownload:
    """Tarball download, extraction and deduplication."""

    def test_download_extracts(self, registry_factory, tmp_path):
        client = registry_factory({"a": {"1.0.0": {}}})
        target = tmp_path / "temp" / "a@1.0.0"

        result = asyncio.run(client.download_package("a", "1.0.0", target))

        assert result == target
        assert (target / "package.json").exists()
        assert (target / "index.js").read_text() == "module.exports = 'a@1.0.0';\n"
        assert [p.name for p in target.parent.iterdir()] == ["a@1.0.0"]

    def test_concurrent_downloads_share_one_fetch(self, registry_factory, tmp_path):
        client = registry_factory({"a": {"1.0.0": {}}})
        target = tmp_path / "temp" / "a@1.0.0"

        async def scenario():
            return await asyncio.gather(
                *(client.download_package("a", "1.0.0", target) for _ in range(4))
            )

        results = asyncio.run(scenario())
        assert results == [target] * 4
        assert len(client.file_calls) == 1
        assert len(client.inflight) == 0

    def test_different_targets_download_separately(self, registry_factory, tmp_path):
        client = registry_factory({"a": {"1.0.0": {}}})

        async def scenario():
            await asyncio.gather(
                client.download_package("a", "1.0.0", tmp_path / "one"),
                client.download_package("a", "1.0.0", tmp_path / "two"),
            )

        asyncio.run(scenario())
        assert len(client.file_calls) == 2
        assert (tmp_path / "one" / "index.js").exists()
        assert (tmp_path / "two" / "index.js").exists()

    def test_failure_cleans_up_and_can_retry(self, registry_factory, tmp_path):
        client = registry_factory({"a": {"1.0.0": {}}})
        client.fail_downloads = 1
        target = tmp_path / "temp" / "a@1.0.0"

        with pytest.raises(DownloadError):
            asyncio.run(client.download_package("a", "1.0.0", target))
        assert not target.exists()
        assert list(target.parent.iterdir()) == []

        asyncio.run(client.download_package("a", "1.0.0", target))
        assert (target / "package.json").exists()
        assert len(client.file_calls) == 2

    def test_unknown_version(self, registry_factory, tmp_path):
        client = registry_factory({"a": {"1.0.0": {}}})
        with pytest.raises(DownloadError):
            asyncio.run(client.download_package("a", "9.9.9", tmp_path / "x"))
        assert client.file_calls == []

    def test_missing_tarball_url(self, registry_factory, tmp_path):
        client = registry_factory({"a": {"1.0.0": {}}})
        del client.packuments["a"]["versions"]["1.0.0"]["dist"]
        with pytest.raises(DownloadError):
            asyncio.run(client.download_package("a", "1.0.0", tmp_path / "x"))

    def test_download_key(self, tmp_path):
        key = RegistryClient.download_key("a", "1.0.0", tmp_path / "x")
        assert key == f"a@1.0.0:{tmp_path / 'x'}"


def test_stop_without_start_is_noop():
    client = RegistryClient()
    asyncio.run(client.stop())
