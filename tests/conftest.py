"""Shared fixtures: an offline registry client and tarball builder."""

import asyncio
import io
import shutil
import tarfile
import urllib.parse
from pathlib import Path

import pytest

from fastcache.errors import RegistryError
from fastcache.registry.client import RegistryClient

REGISTRY = "https://registry.example.com"


def build_tarball(path: Path, files: dict, prefix: str = "package") -> Path:
    """Write a gzipped tarball wrapping ``files`` in ``prefix/``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(f"{prefix}/{name}" if prefix else name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


class OfflineRegistryClient(RegistryClient):
    """RegistryClient with network seams replaced by in-memory data."""

    def __init__(self, packuments, tarballs, delay: float = 0.01):
        super().__init__(REGISTRY)
        self.packuments = packuments
        self.tarballs = tarballs
        self.delay = delay
        self.json_calls = []
        self.file_calls = []
        self.fail_downloads = 0

    async def _fetch_json(self, url):
        self.json_calls.append(url)
        await asyncio.sleep(self.delay)
        name = urllib.parse.unquote(url[len(REGISTRY) + 1:])
        if name not in self.packuments:
            raise RegistryError(f"Failed to fetch {url}: HTTP 404 Not Found")
        return self.packuments[name]

    async def _fetch_to_file(self, url, dest):
        self.file_calls.append(url)
        if self.fail_downloads:
            self.fail_downloads -= 1
            raise OSError("connection reset")
        await asyncio.sleep(self.delay)
        shutil.copyfile(self.tarballs[url], dest)


@pytest.fixture
def registry_factory(tmp_path):
    """Build an offline client from ``{name: {version: dependencies}}``.

    Every version gets a tarball containing ``package.json`` and
    ``index.js``. Extra dist-tags can be passed as ``{name: {tag: version}}``.
    """

    def _make(packages, dist_tags=None, delay=0.01):
        packuments = {}
        tarballs = {}
        for name, versions in packages.items():
            entries = {}
            for version, deps in versions.items():
                basename = name.split("/")[-1]
                url = f"{REGISTRY}/{name}/-/{basename}-{version}.tgz"
                archive = tmp_path / "tarballs" / f"{name.replace('/', '+')}-{version}.tgz"
                build_tarball(archive, {
                    "package.json": f'{{"name": "{name}", "version": "{version}"}}',
                    "index.js": f"module.exports = '{name}@{version}';\n",
                })
                tarballs[url] = archive
                entries[version] = {
                    "name": name,
                    "version": version,
                    "dependencies": dict(deps),
                    "dist": {"tarball": url},
                }
            tags = dict((dist_tags or {}).get(name, {}))
            packuments[name] = {"name": name, "dist-tags": tags, "versions": entries}
        return OfflineRegistryClient(packuments, tarballs, delay=delay)

    return _make


@pytest.fixture
def make_tarball():
    """Expose :func:`build_tarball` to tests."""
    return build_tarball
