"""npm registry client: package metadata and deduplicated tarball downloads."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
import urllib.parse
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp

from fastcache.common.fs import fs_safe_name
from fastcache.common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from fastcache.constants import Constants
from fastcache.errors import DownloadError, RegistryError
from fastcache.versioning.selector import max_version

from .inflight import InFlightRegistry
from .tarball import extract_tarball

logger = logging.getLogger(__name__)


class RegistryClient:
    """Async client for an npm-compatible registry.

    Metadata is cached by name for the client's lifetime. Concurrent fetches
    of the same metadata, and concurrent downloads of the same
    ``name@version`` into the same destination, share one execution.
    """

    def __init__(
        self,
        registry_url: Optional[str] = None,
        timeout: int = Constants.REQUEST_TIMEOUT,
        inflight: Optional[InFlightRegistry] = None,
    ):
        """Initialize the registry client.

        Args:
            registry_url: Registry base URL.
            timeout: Request timeout in seconds.
            inflight: In-flight registry to coalesce requests through; a
                private one is created when omitted.
        """
        self.registry_url = (registry_url or Constants.REGISTRY_URL_NPM).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None
        self._metadata_cache: Dict[str, Dict[str, Any]] = {}
        self.inflight = inflight or InFlightRegistry()

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": Constants.USER_AGENT},
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def package_url(self, name: str) -> str:
        """Packument URL; scoped names keep '@' and encode '/'."""
        return f"{self.registry_url}/{urllib.parse.quote(name, safe='@')}"

    async def get_package_metadata(self, name: str) -> Dict[str, Any]:
        """Return the packument for ``name``.

        Raises:
            RegistryError: The registry answered with an error or invalid JSON.
        """
        cached = self._metadata_cache.get(name)
        if cached is not None:
            return cached
        return await self.inflight.run(f"metadata:{name}", lambda: self._load_metadata(name))

    async def _load_metadata(self, name: str) -> Dict[str, Any]:
        cached = self._metadata_cache.get(name)
        if cached is not None:
            return cached
        metadata = await self._fetch_json(self.package_url(name))
        if not isinstance(metadata, dict) or not isinstance(metadata.get("versions"), dict):
            raise RegistryError(f"Malformed metadata for {name}")
        self._metadata_cache[name] = metadata
        return metadata

    async def get_latest_version(self, name: str) -> str:
        """Return ``dist-tags.latest``, falling back to the highest version."""
        metadata = await self.get_package_metadata(name)
        latest = (metadata.get("dist-tags") or {}).get("latest")
        if latest:
            return latest
        version = max_version(metadata.get("versions", {}).keys())
        if version is None:
            raise RegistryError(f"No versions published for {name}")
        return version

    @staticmethod
    def download_key(name: str, version: str, target_path: os.PathLike) -> str:
        return f"{name}@{version}:{os.fspath(target_path)}"

    async def download_package(self, name: str, version: str, target_path: os.PathLike) -> Path:
        """Download and extract ``name@version`` into ``target_path``.

        Concurrent calls with the same name, version and target share a
        single download; every caller receives its result or its error.

        Raises:
            RegistryError: Metadata could not be fetched.
            DownloadError: The version, tarball or extraction failed.
        """
        key = self.download_key(name, version, target_path)
        return await self.inflight.run(
            key, lambda: self._download(name, version, Path(target_path))
        )

    async def _download(self, name: str, version: str, target: Path) -> Path:
        metadata = await self.get_package_metadata(name)
        version_data = metadata.get("versions", {}).get(version)
        if not version_data:
            raise DownloadError(f"Version {version} not found for {name}")
        tarball_url = (version_data.get("dist") or {}).get("tarball")
        if not tarball_url:
            raise DownloadError(f"No tarball published for {name}@{version}")

        target.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(
            prefix=f".{fs_safe_name(name)}-{version}-", dir=target.parent,
        ))
        try:
            archive = staging / "package.tgz"
            with Timer() as timer:
                logger.info("  Downloading %s", safe_url(tarball_url))
                await self._fetch_to_file(tarball_url, archive)
                extraction = asyncio.ensure_future(
                    asyncio.to_thread(extract_tarball, str(archive), str(target), 1)
                )
                try:
                    await asyncio.shield(extraction)
                except asyncio.CancelledError:
                    # The worker thread cannot be interrupted; let it finish before cleanup.
                    await asyncio.wait([extraction])
                    raise
            if is_debug_enabled(logger):
                logger.debug(
                    "Package extracted",
                    extra=extra_context(
                        event="download",
                        component="registry_client",
                        package=f"{name}@{version}",
                        target=str(target),
                        duration_ms=timer.duration_ms(),
                    ),
                )
            return target
        except BaseException as exc:
            # Covers cancellation too: no half-extracted target survives.
            shutil.rmtree(target, ignore_errors=True)
            if isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError, OSError)):
                raise DownloadError(f"Failed to download {name}@{version}: {exc}") from exc
            raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    async def _fetch_json(self, url: str) -> Any:
        """GET ``url`` and decode the JSON body."""
        await self.start()
        assert self._session is not None
        target = safe_url(url)
        with Timer() as timer:
            try:
                async with self._session.get(
                    url, headers={"Accept": Constants.NPM_METADATA_ACCEPT}
                ) as response:
                    if response.status != 200:
                        raise RegistryError(
                            f"Failed to fetch {target}: HTTP {response.status} {response.reason or ''}".rstrip()
                        )
                    body = await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise RegistryError(f"Error fetching {target}: {exc}") from exc
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    component="registry_client",
                    action="GET",
                    target=target,
                    duration_ms=timer.duration_ms(),
                ),
            )
        try:
            return json.loads(body)
        except ValueError as exc:
            raise RegistryError(f"Invalid JSON from {target}: {exc}") from exc

    async def _fetch_to_file(self, url: str, dest: Path) -> None:
        """Stream ``url`` into ``dest``."""
        await self.start()
        assert self._session is not None
        async with self._session.get(url) as response:
            if response.status != 200:
                raise DownloadError(
                    f"Download failed: HTTP {response.status} for {safe_url(url)}"
                )
            with open(dest, "wb") as fh:
                async for chunk in response.content.iter_chunked(Constants.DOWNLOAD_CHUNK_SIZE):
                    fh.write(chunk)

    async def __aenter__(self) -> "RegistryClient":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()
