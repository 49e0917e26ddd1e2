"""Install orchestration: manifest -> resolver -> store/registry/linker -> analytics."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from fastcache.analytics import Analytics, AnalyticsReport
from fastcache.common.fs import fs_safe_name
from fastcache.common.logging_utils import Timer
from fastcache.constants import Constants
from fastcache.errors import ResolutionError, StoreError
from fastcache.linker import LinkManager, LinkResult
from fastcache.manifest import add_dependencies, read_manifest
from fastcache.registry.client import RegistryClient
from fastcache.registry.inflight import InFlightRegistry
from fastcache.resolver import DependencyResolver
from fastcache.store.models import DeleteResult, StoreStats, StoredPackage, UnusedPackage, parse_iso
from fastcache.store.package_store import PackageStore
from fastcache.versioning.parser import manifest_range_for, parse_package_token

logger = logging.getLogger(__name__)


@dataclass
class InstalledPackage:
    """Outcome of materializing one resolved package in a project."""
    name: str
    version: str
    cache_hit: bool
    link_type: str
    target_path: Path
    duration_ms: int
    size: int = 0


@dataclass
class InstallSummary:
    packages: List[InstalledPackage] = field(default_factory=list)

    @property
    def installed(self) -> int:
        return len(self.packages)

    @property
    def from_cache(self) -> int:
        return sum(1 for p in self.packages if p.cache_hit)


@dataclass
class CleanReport:
    """Packages selected for eviction and what happened to each."""
    candidates: List[UnusedPackage]
    dry_run: bool
    results: Dict[str, DeleteResult] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def total_size(self) -> int:
        return sum(p.size for p in self.candidates)

    @property
    def deleted(self) -> List[str]:
        return [spec for spec, result in self.results.items() if result.ok]

    @property
    def partial(self) -> List[str]:
        return [spec for spec, result in self.results.items() if not result.ok]


class FastCache:
    """Install packages from a shared store into projects."""

    def __init__(
        self,
        cache_dir: Optional[os.PathLike] = None,
        registry_url: Optional[str] = None,
        concurrency: Optional[int] = None,
        *,
        store: Optional[PackageStore] = None,
        registry: Optional[RegistryClient] = None,
        linker: Optional[LinkManager] = None,
        analytics: Optional[Analytics] = None,
    ):
        self.store = store or PackageStore(cache_dir)
        self.registry = registry or RegistryClient(registry_url)
        self.linker = linker or LinkManager()
        self.analytics = analytics or Analytics(self.store.analytics_dir)
        self.concurrency = max(1, concurrency or Constants.INSTALL_CONCURRENCY)
        self._materializing = InFlightRegistry()

    async def init(self) -> None:
        """Create the cache layout."""
        await asyncio.to_thread(self.store.init)

    async def close(self) -> None:
        """Stop shared work still in flight, then close the registry session."""
        # Downloads first: their cancellation also stops the materializations awaiting them.
        await self.registry.inflight.drain()
        await self._materializing.drain()
        await self.registry.stop()

    async def __aenter__(self) -> "FastCache":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # Install

    async def install(self, project_dir: Optional[os.PathLike] = None) -> InstallSummary:
        """Install every dependency and devDependency of a project.

        Raises:
            ManifestError: package.json is missing or malformed.
            ResolutionError: A dependency could not be resolved.
            RegistryError, DownloadError: Fetching a package failed.
        """
        project = Path(project_dir or os.getcwd())
        manifest = await asyncio.to_thread(read_manifest, project)
        dependencies = manifest.all_dependencies()
        if not dependencies:
            logger.info("No dependencies to install.")
            return InstallSummary()

        # Fresh memo per install; metadata stays cached on the shared client.
        resolver = DependencyResolver(self.registry)
        tree = await resolver.resolve(dependencies)

        logger.info("Installing %d packages...", len(tree))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(name: str, version: str) -> InstalledPackage:
            async with semaphore:
                return await self.install_package(name, version, project)

        try:
            async with asyncio.TaskGroup() as group:
                tasks = [
                    group.create_task(_bounded(name, entry.version))
                    for name, entry in tree.items()
                ]
        except BaseExceptionGroup as failures:
            # Siblings are already cancelled; surface the first real failure.
            raise failures.exceptions[0] from None
        summary = InstallSummary(packages=[task.result() for task in tasks])
        logger.info(
            "Installation complete: %d packages (%d from cache)",
            summary.installed, summary.from_cache,
        )
        return summary

    async def install_package(self, name: str, version: str, project: Path) -> InstalledPackage:
        """Link one resolved package into ``project``, fetching it into the store if needed."""
        with Timer() as timer:
            link = await asyncio.to_thread(self._link_from_store, name, version, project)
            cache_hit = link is not None
            if cache_hit:
                logger.info("  = %s@%s (cached)", name, version)
            else:
                logger.info("  v %s@%s (downloading)", name, version)
                await self._materialize(name, version)
                link = await asyncio.to_thread(self._link_from_store, name, version, project)
                if link is None:
                    raise StoreError(f"{name}@{version} was evicted during install")

        metadata = await asyncio.to_thread(self.store.read_metadata, name, version)
        size = int((metadata or {}).get("size") or 0)
        await asyncio.to_thread(
            self.analytics.record_install, name, version, cache_hit, timer.duration_ms(), size
        )
        return InstalledPackage(
            name=name,
            version=version,
            cache_hit=cache_hit,
            link_type=link.link_type,
            target_path=link.target_path,
            duration_ms=timer.duration_ms(),
            size=size,
        )

    def _link_from_store(self, name: str, version: str, project: Path) -> Optional[LinkResult]:
        """Link and touch under the identity lock; None when the package is not stored."""
        with self.store.identity_lock(name, version):
            if not self.store.has_package(name, version):
                return None
            slot = self.store.package_path(name, version)
            result = self.linker.link_to_project(slot, project, name)
            self.store.touch_package(name, version)
            return result

    async def _materialize(self, name: str, version: str) -> Path:
        """Download and store one identity; concurrent requests share the work."""
        return await self._materializing.run(
            f"{name}@{version}", lambda: self._fetch_and_store(name, version)
        )

    async def _fetch_and_store(self, name: str, version: str) -> Path:
        if await asyncio.to_thread(self.store.has_package, name, version):
            return self.store.package_path(name, version)
        self.store.temp_dir.mkdir(parents=True, exist_ok=True)
        # Private per materialization; leftovers of killed runs are never reused.
        work_dir = Path(tempfile.mkdtemp(
            prefix=f".{fs_safe_name(name)}@{version}-", dir=self.store.temp_dir,
        ))
        extracted = work_dir / "package"
        try:
            await self.registry.download_package(name, version, extracted)
            return await asyncio.to_thread(self.store.store_package, name, version, extracted)
        finally:
            # Usually empty by now: the slot was renamed out or the download cleaned up.
            shutil.rmtree(work_dir, ignore_errors=True)

    # Add

    async def add(self, tokens: Iterable[str], project_dir: Optional[os.PathLike] = None) -> InstallSummary:
        """Declare new dependencies in package.json, then install."""
        project = Path(project_dir or os.getcwd())
        manifest = await asyncio.to_thread(read_manifest, project)

        resolver = DependencyResolver(self.registry)
        ranges: Dict[str, str] = {}
        for token in tokens:
            try:
                request = parse_package_token(token)
            except ValueError as exc:
                raise ResolutionError(str(exc)) from exc
            if request.requested_spec is None:
                version = await self.registry.get_latest_version(request.name)
            else:
                version = await resolver.pick_version(request.name, request.range)
            ranges[request.name] = manifest_range_for(request, version)

        await asyncio.to_thread(add_dependencies, manifest, ranges)
        return await self.install(project)

    # Cache maintenance

    async def stats(self) -> Tuple[StoreStats, AnalyticsReport]:
        store_stats = await asyncio.to_thread(self.store.get_stats)
        report = await asyncio.to_thread(self.analytics.get_report)
        return store_stats, report

    async def list_packages(self) -> List[StoredPackage]:
        return await asyncio.to_thread(self.store.list_packages)

    async def clean(self, unused_days: int = Constants.DEFAULT_UNUSED_DAYS, dry_run: bool = False) -> CleanReport:
        """Evict packages unused for ``unused_days`` days.

        With ``dry_run`` nothing is deleted. Each package is re-checked under
        its identity lock so one used since the scan is kept.
        """
        candidates = await asyncio.to_thread(self.store.find_unused, unused_days)
        report = CleanReport(candidates=candidates, dry_run=dry_run)
        if dry_run or not candidates:
            return report

        cutoff = datetime.now(timezone.utc) - timedelta(days=unused_days)
        for pkg in candidates:
            result = await asyncio.to_thread(self._evict_if_unused, pkg, cutoff)
            if result is None:
                report.skipped.append(pkg.spec)
                continue
            report.results[pkg.spec] = result
            if result.ok:
                logger.info("  Deleted %s", pkg.spec)
            else:
                logger.warning(
                    "  Partially deleted %s (slot removed: %s, metadata removed: %s)",
                    pkg.spec, result.slot_removed, result.metadata_removed,
                )
        return report

    def _evict_if_unused(self, pkg: UnusedPackage, cutoff: datetime) -> Optional[DeleteResult]:
        with self.store.identity_lock(pkg.name, pkg.version):
            metadata = self.store.read_metadata(pkg.name, pkg.version) or {}
            last_used = parse_iso(metadata.get("lastUsed"))
            if last_used is not None and last_used >= cutoff:
                logger.info("  Keeping %s (used since scan)", pkg.spec)
                return None
            return self.store.delete_package(pkg.name, pkg.version)
