"""Identity-addressed package store with per-package usage metadata.

Layout under the cache root::

    store/<name>@<version>-<hash>/   one slot per installed identity
    metadata/<name>@<version>.json   installedAt, lastUsed, size, ...
    analytics/                       owned by the analytics recorder
    temp/                            staging for downloads and store copies

A slot's presence is the only signal for "is this package cached"; metadata
is kept separately and the two may diverge after a partial failure.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from fastcache.common.fs import (
    directory_size,
    format_bytes,
    fs_name_to_package,
    fs_safe_name,
)
from fastcache.common.locks import IdentityLocks
from fastcache.constants import Constants
from fastcache.errors import StoreError

from .models import (
    DeleteResult,
    StoreStats,
    StoredPackage,
    UnusedPackage,
    parse_iso,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


class PackageStore:
    """System-wide store of installed package versions."""

    def __init__(self, cache_dir: Optional[os.PathLike] = None):
        """Initialize the store.

        Args:
            cache_dir: Cache root; defaults to ``Constants.CACHE_DIR``.
        """
        self.cache_dir = Path(cache_dir or Constants.CACHE_DIR)
        self.store_dir = self.cache_dir / Constants.STORE_DIR_NAME
        self.metadata_dir = self.cache_dir / Constants.METADATA_DIR_NAME
        self.analytics_dir = self.cache_dir / Constants.ANALYTICS_DIR_NAME
        self.temp_dir = self.cache_dir / Constants.TEMP_DIR_NAME
        self._locks = IdentityLocks()

    def init(self) -> None:
        """Create the cache directory layout."""
        for directory in (self.store_dir, self.metadata_dir, self.analytics_dir, self.temp_dir):
            directory.mkdir(parents=True, exist_ok=True)
        logger.debug("Cache initialized at: %s", self.cache_dir)

    # Identity -> paths

    @staticmethod
    def package_hash(name: str, version: str) -> str:
        """Truncated sha256 of ``name@version``."""
        digest = hashlib.sha256(f"{name}@{version}".encode("utf-8")).hexdigest()
        return digest[:Constants.PACKAGE_HASH_LENGTH]

    def package_path(self, name: str, version: str) -> Path:
        """Slot directory for an identity; a pure function of (name, version)."""
        slot = f"{fs_safe_name(name)}@{version}-{self.package_hash(name, version)}"
        return self.store_dir / slot

    def metadata_path(self, name: str, version: str) -> Path:
        return self.metadata_dir / f"{fs_safe_name(name)}@{version}.json"

    def identity_lock(self, name: str, version: str) -> threading.RLock:
        """Lock serializing store, metadata and eviction work for one identity."""
        return self._locks.get(name, version)

    def has_package(self, name: str, version: str) -> bool:
        """Return True if the identity's slot directory exists."""
        return self.package_path(name, version).is_dir()

    # Writes

    def store_package(self, name: str, version: str, source_path: os.PathLike) -> Path:
        """Copy ``source_path`` into the identity's slot and record metadata.

        The copy is staged under ``temp/`` and renamed into place, so a slot
        is either absent or complete. When the slot already exists the copy
        is skipped and only ``lastUsed`` is refreshed.

        Raises:
            StoreError: The source is missing or the copy failed.
        """
        source = Path(source_path)
        target = self.package_path(name, version)
        with self.identity_lock(name, version):
            if target.is_dir():
                logger.debug("%s@%s already stored; skipping copy", name, version)
                self.touch_package(name, version)
                return target
            if not source.is_dir():
                raise StoreError(f"Cannot store {name}@{version}: {source} is not a directory")

            self.store_dir.mkdir(parents=True, exist_ok=True)
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=f".store-{fs_safe_name(name)}-", dir=self.temp_dir))
            try:
                staged = staging / "slot"
                shutil.copytree(source, staged, symlinks=True)
                try:
                    os.rename(staged, target)
                except OSError:
                    if not target.is_dir():
                        raise
                    # Another process finished the same identity first.
                    logger.debug("%s@%s appeared while staging", name, version)
            except OSError as exc:
                raise StoreError(f"Failed to store {name}@{version}: {exc}") from exc
            finally:
                shutil.rmtree(staging, ignore_errors=True)

            now = utc_now_iso()
            self.update_metadata(name, version, {
                "installedAt": now,
                "lastUsed": now,
                "size": directory_size(target),
            })
            return target

    def touch_package(self, name: str, version: str) -> None:
        """Record that the package was just used."""
        self.update_metadata(name, version, {"lastUsed": utc_now_iso()})

    def update_metadata(self, name: str, version: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        """Shallow-merge ``patch`` into the identity's metadata record.

        New keys win, keys absent from ``patch`` are kept. The record is
        created if missing and replaced atomically.

        Returns:
            The merged record.
        """
        meta_path = self.metadata_path(name, version)
        with self.identity_lock(name, version):
            metadata = self.read_metadata(name, version) or {}
            metadata.update(patch)
            self.metadata_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{meta_path.name}.", suffix=".tmp", dir=self.metadata_dir)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(metadata, fh, indent=2)
                os.replace(tmp_name, meta_path)
            except OSError as exc:
                Path(tmp_name).unlink(missing_ok=True)
                raise StoreError(f"Failed to write metadata for {name}@{version}: {exc}") from exc
            return metadata

    def read_metadata(self, name: str, version: str) -> Optional[Dict[str, Any]]:
        """Return the identity's metadata record, or None when absent or unreadable."""
        meta_path = self.metadata_path(name, version)
        try:
            with open(meta_path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable metadata %s: %s", meta_path, exc)
            return None
        return data if isinstance(data, dict) else None

    # Queries

    def _slots(self) -> List[Path]:
        if not self.store_dir.is_dir():
            return []
        return sorted(p for p in self.store_dir.iterdir() if not p.name.startswith("."))

    def get_stats(self) -> StoreStats:
        """Count slots and sum their sizes."""
        slots = self._slots()
        total = sum(directory_size(slot) for slot in slots)
        return StoreStats(
            package_count=len(slots),
            total_size=total,
            total_size_formatted=format_bytes(total),
            cache_dir=str(self.cache_dir),
        )

    def list_packages(self) -> List[StoredPackage]:
        """Every slot with its size, sorted by slot name."""
        return [StoredPackage(slot=slot.name, size=directory_size(slot)) for slot in self._slots()]

    def find_unused(self, unused_days: int = Constants.DEFAULT_UNUSED_DAYS) -> List[UnusedPackage]:
        """Packages whose ``lastUsed`` is older than ``unused_days`` days."""
        if not self.metadata_dir.is_dir():
            return []
        cutoff = datetime.now(timezone.utc) - timedelta(days=unused_days)
        unused: List[UnusedPackage] = []
        for meta_file in sorted(self.metadata_dir.glob("*.json")):
            if meta_file.name.startswith("."):
                continue
            stem = meta_file.name[: -len(".json")]
            name_part, sep, version = stem.rpartition("@")
            if not sep or not name_part:
                logger.warning("Skipping metadata with unexpected name: %s", meta_file.name)
                continue
            try:
                with open(meta_file, "r", encoding="utf-8") as fh:
                    data = json.load(fh)
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable metadata %s: %s", meta_file, exc)
                continue
            last_used = parse_iso(data.get("lastUsed")) if isinstance(data, dict) else None
            if last_used is None:
                logger.warning("Skipping metadata without lastUsed: %s", meta_file)
                continue
            if last_used < cutoff:
                unused.append(UnusedPackage(
                    name=fs_name_to_package(name_part),
                    version=version,
                    last_used=data["lastUsed"],
                    size=int(data.get("size") or 0),
                ))
        return unused

    # Removal

    def delete_package(self, name: str, version: str) -> DeleteResult:
        """Remove the identity's slot and metadata record.

        Both removals are attempted independently; failures are logged and
        reported in the result rather than raised. Parts that were already
        absent count as removed.
        """
        pkg_path = self.package_path(name, version)
        meta_path = self.metadata_path(name, version)
        with self.identity_lock(name, version):
            slot_removed = True
            try:
                if pkg_path.is_symlink():
                    pkg_path.unlink()
                elif pkg_path.exists():
                    shutil.rmtree(pkg_path)
            except OSError as exc:
                slot_removed = False
                logger.error("Error deleting %s@%s slot: %s", name, version, exc)

            metadata_removed = True
            try:
                meta_path.unlink(missing_ok=True)
            except OSError as exc:
                metadata_removed = False
                logger.error("Error deleting %s@%s metadata: %s", name, version, exc)

        return DeleteResult(slot_removed=slot_removed, metadata_removed=metadata_removed)

    # Helpers kept on the store for callers that only hold a store

    @staticmethod
    def get_directory_size(path: os.PathLike) -> int:
        return directory_size(path)

    @staticmethod
    def format_bytes(num_bytes: float) -> str:
        return format_bytes(num_bytes)
