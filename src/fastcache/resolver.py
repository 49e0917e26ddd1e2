"""Dependency resolver producing a flat, one-version-per-name tree."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from fastcache.common.logging_utils import extra_context, is_debug_enabled
from fastcache.constants import Constants
from fastcache.errors import CircularDependencyError, InvalidRangeError, NoMatchingVersionError
from fastcache.versioning.models import ResolvedPackage, ResolvedTree
from fastcache.versioning.selector import VersionSelector

logger = logging.getLogger(__name__)


class MetadataProvider(Protocol):
    """Anything that can return registry metadata (packument) for a name."""

    async def get_package_metadata(self, name: str) -> Dict[str, Any]:
        ...


def merge_resolution(tree: ResolvedTree, name: str, entry: ResolvedPackage) -> Optional[ResolvedPackage]:
    """Record ``entry`` as the single version of ``name`` in ``tree``.

    The store is flat, so a name holds one version per resolution pass. The
    most recent requester wins: an existing entry is replaced and returned.
    Combined with the resolver's depth-first, insertion-ordered walk this
    makes the outcome deterministic for a given manifest.
    """
    previous = tree.get(name)
    tree[name] = entry
    if previous is not None and previous.version != entry.version:
        logger.warning(
            "Replacing %s@%s with %s@%s (one version per package name)",
            name, previous.version, name, entry.version,
        )
    return previous


class DependencyResolver:
    """Resolve dependency declarations into a flat ``ResolvedTree``.

    The memo of literal ``name@range`` resolutions lives as long as the
    resolver and is reused across :meth:`resolve` calls.
    """

    def __init__(
        self,
        registry: MetadataProvider,
        selector: Optional[VersionSelector] = None,
        max_depth: int = Constants.MAX_RESOLUTION_DEPTH,
    ):
        self.registry = registry
        self.selector = selector or VersionSelector()
        self.max_depth = max_depth
        self._memo: Dict[str, str] = {}
        self._memo_lock = threading.Lock()

    @staticmethod
    def memo_key(name: str, version_range: str) -> str:
        return f"{name}@{version_range}"

    def memoized(self, name: str, version_range: str) -> Optional[str]:
        """Version previously chosen for this literal range, if any."""
        with self._memo_lock:
            return self._memo.get(self.memo_key(name, version_range))

    def _remember(self, name: str, version_range: str, version: str) -> None:
        with self._memo_lock:
            self._memo[self.memo_key(name, version_range)] = version

    async def resolve(self, dependencies: Mapping[str, str]) -> ResolvedTree:
        """Resolve all dependencies into a flat tree, in mapping order."""
        tree: ResolvedTree = {}
        logger.info("Resolving %d dependencies...", len(dependencies))
        for name, version_range in dependencies.items():
            await self.resolve_dependency(name, version_range, tree)
        return tree

    async def resolve_dependency(
        self,
        name: str,
        version_range: str,
        tree: ResolvedTree,
        depth: int = 0,
        chain: Tuple[str, ...] = (),
    ) -> str:
        """Resolve one dependency and, depth first, everything it depends on.

        Args:
            name: Package name.
            version_range: Range exactly as declared.
            tree: Tree being built for the current ``resolve`` call.
            depth: Recursion depth, 0 for top-level entries.
            chain: Names on the current recursion path.

        Returns:
            The version recorded for ``name``.

        Raises:
            CircularDependencyError: ``name`` is already on ``chain`` or the
                walk is deeper than ``max_depth``.
            InvalidRangeError: The range is not semver and not a dist-tag.
            NoMatchingVersionError: No published version satisfies the range.
        """
        if name in chain:
            raise CircularDependencyError(name, chain + (name,))
        if depth > self.max_depth:
            raise CircularDependencyError(name, chain + (name,))

        memoized = self.memoized(name, version_range)
        if memoized is not None:
            if name not in tree:
                tree[name] = ResolvedPackage(version=memoized, dependencies={})
            return memoized

        existing = tree.get(name)
        if existing is not None and self.selector.satisfies(existing.version, version_range):
            return existing.version

        metadata = await self.registry.get_package_metadata(name)
        version = self._select(name, version_range, metadata)

        record = metadata.get("versions", {}).get(version) or {}
        dependencies = dict(record.get("dependencies") or {})
        merge_resolution(tree, name, ResolvedPackage(version=version, dependencies=dependencies))
        self._remember(name, version_range, version)

        if is_debug_enabled(logger):
            logger.debug(
                "Resolved dependency",
                extra=extra_context(
                    event="resolve",
                    component="resolver",
                    package=name,
                    requested=version_range,
                    resolved=version,
                    depth=depth,
                ),
            )
        logger.info("  + %s@%s", name, version)

        for dep_name, dep_range in dependencies.items():
            await self.resolve_dependency(dep_name, dep_range, tree, depth + 1, chain + (name,))

        return version

    async def pick_version(self, name: str, version_range: str) -> str:
        """Select a version for ``name`` without touching any tree or the memo."""
        metadata = await self.registry.get_package_metadata(name)
        return self._select(name, version_range, metadata)

    def _select(self, name: str, version_range: str, metadata: Mapping[str, Any]) -> str:
        """Pick a version from a packument, honoring dist-tags."""
        versions = metadata.get("versions", {})
        rng = version_range.strip()
        dist_tags = metadata.get("dist-tags") or {}

        if not self.selector.is_valid_range(rng):
            tagged = dist_tags.get(rng)
            if tagged is None:
                raise InvalidRangeError(name, version_range)
            if tagged not in versions:
                raise NoMatchingVersionError(name, version_range)
            return tagged

        version = self.selector.select(versions.keys(), rng)
        if version is None:
            raise NoMatchingVersionError(name, version_range)
        return version
