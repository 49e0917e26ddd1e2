"""Exception hierarchy shared by the resolver, store, linker and registry client."""

from __future__ import annotations

from typing import Sequence


class FastCacheError(Exception):
    """Base class for all fastcache failures."""


class ResolutionError(FastCacheError):
    """A dependency declaration could not be turned into a concrete version."""


class NoMatchingVersionError(ResolutionError):
    """No published version satisfies the requested range."""

    def __init__(self, name: str, version_range: str):
        self.name = name
        self.version_range = version_range
        super().__init__(f"No matching version found for {name}@{version_range}")


class CircularDependencyError(ResolutionError):
    """The dependency walk revisited a package on its own path or ran too deep."""

    def __init__(self, name: str, chain: Sequence[str] = ()):
        self.name = name
        self.chain = tuple(chain)
        if self.chain:
            detail = " -> ".join(self.chain)
            super().__init__(f"Circular dependency detected: {detail}")
        else:
            super().__init__(f"Circular dependency detected: {name}")


class InvalidRangeError(ResolutionError):
    """The range is neither a semver range nor a known dist-tag."""

    def __init__(self, name: str, version_range: str):
        self.name = name
        self.version_range = version_range
        super().__init__(f"Unsupported version range for {name}: {version_range!r}")


class RegistryError(FastCacheError):
    """Package metadata could not be fetched or parsed."""


class DownloadError(FastCacheError):
    """A tarball could not be downloaded or extracted."""


class StoreError(FastCacheError):
    """The package store could not be read or written."""


class LinkError(FastCacheError):
    """Every link strategy failed for a package."""


class ManifestError(FastCacheError):
    """The project manifest is missing or malformed."""
