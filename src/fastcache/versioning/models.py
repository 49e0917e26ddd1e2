"""Data models for versioning and dependency resolution."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


class ResolutionMode(Enum):
    """Resolution strategy derived from a version spec."""
    EXACT = "exact"
    RANGE = "range"
    LATEST = "latest"
    TAG = "tag"


@dataclass
class VersionSpec:
    """Normalized representation of a version spec and derived behavior flags."""
    raw: str
    mode: ResolutionMode
    include_prerelease: bool


@dataclass
class PackageRequest:
    """A package named on the command line, optionally with a version spec."""
    name: str
    requested_spec: Optional[VersionSpec]
    raw_token: Optional[str]

    @property
    def range(self) -> str:
        """Range string to hand to the resolver."""
        if self.requested_spec is None:
            return "latest"
        return self.requested_spec.raw


@dataclass
class ResolvedPackage:
    """One entry of a flat resolved tree."""
    version: str
    dependencies: Dict[str, str] = field(default_factory=dict)


# Flat mapping: package name -> the single version installed for it.
ResolvedTree = Dict[str, ResolvedPackage]
