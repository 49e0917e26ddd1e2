"""Version selection, request parsing and resolution data models."""

from .models import PackageRequest, ResolutionMode, ResolvedPackage, ResolvedTree, VersionSpec
from .parser import manifest_range_for, parse_package_token
from .selector import VersionSelector, is_valid_range, max_version, satisfies, select_version

__all__ = [
    "PackageRequest",
    "ResolutionMode",
    "ResolvedPackage",
    "ResolvedTree",
    "VersionSpec",
    "VersionSelector",
    "is_valid_range",
    "manifest_range_for",
    "max_version",
    "parse_package_token",
    "satisfies",
    "select_version",
]
