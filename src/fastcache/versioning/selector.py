"""Version selection using npm semantic-versioning rules."""

import functools
import logging
import re
from typing import Iterable, List, Optional, Union

import semantic_version

logger = logging.getLogger(__name__)

LATEST_RANGES = frozenset({"*", "latest", ""})

_Spec = Union[semantic_version.NpmSpec, semantic_version.SimpleSpec]


def _normalize_spec(spec_str: str) -> str:
    """Normalize npm range syntax (hyphen, x-ranges) into SimpleSpec-compatible form."""
    s = spec_str.strip()

    # Hyphen ranges: "1.2.3 - 1.4.5" => ">=1.2.3,<=1.4.5"
    m = re.match(r'^\s*([0-9A-Za-z\.\-\+]+)\s+-\s+([0-9A-Za-z\.\-\+]+)\s*$', s)
    if m:
        left, right = m.group(1), m.group(2)
        return f">={left},<={right}"

    # x-ranges: 1.2.x or 1.x or 1.* -> comparator pairs
    s2 = s.replace('*', 'x').lower()
    m = re.match(r'^\s*=?v?(\d+)\.(\d+)\.x\s*$', s2)
    if m:
        major, minor = int(m.group(1)), int(m.group(2))
        return f">={major}.{minor}.0,<{major}.{minor + 1}.0"

    m = re.match(r'^\s*=?v?(\d+)(\.x)?(\.x)?\s*$', s2)
    if m:
        major = int(m.group(1))
        return f">={major}.0.0,<{major + 1}.0.0"

    return spec_str


@functools.lru_cache(maxsize=1024)
def _parse_spec(spec_str: str) -> Optional[_Spec]:
    """Parse a range, preferring NpmSpec (^, ~, hyphen, x-ranges, ||)."""
    try:
        return semantic_version.NpmSpec(spec_str)
    except ValueError:
        pass
    try:
        return semantic_version.SimpleSpec(_normalize_spec(spec_str))
    except ValueError:
        return None


def _parse_versions(versions: Iterable[str]) -> List[semantic_version.Version]:
    parsed = []
    for v in versions:
        try:
            parsed.append(semantic_version.Version(v))
        except ValueError:
            logger.debug("Skipping non-semver version %r", v)
    return parsed


def is_valid_range(version_range: str) -> bool:
    """Return True when ``version_range`` is a parseable semver range."""
    rng = version_range.strip()
    if rng in LATEST_RANGES:
        return True
    return _parse_spec(rng) is not None


def max_version(versions: Iterable[str]) -> Optional[str]:
    """Pick the highest version, preferring releases over pre-releases."""
    parsed = _parse_versions(versions)
    if not parsed:
        return None
    releases = [v for v in parsed if not v.prerelease]
    return str(max(releases or parsed))


def select_version(versions: Iterable[str], version_range: str) -> Optional[str]:
    """Return the highest version in ``versions`` satisfying ``version_range``.

    Args:
        versions: Published version strings.
        version_range: npm range, exact version, ``*`` or ``latest``.

    Returns:
        The chosen version string, or None when nothing matches or the range
        cannot be parsed.
    """
    rng = version_range.strip()
    if rng in LATEST_RANGES:
        return max_version(versions)

    spec = _parse_spec(rng)
    if spec is None:
        return None

    best = spec.select(_parse_versions(versions))
    return str(best) if best is not None else None


def satisfies(version: str, version_range: str) -> bool:
    """Return True when ``version`` falls within ``version_range``."""
    rng = version_range.strip()
    try:
        ver = semantic_version.Version(version)
    except ValueError:
        return False
    if rng in LATEST_RANGES:
        return True
    spec = _parse_spec(rng)
    if spec is None:
        return False
    return spec.match(ver)


class VersionSelector:
    """Stateless facade over the selection helpers, injectable into the resolver."""

    def select(self, versions: Iterable[str], version_range: str) -> Optional[str]:
        """See :func:`select_version`."""
        return select_version(versions, version_range)

    def satisfies(self, version: str, version_range: str) -> bool:
        """See :func:`satisfies`."""
        return satisfies(version, version_range)

    def is_valid_range(self, version_range: str) -> bool:
        """See :func:`is_valid_range`."""
        return is_valid_range(version_range)
