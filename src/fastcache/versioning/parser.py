"""Token parsing utilities for package requests (``name@range``)."""

import re
from typing import Optional, Tuple

from .models import PackageRequest, ResolutionMode, VersionSpec
from .selector import is_valid_range

_RANGE_OPS = re.compile(r'[\^~*<>=|\s]')
_X_RANGE = re.compile(r'(^|\.)[xX](\.|$)')


def tokenize_rightmost_at(s: str) -> Tuple[str, Optional[str]]:
    """Return (name, spec or None) splitting on the right-most ``@``.

    A leading ``@`` belongs to a scoped name (``@scope/pkg``) and never
    starts the version spec.
    """
    s = s.strip()
    idx = s.rfind('@')
    if idx <= 0:
        return s, None
    name = s[:idx].strip()
    spec_part = s[idx + 1:].strip()
    return name, (spec_part or None)


def _determine_resolution_mode(spec: str) -> ResolutionMode:
    """Determine resolution mode from spec string."""
    if not is_valid_range(spec):
        return ResolutionMode.TAG
    if _RANGE_OPS.search(spec) or _X_RANGE.search(spec):
        return ResolutionMode.RANGE
    if spec.split('-', 1)[0].count('.') < 2:
        # "1" or "1.2" are partial versions, i.e. ranges
        return ResolutionMode.RANGE
    return ResolutionMode.EXACT


def _determine_include_prerelease(spec: str) -> bool:
    """npm only admits pre-releases a range names explicitly."""
    return any(pre in spec.lower() for pre in ['-pre', '-rc', '-alpha', '-beta', '-next'])


def parse_package_token(token: str) -> PackageRequest:
    """Parse a command-line token into a PackageRequest.

    ``lodash``, ``lodash@latest`` -> latest mode; ``lodash@^4.17.0`` -> range;
    ``@types/node@20.1.0`` -> exact; ``react@next`` -> dist-tag.
    """
    name, spec = tokenize_rightmost_at(token)
    if not name:
        raise ValueError(f"Invalid package token: {token!r}")

    if spec is None or spec.lower() == 'latest':
        requested_spec = None
    else:
        requested_spec = VersionSpec(
            raw=spec,
            mode=_determine_resolution_mode(spec),
            include_prerelease=_determine_include_prerelease(spec),
        )

    return PackageRequest(name=name, requested_spec=requested_spec, raw_token=token)


def manifest_range_for(req: PackageRequest, resolved_version: str) -> str:
    """Range to record in the manifest once ``req`` resolved to ``resolved_version``.

    Latest, exact and dist-tag requests are pinned as a caret range on the
    resolved version; explicit ranges are kept verbatim.
    """
    spec = req.requested_spec
    if spec is None or spec.mode in (ResolutionMode.EXACT, ResolutionMode.TAG):
        return f"^{resolved_version}"
    return spec.raw
