"""Reading and updating a project's ``package.json``."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

from fastcache.constants import Constants
from fastcache.errors import ManifestError

logger = logging.getLogger(__name__)


@dataclass
class Manifest:
    """A parsed ``package.json`` and where it came from."""
    path: Path
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def dependencies(self) -> Dict[str, str]:
        return dict(self.data.get("dependencies") or {})

    @property
    def dev_dependencies(self) -> Dict[str, str]:
        return dict(self.data.get("devDependencies") or {})

    def all_dependencies(self) -> Dict[str, str]:
        """Runtime then dev dependencies; a dev range overrides a same-name runtime one."""
        return {**self.dependencies, **self.dev_dependencies}


def read_manifest(project_dir: os.PathLike) -> Manifest:
    """Load ``<project_dir>/package.json``.

    Raises:
        ManifestError: The file is missing, unreadable or not a JSON object.
    """
    path = Path(project_dir) / Constants.PACKAGE_JSON_FILE
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        raise ManifestError(f"Cannot read {Constants.PACKAGE_JSON_FILE}: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"{path} does not contain a JSON object")
    for section in ("dependencies", "devDependencies"):
        if section in data and not isinstance(data[section], dict):
            raise ManifestError(f"'{section}' in {path} must be an object")
    return Manifest(path=path, data=data)


def add_dependencies(manifest: Manifest, ranges: Mapping[str, str]) -> Manifest:
    """Add or update ``dependencies`` entries and write the manifest back."""
    deps = manifest.data.setdefault("dependencies", {})
    for name, version_range in ranges.items():
        deps[name] = version_range
        logger.info("  Added %s@%s to %s", name, version_range, Constants.PACKAGE_JSON_FILE)
    try:
        with open(manifest.path, "w", encoding="utf-8") as fh:
            fh.write(json.dumps(manifest.data, indent=2) + "\n")
    except OSError as exc:
        raise ManifestError(f"Cannot write {manifest.path}: {exc}") from exc
    return manifest
