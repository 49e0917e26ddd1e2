"""Project stored packages into a project's module directory."""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, List, NamedTuple

from fastcache.common.fs import remove_path
from fastcache.constants import Constants, LinkTypes
from fastcache.errors import LinkError

logger = logging.getLogger(__name__)


class LinkStrategy(NamedTuple):
    """A named way of materializing ``source`` at ``target``; raises OSError on failure."""
    name: str
    apply: Callable[[Path, Path], None]


@dataclass
class LinkResult:
    """Where a package was linked and how."""
    target_path: Path
    link_type: str


def _hardlink_tree(source: Path, target: Path) -> None:
    """Mirror directories and hardlink files, copying any file that cannot be linked."""
    if not source.is_dir():
        os.link(source, target)
        return

    target.mkdir(parents=True, exist_ok=True)
    for entry in os.scandir(source):
        src = Path(entry.path)
        dst = target / entry.name
        if entry.is_symlink():
            os.symlink(os.readlink(src), dst)
        elif entry.is_dir(follow_symlinks=False):
            _hardlink_tree(src, dst)
        else:
            try:
                os.link(src, dst)
            except OSError as exc:
                logger.debug("Hardlink failed for %s (%s); copying", src, exc)
                shutil.copy2(src, dst)


def _symlink(source: Path, target: Path) -> None:
    os.symlink(os.path.abspath(source), target, target_is_directory=source.is_dir())


def _copy_tree(source: Path, target: Path) -> None:
    if source.is_dir():
        shutil.copytree(source, target, symlinks=True)
    else:
        shutil.copy2(source, target)


DEFAULT_STRATEGIES = (
    LinkStrategy(LinkTypes.HARDLINK.value, _hardlink_tree),
    LinkStrategy(LinkTypes.SYMLINK.value, _symlink),
    LinkStrategy(LinkTypes.COPY.value, _copy_tree),
)


class LinkManager:
    """Link stored packages into projects: hardlink, then symlink, then copy."""

    def __init__(self, strategies=DEFAULT_STRATEGIES, modules_dir: str = Constants.MODULES_DIR):
        self.strategies: List[LinkStrategy] = list(strategies)
        self.modules_dir = modules_dir

    def link_package(self, source_path: os.PathLike, target_path: os.PathLike) -> str:
        """Materialize ``source_path`` at ``target_path``.

        Any existing entry at the target is removed first. Strategies are
        tried in order and the first one that succeeds is reported; a failed
        strategy's partial output is cleared before the next attempt.

        Returns:
            The successful strategy name: ``hardlink``, ``symlink`` or ``copy``.

        Raises:
            LinkError: Every strategy failed.
        """
        source = Path(source_path)
        target = Path(target_path)
        if not source.exists():
            raise LinkError(f"Cannot link {source}: source does not exist")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            remove_path(target)
        except OSError as exc:
            raise LinkError(f"Cannot prepare {target}: {exc}") from exc

        failures = []
        for strategy in self.strategies:
            try:
                strategy.apply(source, target)
            except OSError as exc:
                failures.append(f"{strategy.name}: {exc}")
                logger.debug("%s link of %s failed: %s", strategy.name, source, exc)
                try:
                    remove_path(target)
                except OSError as cleanup_exc:
                    raise LinkError(f"Cannot clear partial link at {target}: {cleanup_exc}") from exc
                continue
            return strategy.name

        raise LinkError(f"Could not link {source} to {target} ({'; '.join(failures)})")

    def module_path(self, project_path: os.PathLike, package_name: str) -> Path:
        """Location of ``package_name`` inside the project's module directory."""
        parts = PurePosixPath(package_name).parts
        if not parts or package_name.startswith("/") or any(p in ("..", ".") for p in parts):
            raise LinkError(f"Refusing to link package with unsafe name: {package_name!r}")
        return Path(project_path) / self.modules_dir / Path(*parts)

    def link_to_project(self, slot_path: os.PathLike, project_path: os.PathLike, package_name: str) -> LinkResult:
        """Link a stored package into ``<project>/node_modules/<name>``."""
        target = self.module_path(project_path, package_name)
        (Path(project_path) / self.modules_dir).mkdir(parents=True, exist_ok=True)
        link_type = self.link_package(slot_path, target)
        return LinkResult(target_path=target, link_type=link_type)

    @staticmethod
    def is_link(path: os.PathLike) -> bool:
        """True if ``path`` is a symbolic link; hardlinked files look like plain files."""
        return os.path.islink(path)
