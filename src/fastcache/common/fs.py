"""Filesystem helpers shared by the store, linker and installer."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Union

PathLike = Union[str, "os.PathLike[str]"]

_UNITS = ("B", "KB", "MB", "GB")


def directory_size(path: PathLike) -> int:
    """Return the total size in bytes of regular files below ``path``.

    Symlinks are not followed. A missing path has size 0.
    """
    root = Path(path)
    if root.is_symlink():
        return 0
    if root.is_file():
        return root.stat().st_size
    total = 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            full = os.path.join(dirpath, filename)
            try:
                st = os.lstat(full)
            except FileNotFoundError:
                continue
            if not os.path.islink(full):
                total += st.st_size
    return total


def format_bytes(num_bytes: float) -> str:
    """Format a byte count using 1024-based units with two decimals."""
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(_UNITS) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.2f} {_UNITS[unit_index]}"


def remove_path(path: PathLike) -> None:
    """Remove a file, symlink or directory tree; absent paths are ignored."""
    target = Path(path)
    if target.is_symlink() or target.is_file():
        target.unlink(missing_ok=True)
    elif target.is_dir():
        shutil.rmtree(target)


def fs_safe_name(name: str) -> str:
    """Encode a package name as a single path component (``@scope/pkg`` -> ``@scope+pkg``)."""
    return name.replace("/", "+")


def fs_name_to_package(component: str) -> str:
    """Inverse of :func:`fs_safe_name`; npm names never contain '+'."""
    return component.replace("+", "/")
