"""Tarball extraction with wrapper-directory stripping."""

from __future__ import annotations

import logging
import os
import tarfile
from pathlib import PurePosixPath

from fastcache.errors import DownloadError

logger = logging.getLogger(__name__)


def _stripped_name(member_name: str, strip: int) -> str:
    """Drop ``strip`` leading components; '' when nothing remains."""
    parts = [p for p in PurePosixPath(member_name).parts if p not in ("", ".")]
    if member_name.startswith("/") or any(p == ".." for p in parts):
        raise DownloadError(f"Unsafe path in archive: {member_name!r}")
    return "/".join(parts[strip:])


def extract_tarball(archive_path: str, dest_dir: str, strip: int = 1) -> int:
    """Extract a (gzipped) tarball into ``dest_dir``.

    npm tarballs wrap their contents in one top-level directory (usually
    ``package/``); ``strip`` leading components are removed from every member.
    Link members are skipped.

    Args:
        archive_path: Path to the archive on disk.
        dest_dir: Destination directory, created if missing.
        strip: Number of leading path components to remove.

    Returns:
        Number of members extracted.

    Raises:
        DownloadError: The archive is unreadable or contains unsafe paths.
    """
    os.makedirs(dest_dir, exist_ok=True)
    extracted = 0
    try:
        with tarfile.open(archive_path, "r:*") as tar:
            for member in tar.getmembers():
                name = _stripped_name(member.name, strip)
                if not name:
                    continue
                if member.issym() or member.islnk():
                    logger.debug("Skipping link member %s in %s", member.name, archive_path)
                    continue
                if not (member.isfile() or member.isdir()):
                    continue
                member.name = name
                tar.extract(member, dest_dir, filter="data")
                extracted += 1
    except (tarfile.TarError, OSError) as exc:
        raise DownloadError(f"Failed to extract {archive_path}: {exc}") from exc
    return extracted
