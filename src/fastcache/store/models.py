"""Records returned by the package store."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass
class StoreStats:
    """Aggregate view of the store directory."""
    package_count: int
    total_size: int
    total_size_formatted: str
    cache_dir: str


@dataclass
class StoredPackage:
    """One slot directory in the store."""
    slot: str
    size: int


@dataclass
class UnusedPackage:
    """A package whose metadata says it has not been used recently."""
    name: str
    version: str
    last_used: str
    size: int

    @property
    def spec(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass
class DeleteResult:
    """Outcome of removing a package's slot and its metadata record.

    The two removals are independent; a partial result is a legitimate
    terminal state that a later scan can pick up.
    """
    slot_removed: bool
    metadata_removed: bool

    @property
    def ok(self) -> bool:
        return self.slot_removed and self.metadata_removed

    @property
    def partial(self) -> bool:
        return self.slot_removed != self.metadata_removed

    def __bool__(self) -> bool:
        return self.ok


def utc_now_iso() -> str:
    """Current UTC time as ``2024-01-01T00:00:00.000Z``."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware datetime; None if unparseable."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
