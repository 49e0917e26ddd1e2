"""System-wide package store."""

from .models import DeleteResult, StoreStats, StoredPackage, UnusedPackage
from .package_store import PackageStore

__all__ = [
    "PackageStore",
    "DeleteResult",
    "StoreStats",
    "StoredPackage",
    "UnusedPackage",
]
