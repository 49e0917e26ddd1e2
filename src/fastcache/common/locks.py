"""Per-identity locks for store and eviction operations."""

from __future__ import annotations

import threading
from typing import Dict, Tuple


class IdentityLocks:
    """Hand out one re-entrant lock per (name, version).

    Filesystem work runs in worker threads, so these are thread locks. Locks
    are created on first use and kept for the lifetime of the owner.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], threading.RLock] = {}

    def get(self, name: str, version: str) -> threading.RLock:
        """Return the lock for ``name@version``, creating it if needed."""
        key = (name, version)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
