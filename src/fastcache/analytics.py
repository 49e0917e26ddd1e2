"""Install counters persisted under ``<cache>/analytics/stats.json``."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from fastcache.common.fs import format_bytes
from fastcache.constants import Constants
from fastcache.store.models import utc_now_iso

logger = logging.getLogger(__name__)


@dataclass
class AnalyticsReport:
    """Human-oriented summary of recorded installs."""
    total_installs: int
    cache_hits: int
    cache_misses: int
    hit_rate: str
    time_saved: str
    bandwidth_saved: str
    total_downloaded: str


class Analytics:
    """Record per-package install outcomes and summarize them."""

    def __init__(self, analytics_dir: os.PathLike):
        self.analytics_dir = Path(analytics_dir)
        self.stats_file = self.analytics_dir / Constants.ANALYTICS_FILE
        self._lock = threading.Lock()

    def record_install(
        self,
        package_name: str,
        version: str,
        cache_hit: bool,
        duration_ms: int,
        size: int = 0,
    ) -> None:
        """Append one install and update the running counters."""
        with self._lock:
            stats = self.load_stats()
            stats.setdefault("installs", []).append({
                "package": f"{package_name}@{version}",
                "cacheHit": cache_hit,
                "duration": duration_ms,
                "size": size,
                "timestamp": utc_now_iso(),
            })
            if cache_hit:
                stats["cacheHits"] = stats.get("cacheHits", 0) + 1
                stats["timeSaved"] = stats.get("timeSaved", 0) + duration_ms * Constants.TIME_SAVED_FACTOR
                stats["bandwidthSaved"] = stats.get("bandwidthSaved", 0) + size
            else:
                stats["cacheMisses"] = stats.get("cacheMisses", 0) + 1
                stats["totalDownloaded"] = stats.get("totalDownloaded", 0) + size
            self.save_stats(stats)

    def get_report(self) -> AnalyticsReport:
        stats = self.load_stats()
        hits = stats.get("cacheHits", 0)
        misses = stats.get("cacheMisses", 0)
        total = hits + misses
        hit_rate = (hits / total) * 100 if total else 0.0
        return AnalyticsReport(
            total_installs=total,
            cache_hits=hits,
            cache_misses=misses,
            hit_rate=f"{hit_rate:.2f}%",
            time_saved=f"{stats.get('timeSaved', 0) / 1000 / 60:.2f} minutes",
            bandwidth_saved=format_bytes(stats.get("bandwidthSaved", 0)),
            total_downloaded=format_bytes(stats.get("totalDownloaded", 0)),
        )

    def reset(self) -> None:
        with self._lock:
            self.save_stats({})

    def load_stats(self) -> Dict[str, Any]:
        """Current counters; an absent or corrupt file reads as empty."""
        try:
            with open(self.stats_file, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Discarding unreadable analytics file %s: %s", self.stats_file, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def save_stats(self, stats: Dict[str, Any]) -> None:
        self.analytics_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".stats.", suffix=".tmp", dir=self.analytics_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(stats, fh, indent=2)
            os.replace(tmp_name, self.stats_file)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
