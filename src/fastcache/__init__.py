"""fastcache: a shared, content-deduplicated package store for npm projects."""

__version__ = "0.1.0"

from fastcache.installer import CleanReport, FastCache, InstallSummary  # noqa: E402

__all__ = ["FastCache", "InstallSummary", "CleanReport", "__version__"]
