"""Registry access: metadata, tarball downloads and in-flight deduplication."""

from .client import RegistryClient
from .inflight import InFlightRegistry
from .tarball import extract_tarball

__all__ = [
    "RegistryClient",
    "InFlightRegistry",
    "extract_tarball",
]
