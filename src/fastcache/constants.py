"""Constants used in the project."""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLUTION_ERROR = 3


class LinkTypes(Enum):
    """Strategies used to project a stored package into a project."""

    HARDLINK = "hardlink"
    SYMLINK = "symlink"
    COPY = "copy"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    CACHE_DIR = os.path.join(os.path.expanduser("~"), ".fastcache")
    STORE_DIR_NAME = "store"
    METADATA_DIR_NAME = "metadata"
    ANALYTICS_DIR_NAME = "analytics"
    TEMP_DIR_NAME = "temp"
    ANALYTICS_FILE = "stats.json"
    MODULES_DIR = "node_modules"
    PACKAGE_JSON_FILE = "package.json"

    REGISTRY_URL_NPM = "https://registry.npmjs.org"
    NPM_METADATA_ACCEPT = (
        "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8, */*"
    )
    USER_AGENT = "fastcache/0.1.0"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    DOWNLOAD_CHUNK_SIZE = 64 * 1024

    MAX_RESOLUTION_DEPTH = 100
    PACKAGE_HASH_LENGTH = 16
    DEFAULT_UNUSED_DAYS = 30
    INSTALL_CONCURRENCY = 8
    # Hit-path time is assumed to be this many times faster than a download.
    TIME_SAVED_FACTOR = 5

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "FASTCACHE_LOG_LEVEL"
    ENV_CONFIG = "FASTCACHE_CONFIG"
    ENV_CACHE_DIR = "FASTCACHE_CACHE_DIR"
    ENV_REGISTRY = "FASTCACHE_REGISTRY"
    ENV_CONCURRENCY = "FASTCACHE_CONCURRENCY"
    CONFIG_FILE_NAME = "fastcache.yml"


def _default_config_paths() -> list:
    """Return candidate YAML config locations in lookup order."""
    paths = []
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path:
        paths.append(Path(env_path))
    paths.append(Path.cwd() / Constants.CONFIG_FILE_NAME)
    paths.append(Path.home() / ".config" / "fastcache" / Constants.CONFIG_FILE_NAME)
    return paths


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the first available YAML config file.

    Args:
        path: Explicit config file; when omitted the default locations are used.

    Returns:
        Parsed mapping, or an empty dict when no usable file exists.
    """
    import yaml  # pylint: disable=import-outside-toplevel

    candidates = [Path(path)] if path else _default_config_paths()
    for candidate in candidates:
        if not candidate.is_file():
            continue
        try:
            with open(candidate, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            logging.getLogger(__name__).warning(
                "Ignoring unreadable config %s: %s", candidate, exc
            )
            return {}
        if isinstance(data, dict):
            return data
        return {}
    return {}
