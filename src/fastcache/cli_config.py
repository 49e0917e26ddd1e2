"""Runtime configuration overrides for the CLI.

Settings are layered onto ``Constants`` from lowest to highest precedence:
YAML config file, environment variables, command-line flags.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from fastcache.constants import Constants, _load_yaml_config

logger = logging.getLogger(__name__)

# YAML key -> Constants attribute, with the type each value is coerced to.
_CONFIG_KEYS = {
    "cache_dir": ("CACHE_DIR", str),
    "registry": ("REGISTRY_URL_NPM", str),
    "concurrency": ("INSTALL_CONCURRENCY", int),
    "request_timeout": ("REQUEST_TIMEOUT", int),
    "unused_days": ("DEFAULT_UNUSED_DAYS", int),
}

_ENV_KEYS = {
    Constants.ENV_CACHE_DIR: "cache_dir",
    Constants.ENV_REGISTRY: "registry",
    Constants.ENV_CONCURRENCY: "concurrency",
}

_CLI_KEYS = {
    "CACHE_DIR": "cache_dir",
    "REGISTRY": "registry",
    "CONCURRENCY": "concurrency",
}


def _set(key: str, value: Any, source: str) -> None:
    attr, cast = _CONFIG_KEYS[key]
    try:
        coerced = cast(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s value for %s: %r", source, key, value)
        return
    if cast is int and coerced < 1:
        logger.warning("Ignoring non-positive %s value for %s: %r", source, key, value)
        return
    if key == "cache_dir":
        coerced = os.path.expanduser(coerced)
    setattr(Constants, attr, coerced)
    logger.debug("Config %s=%r (from %s)", key, coerced, source)


def apply_yaml_config(config: Dict[str, Any]) -> None:
    """Apply recognised keys from a parsed YAML mapping."""
    for key, value in config.items():
        if key not in _CONFIG_KEYS:
            logger.warning("Unknown config key: %s", key)
            continue
        if value is not None:
            _set(key, value, "config file")


def apply_env_overrides(environ: Optional[Dict[str, str]] = None) -> None:
    env = os.environ if environ is None else environ
    for var, key in _ENV_KEYS.items():
        value = env.get(var)
        if value:
            _set(key, value, var)


def apply_config_overrides(args) -> None:
    """Layer YAML config, environment and CLI flags onto ``Constants``."""
    apply_yaml_config(_load_yaml_config(getattr(args, "CONFIG", None)))
    apply_env_overrides()
    for dest, key in _CLI_KEYS.items():
        value = getattr(args, dest, None)
        if value is not None:
            _set(key, value, "command line")
