"""Command-line entrypoint for fastcache."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from fastcache.args import parse_args
from fastcache.cli_config import apply_config_overrides
from fastcache.common.fs import format_bytes
from fastcache.common.logging_utils import configure_logging, extra_context, is_debug_enabled
from fastcache.constants import Constants, ExitCodes
from fastcache.errors import (
    DownloadError,
    LinkError,
    ManifestError,
    RegistryError,
    ResolutionError,
    StoreError,
)
from fastcache.installer import FastCache, InstallSummary
from fastcache.registry.client import RegistryClient

logger = logging.getLogger(__name__)


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments."""
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging()

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        ))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _print_install(summary: InstallSummary) -> None:
    if not summary.installed:
        print("Nothing to install.")
        return
    print(f"Installed {summary.installed} packages ({summary.from_cache} from cache)")


async def _cmd_install(cache: FastCache, args: Any) -> None:
    _print_install(await cache.install(getattr(args, "PROJECT_DIR", None)))


async def _cmd_add(cache: FastCache, args: Any) -> None:
    _print_install(await cache.add(args.packages, getattr(args, "PROJECT_DIR", None)))


async def _cmd_stats(cache: FastCache, args: Any) -> None:
    store_stats, report = await cache.stats()
    print("Cache statistics")
    print(f"  Location:          {store_stats.cache_dir}")
    print(f"  Packages:          {store_stats.package_count}")
    print(f"  Total size:        {store_stats.total_size_formatted}")
    print(f"  Installs:          {report.total_installs}")
    print(f"  Cache hits:        {report.cache_hits}")
    print(f"  Cache misses:      {report.cache_misses}")
    print(f"  Hit rate:          {report.hit_rate}")
    print(f"  Time saved:        {report.time_saved}")
    print(f"  Bandwidth saved:   {report.bandwidth_saved}")
    print(f"  Total downloaded:  {report.total_downloaded}")


async def _cmd_clean(cache: FastCache, args: Any) -> None:
    days = args.DAYS if args.DAYS is not None else Constants.DEFAULT_UNUSED_DAYS
    report = await cache.clean(days, dry_run=args.DRY_RUN)
    if not report.candidates:
        print(f"No packages unused for {days} days.")
        return
    if report.dry_run:
        print(f"Would remove {len(report.candidates)} packages "
              f"({format_bytes(report.total_size)}):")
        for pkg in report.candidates:
            print(f"  {pkg.spec}  last used {pkg.last_used}")
        return
    freed = sum(p.size for p in report.candidates if p.spec in report.deleted)
    print(f"Removed {len(report.deleted)} packages, freed {format_bytes(freed)}")
    for spec in report.partial:
        print(f"  Partially removed: {spec}")
    for spec in report.skipped:
        print(f"  Kept (used since scan): {spec}")


async def _cmd_list(cache: FastCache, args: Any) -> None:
    packages = await cache.list_packages()
    if not packages:
        print("Store is empty.")
        return
    for pkg in packages:
        print(f"  {pkg.slot}  {format_bytes(pkg.size)}")


_COMMANDS: Dict[str, Callable[[FastCache, Any], Awaitable[None]]] = {
    "install": _cmd_install,
    "add": _cmd_add,
    "stats": _cmd_stats,
    "clean": _cmd_clean,
    "list": _cmd_list,
}


async def run_command(args: Any) -> None:
    """Run the selected subcommand against a cache built from ``Constants``."""
    registry = RegistryClient(Constants.REGISTRY_URL_NPM, timeout=Constants.REQUEST_TIMEOUT)
    async with FastCache(
        Constants.CACHE_DIR,
        concurrency=Constants.INSTALL_CONCURRENCY,
        registry=registry,
    ) as cache:
        await _COMMANDS[args.command](cache, args)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)
    apply_config_overrides(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.command),
        )

    try:
        asyncio.run(run_command(args))
    except (ManifestError, StoreError, LinkError) as exc:
        logger.error("%s", exc)
        sys.exit(ExitCodes.FILE_ERROR.value)
    except (RegistryError, DownloadError) as exc:
        logger.error("%s", exc)
        sys.exit(ExitCodes.CONNECTION_ERROR.value)
    except ResolutionError as exc:
        logger.error("%s", exc)
        sys.exit(ExitCodes.RESOLUTION_ERROR.value)
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
