"""Argument parsing for the fastcache CLI."""

import argparse

from fastcache import __version__


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level parser with one subcommand per action."""
    parser = argparse.ArgumentParser(
        prog="fastcache",
        description="fastcache - install npm packages from a shared local store",
        add_help=True,
    )
    parser.add_argument("--version",
                        action="version",
                        version=f"%(prog)s {__version__}")
    parser.add_argument("--cache-dir",
                        dest="CACHE_DIR",
                        help="Cache directory (default: ~/.fastcache)",
                        action="store",
                        type=str)
    parser.add_argument("--registry",
                        dest="REGISTRY",
                        help="npm registry base URL",
                        action="store",
                        type=str)
    parser.add_argument("--concurrency",
                        dest="CONCURRENCY",
                        help="Maximum packages installed in parallel",
                        action="store",
                        type=int)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to YAML configuration file",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level (default: $FASTCACHE_LOG_LEVEL, then INFO)",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    install = subparsers.add_parser("install", aliases=["i"],
                                    help="Install dependencies from package.json")
    install.add_argument("-d", "--directory",
                         dest="PROJECT_DIR",
                         help="Project directory (default: current directory)",
                         action="store",
                         type=str)
    install.set_defaults(command="install")

    add = subparsers.add_parser("add", help="Add packages to package.json and install")
    add.add_argument("packages",
                     nargs="+",
                     metavar="PACKAGE",
                     help="Package to add, e.g. lodash, lodash@^4.17.0, @scope/pkg@next")
    add.add_argument("-d", "--directory",
                     dest="PROJECT_DIR",
                     help="Project directory (default: current directory)",
                     action="store",
                     type=str)
    add.set_defaults(command="add")

    stats = subparsers.add_parser("stats", help="Show cache statistics")
    stats.set_defaults(command="stats")

    clean = subparsers.add_parser("clean", help="Remove packages unused for a number of days")
    clean.add_argument("--dry-run",
                       dest="DRY_RUN",
                       help="Show what would be removed without deleting",
                       action="store_true")
    clean.add_argument("--days",
                       dest="DAYS",
                       help="Days since last use before a package is removed",
                       action="store",
                       type=int)
    clean.set_defaults(command="clean")

    ls = subparsers.add_parser("list", aliases=["ls"], help="List stored packages")
    ls.set_defaults(command="list")

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
