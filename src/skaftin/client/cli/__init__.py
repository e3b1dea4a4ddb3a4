from __future__ import annotations

import argparse
import logging
import sys
from types import ModuleType

from skaftin.client import DEFAULT_ENV_CONFIG_FILE_PATH
from skaftin.client.cli import call, login, logout, token

_SUBCOMMANDS: list[ModuleType] = [login, logout, token, call]

CLI_STORAGE_MODES = ["auto", "keyring", "file"]


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skaftin",
        description="Skaftin API client CLI",
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=False, help="Enable debug logging")
    parser.add_argument("--env", dest="env_name", help="Use a specific environment from the config file")
    parser.add_argument(
        "--env-config-file-path",
        default=str(DEFAULT_ENV_CONFIG_FILE_PATH),
        help=f"Environment config file path (default: {DEFAULT_ENV_CONFIG_FILE_PATH})",
    )
    parser.add_argument(
        "--storage",
        choices=CLI_STORAGE_MODES,
        default="auto",
        help="Where the session token is kept between invocations (default: auto, keyring if available)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for subcommand in _SUBCOMMANDS:
        subcommand.register_parser(subparsers)

    return parser


def _configure_logging(verbose: bool = False) -> None:
    package_logger = logging.getLogger("skaftin.client")
    # main() can run repeatedly in one process
    if not any(type(h) is logging.StreamHandler for h in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
        package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def main(args: list[str] | None = None) -> int:
    parser = create_parser()
    parsed = parser.parse_args(args)
    _configure_logging(verbose=parsed.verbose)

    for subcommand in _SUBCOMMANDS:
        if parsed.command == subcommand.COMMAND:
            return subcommand.run(parsed)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
