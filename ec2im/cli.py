"""Command-line interface for ec2im."""

from __future__ import annotations

import argparse
import configparser
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import run_get, run_poll
from .config import load_config
from .envelope import TimestampFormat
from .logging import configure_logging
from .version import __version__

LOGGER = logging.getLogger(__name__)


def _metadata_path(value: str) -> str:
    if not value.strip():
        raise argparse.ArgumentTypeError("metadata path cannot be empty")
    return value


def _interval_ms(value: str) -> int:
    try:
        interval = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid interval: {value!r}") from None
    if not constants.MIN_POLL_INTERVAL_MS <= interval <= constants.MAX_POLL_INTERVAL_MS:
        raise argparse.ArgumentTypeError(
            f"interval must be between {constants.MIN_POLL_INTERVAL_MS} and "
            f"{constants.MAX_POLL_INTERVAL_MS} ms"
        )
    return interval


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME, description="EC2 Instance Metadata CLI"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the configured log level (logs go to stderr)",
    )
    parser.add_argument(
        "-t",
        "--timestamp-format",
        dest="global_timestamp_format",
        choices=[item.value for item in TimestampFormat],
        default=None,
        help="Timestamp format, also accepted after the subcommand",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    output_options = argparse.ArgumentParser(add_help=False)
    output_options.add_argument(
        "-t",
        "--timestamp-format",
        choices=[item.value for item in TimestampFormat],
        default=None,
        help="Timestamp format for emitted records (default: from config, else iso)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    get_parser = subparsers.add_parser(
        "get", parents=[output_options], help="Get instance metadata once"
    )
    get_parser.add_argument("path", type=_metadata_path, help="e.g. meta-data/instance-id")

    poll_parser = subparsers.add_parser(
        "poll", parents=[output_options], help="Get instance metadata periodically"
    )
    poll_parser.add_argument("path", type=_metadata_path, help="e.g. meta-data/instance-id")
    poll_parser.add_argument(
        "-i",
        "--interval",
        type=_interval_ms,
        default=None,
        help=(
            f"Milliseconds between polls, {constants.MIN_POLL_INTERVAL_MS}-"
            f"{constants.MAX_POLL_INTERVAL_MS} (default: {constants.DEFAULT_POLL_INTERVAL_MS})"
        ),
    )

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (configparser.Error, ValueError) as exc:
        configure_logging()
        LOGGER.error("Invalid configuration in %s: %s", args.config, exc)
        return 1

    configure_logging(
        args.log_level or config.logging.level,
        log_path=config.logging.path,
        log_network=config.logging.log_network,
    )

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    # The subcommand option wins over the one given before the subcommand.
    fmt_value = args.timestamp_format or args.global_timestamp_format
    fmt = (
        TimestampFormat.parse(fmt_value)
        if fmt_value
        else config.output.timestamp_format
    )

    if args.command == "get":
        run_get(config, args.path, fmt)
        return 0

    if args.command == "poll":
        interval = args.interval if args.interval is not None else config.poll.interval_ms
        run_poll(config, args.path, interval, fmt)
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
