from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from digitalme.cli.commands import (
    delete_cmd,
    export_cmd,
    ingest_cmd,
    init_cmd,
    pack_cmd,
    resources_cmd,
    stats_cmd,
    users_cmd,
    validate_cmd,
    web_cmd,
)
from digitalme.cli.context import CLIContext
from digitalme.core.config import load_paths
from digitalme.core.errors import DigitalMeError
from digitalme.core.logging import configure_logging

logger = logging.getLogger(__name__)

# Registration order is the order shown in --help.
COMMANDS = (
    init_cmd,
    users_cmd,
    pack_cmd,
    validate_cmd,
    ingest_cmd,
    resources_cmd,
    export_cmd,
    delete_cmd,
    stats_cmd,
    web_cmd,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="digitalme",
        description="Digital Me personal archive: pack, validate and ingest SIP bags, export DIP bags",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Directory holding the .digitalme data folder (default: current working directory)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Explicit data folder; overrides --project-root/.digitalme and DIGITALME_HOME",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for info logs, -vv for debug")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for command in COMMANDS:
        command.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    ctx = CLIContext(paths=load_paths(args.project_root, args.data_dir), console=Console())

    try:
        return args.handler(args, ctx)
    except DigitalMeError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
