from __future__ import annotations

import argparse
from pathlib import Path

from rich.table import Table

from digitalme.cli.context import CLIContext
from digitalme.core.errors import ValidationError
from digitalme.infrastructure.bagit.codec import load_descriptor, open_bag_file
from digitalme.infrastructure.bagit.validator import validate_bag


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("validate", help="Check a SIP bag's structure and checksums without ingesting it")
    parser.add_argument("path", type=Path)
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    path = args.path.expanduser().resolve()
    if not path.is_file():
        raise ValidationError(f"Bag not found: {path}")

    with open_bag_file(path) as bag:
        report = validate_bag(bag)
        descriptor = load_descriptor(bag)

    table = Table(title=f"Bag {path.name}")
    table.add_column("File", overflow="fold")
    table.add_column("Kind")
    table.add_column("Status")
    for name in report.payload_verified:
        table.add_row(name, "payload", "[green]ok[/green]")
    for name in report.tags_verified:
        table.add_row(name, "tag", "[green]ok[/green]")
    for name in report.tags_skipped:
        table.add_row(name, "tag", "[yellow]skipped (descriptor alias)[/yellow]")

    ctx.console.print(table)
    ctx.console.print(
        f"Descriptor {descriptor.location}: {descriptor.title or 'untitled'} "
        f"({descriptor.resource_type or 'unknown'}), {len(descriptor.files)} file(s)"
    )
    return 0
