from __future__ import annotations

import argparse
from pathlib import Path

from digitalme.application.services.export_service import ExportService
from digitalme.cli.context import CLIContext
from digitalme.core.errors import ResourceNotFoundError


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("export", help="Rebuild a DIP bag for a stored resource")
    parser.add_argument("resource_id")
    parser.add_argument("-o", "--output-dir", type=Path, default=Path.cwd())
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    ctx.require_initialized()
    service = ExportService(ctx.resource_repo(), ctx.file_store())
    artifact = service.export_resource(args.resource_id)
    if artifact is None:
        raise ResourceNotFoundError(f"Resource not found: {args.resource_id}")

    output_dir = args.output_dir.expanduser().resolve()
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / artifact.filename
    target.write_bytes(artifact.data)

    for name in artifact.skipped_files:
        ctx.console.print(f"[yellow]Skipped unreadable file[/yellow] {name}")
    ctx.console.print(f"[green]Exported[/green] {target}")
    return 0
