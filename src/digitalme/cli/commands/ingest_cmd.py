from __future__ import annotations

import argparse
from pathlib import Path

from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from digitalme.application.services.ingestion_service import IngestionService
from digitalme.cli.commands.users_cmd import resolve_user
from digitalme.cli.context import CLIContext
from digitalme.core.errors import ValidationError


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("ingest", help="Validate SIP bags and store them as resources")
    parser.add_argument("bags", nargs="+", type=Path, help="Zipped SIP bags")
    parser.add_argument("--user", required=True, help="Username that will own the ingested resources")
    parser.add_argument("--stop-on-error", action="store_true", help="Stop at the first bag that fails")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    ctx.require_initialized()
    owner = resolve_user(ctx, args.user)
    service = IngestionService(ctx.resource_repo(), ctx.file_store())

    report = Table(title=f"SIP ingestion for {owner.username}")
    report.add_column("Bag", overflow="fold")
    report.add_column("Outcome")
    report.add_column("Resource id / reason", overflow="fold")

    failed = 0
    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=ctx.console,
    ) as progress:
        task = progress.add_task("Ingesting bags", total=len(args.bags))
        for bag_path in args.bags:
            progress.update(task, description=f"Ingesting {bag_path.name}")
            try:
                resource = service.ingest_bag(bag_path, owner_id=owner.id, owner_level=owner.level)
            except ValidationError as exc:
                failed += 1
                report.add_row(str(bag_path), "[red]rejected[/red]", str(exc))
                if args.stop_on_error:
                    break
            else:
                report.add_row(str(bag_path), "[green]stored[/green]", f"{resource.id} ({len(resource.files)} files)")
            finally:
                progress.advance(task, 1)

    ctx.console.print(report)
    ctx.console.print(f"{report.row_count - failed} stored, {failed} rejected")
    return 1 if failed else 0
