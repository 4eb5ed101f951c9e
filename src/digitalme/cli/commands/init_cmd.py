from __future__ import annotations

import argparse

from rich.table import Table

from digitalme.application.services.project_service import ProjectService
from digitalme.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("init", help="Create the archive data directory, filestore and database")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    result = ProjectService(ctx.paths).init_project()
    created = set(result.paths_created)

    table = Table(title=f"Digital Me archive at {ctx.paths.data_dir}")
    table.add_column("Location", overflow="fold")
    table.add_column("Status")
    for path in (ctx.paths.data_dir, ctx.paths.filestore_dir, ctx.paths.uploads_dir):
        table.add_row(str(path), "[green]created[/green]" if path in created else "[yellow]exists[/yellow]")
    table.add_row(str(result.db_path), "[green]schema ready[/green]")

    ctx.console.print(table)
    return 0
