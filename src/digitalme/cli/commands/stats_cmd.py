from __future__ import annotations

import argparse

from rich.table import Table

from digitalme.application.services.statistics_service import StatisticsService
from digitalme.cli.commands.users_cmd import require_admin
from digitalme.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("stats", help="Show archive usage statistics (admin only)")
    parser.add_argument("--user", required=True, help="Admin username")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    ctx.require_initialized()
    require_admin(ctx, args.user)
    stats = StatisticsService(ctx.user_repo(), ctx.resource_repo()).usage_statistics()

    table = Table(title="Archive usage")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    table.add_row("Users", str(stats.users_total))
    for level, count in sorted(stats.users_by_level.items()):
        table.add_row(f"  level {level}", str(count))
    table.add_row("Resources", str(stats.resources_total))
    table.add_row("  public", str(stats.resources_public))
    table.add_row("  private", str(stats.resources_private))
    for resource_type, count in sorted(stats.resources_by_type.items()):
        table.add_row(f"  type {resource_type}", str(count))

    ctx.console.print(table)
    return 0
