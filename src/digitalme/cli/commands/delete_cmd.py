from __future__ import annotations

import argparse

from digitalme.application.services.resource_service import ResourceService
from digitalme.cli.commands.users_cmd import resolve_user
from digitalme.cli.context import CLIContext
from digitalme.core.errors import ResourceNotFoundError


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("delete", help="Delete a resource and its stored files")
    parser.add_argument("resource_id")
    parser.add_argument("--user", required=True, help="Username performing the deletion (owner or admin)")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    ctx.require_initialized()
    user = resolve_user(ctx, args.user)
    service = ResourceService(ctx.resource_repo(), ctx.file_store())
    result = service.delete_resource(args.resource_id, user.id, user.level)
    if result is None:
        raise ResourceNotFoundError(f"Resource not found: {args.resource_id}")
    ctx.console.print(f"[green]Deleted[/green] {result.resource_id}")
    return 0
