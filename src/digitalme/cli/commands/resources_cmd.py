from __future__ import annotations

import argparse

from rich.table import Table

from digitalme.application.services.resource_service import LIST_SCOPES, ResourceService
from digitalme.cli.commands.users_cmd import resolve_user
from digitalme.cli.context import CLIContext
from digitalme.core.errors import PermissionDeniedError, ValidationError


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("resources", help="List archived resources")
    parser.add_argument("--limit", type=int, default=50)
    parser.add_argument("--scope", choices=LIST_SCOPES, default="public")
    parser.add_argument("--user", help="Username for the profile and admin scopes")
    parser.add_argument("--type", dest="resource_type")
    parser.add_argument(
        "--field",
        dest="fields",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Custom field filter; suffix KEY with _gte/_lte/_gt/_lt for numeric ranges",
    )
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    ctx.require_initialized()
    requesting_user_id = None
    if args.scope != "public":
        if not args.user:
            raise ValidationError(f"--user is required for the {args.scope} scope")
        user = resolve_user(ctx, args.user)
        if args.scope == "admin" and not user.is_admin:
            raise PermissionDeniedError("FORBIDDEN: Admin access required.")
        requesting_user_id = user.id

    service = ResourceService(ctx.resource_repo(), ctx.file_store())
    resources = service.list_resources(
        scope=args.scope,
        requesting_user_id=requesting_user_id,
        resource_type=args.resource_type,
        custom_fields={key.strip(): value for key, _, value in (raw.partition("=") for raw in args.fields)},
        limit=args.limit,
    )

    table = Table(title=f"Resources ({len(resources)})")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Type")
    table.add_column("Owner")
    table.add_column("Public")
    table.add_column("Files")
    table.add_column("Submitted")

    for r in resources:
        table.add_row(
            r.id,
            r.title,
            r.resource_type,
            r.owner_username or r.owner_id,
            "yes" if r.is_public else "no",
            str(len(r.files)),
            r.submission_date,
        )

    ctx.console.print(table)
    return 0
