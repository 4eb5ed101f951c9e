from __future__ import annotations

import argparse

from rich.table import Table

from digitalme.application.services.user_service import UserService
from digitalme.cli.context import CLIContext
from digitalme.core.errors import AuthenticationError, PermissionDeniedError
from digitalme.domain.models.user import USER_LEVELS, User


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("users", help="Manage archive users")
    users_sub = parser.add_subparsers(dest="users_command", required=True)

    add = users_sub.add_parser("add", help="Register a user")
    add.add_argument("username")
    add.add_argument("--level", choices=USER_LEVELS, default="producer")
    add.set_defaults(handler=run_add)

    ls = users_sub.add_parser("list", help="List registered users")
    ls.add_argument("--limit", type=int, default=100)
    ls.set_defaults(handler=run_list)

    update = users_sub.add_parser("update", help="Rename a user or change their level (admin only)")
    update.add_argument("username")
    update.add_argument("--rename", help="New username")
    update.add_argument("--level", choices=USER_LEVELS)
    update.add_argument("--user", required=True, help="Admin username performing the change")
    update.set_defaults(handler=run_update)

    delete = users_sub.add_parser("delete", help="Delete a user that owns no resources (admin only)")
    delete.add_argument("username")
    delete.add_argument("--user", required=True, help="Admin username performing the deletion")
    delete.set_defaults(handler=run_delete)


def resolve_user(ctx: CLIContext, username: str) -> User:
    user = UserService(ctx.user_repo()).get_by_username(username)
    if user is None:
        raise AuthenticationError(f"Unknown user: {username}. Register it with 'digitalme users add'.")
    return user


def require_admin(ctx: CLIContext, username: str) -> User:
    user = resolve_user(ctx, username)
    if not user.is_admin:
        raise PermissionDeniedError("FORBIDDEN: Admin access required.")
    return user


def run_add(args: argparse.Namespace, ctx: CLIContext) -> int:
    ctx.require_initialized()
    user = UserService(ctx.user_repo()).register(args.username, level=args.level)
    ctx.console.print(f"[green]Registered[/green] {user.username} ({user.level}) id={user.id}")
    return 0


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    ctx.require_initialized()
    users = UserService(ctx.user_repo()).list_users(limit=args.limit)

    table = Table(title=f"Users ({len(users)})")
    table.add_column("ID")
    table.add_column("Username")
    table.add_column("Level")
    table.add_column("Created")
    for u in users:
        table.add_row(u.id, u.username, u.level, u.created_at)

    ctx.console.print(table)
    return 0


def run_update(args: argparse.Namespace, ctx: CLIContext) -> int:
    ctx.require_initialized()
    require_admin(ctx, args.user)
    target = resolve_user(ctx, args.username)

    changes: dict[str, str] = {}
    if args.rename is not None:
        changes["username"] = args.rename
    if args.level is not None:
        changes["level"] = args.level
    if not changes:
        ctx.console.print("[yellow]Nothing to update[/yellow]: pass --rename and/or --level")
        return 1

    updated = UserService(ctx.user_repo()).update_user(target.id, changes)
    if updated is None:
        raise AuthenticationError(f"Unknown user: {args.username}")
    ctx.console.print(f"[green]Updated[/green] {updated.username} ({updated.level}) id={updated.id}")
    return 0


def run_delete(args: argparse.Namespace, ctx: CLIContext) -> int:
    ctx.require_initialized()
    admin = require_admin(ctx, args.user)
    target = resolve_user(ctx, args.username)

    deleted = UserService(ctx.user_repo()).delete_user(target.id, admin.id)
    if deleted is None:
        raise AuthenticationError(f"Unknown user: {args.username}")
    ctx.console.print(f"[green]Deleted[/green] user {deleted.username} id={deleted.id}")
    return 0
