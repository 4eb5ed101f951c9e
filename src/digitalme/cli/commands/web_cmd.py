from __future__ import annotations

import argparse

from digitalme.cli.context import CLIContext
from digitalme.core.errors import ConfigurationError
from digitalme.web.app import create_app


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("web", help="Serve the archive HTTP API (uploads, listings, DIP downloads)")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--log-level", default="info", choices=("critical", "error", "warning", "info", "debug"))
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise ConfigurationError("uvicorn is required to serve the archive API. Install project dependencies.") from exc

    app = create_app(ctx.paths)
    ctx.console.print(f"[green]Serving[/green] {ctx.paths.data_dir} on http://{args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)
    return 0
