from __future__ import annotations

import argparse
import json
import mimetypes
from pathlib import Path

from digitalme.cli.context import CLIContext
from digitalme.core.errors import ValidationError
from digitalme.core.ids import new_uuid
from digitalme.core.time import now_utc_iso
from digitalme.infrastructure.bagit.codec import BagInfo, PayloadFile, build_bag
from digitalme.infrastructure.bagit.manifest import SIP_DESCRIPTOR, SIP_DESCRIPTOR_ALT


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("pack", help="Package local files into a SIP bag ready for ingestion")
    parser.add_argument("paths", nargs="+", help="Payload files to include under data/")
    parser.add_argument("-o", "--output", type=Path, required=True, help="Destination .zip path")
    parser.add_argument("--title", required=True)
    parser.add_argument("--type", dest="resource_type", required=True, help="Resource type, e.g. photo")
    parser.add_argument("--creation-date", help="ISO date the original artifact was created")
    parser.add_argument("--producer")
    parser.add_argument("--description")
    parser.add_argument("--public", action="store_true")
    parser.add_argument("--tag", dest="tags", action="append", default=[])
    parser.add_argument(
        "--field",
        dest="fields",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Custom field; VALUE is read as JSON when possible (numbers, booleans)",
    )
    parser.add_argument(
        "--metadata-dir",
        action="store_true",
        help=f"Store the descriptor as {SIP_DESCRIPTOR_ALT} instead of {SIP_DESCRIPTOR}",
    )
    parser.set_defaults(handler=run)


def parse_field(raw: str) -> tuple[str, object]:
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise ValidationError(f"Custom field must look like KEY=VALUE: {raw}")
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    return key.strip(), parsed


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    payload: list[PayloadFile] = []
    for raw_path in args.paths:
        path = Path(raw_path).expanduser().resolve()
        if not path.is_file():
            raise ValidationError(f"Payload file not found: {path}")
        payload.append(
            PayloadFile(
                original_name=path.name,
                data=path.read_bytes(),
                mimetype=mimetypes.guess_type(path.name)[0] or "application/octet-stream",
            )
        )

    metadata = {
        "title": args.title,
        "resourceType": args.resource_type,
        "creationDate": args.creation_date or now_utc_iso(),
        "producer": args.producer,
        "isPublic": bool(args.public),
        "description": args.description,
        "tags": list(args.tags),
        "customFields": dict(parse_field(raw) for raw in args.fields),
    }
    built = build_bag(
        payload,
        metadata=metadata,
        descriptor_name=SIP_DESCRIPTOR_ALT if args.metadata_dir else SIP_DESCRIPTOR,
        bag_info=BagInfo(
            source_organization=args.producer or "unknown producer",
            external_identifier=new_uuid(),
        ),
    )

    output = args.output.expanduser().resolve()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(built.data)
    ctx.console.print(f"[green]Packed[/green] {len(payload)} file(s) into {output}")
    return 0
