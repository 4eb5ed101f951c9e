from __future__ import annotations

import io
import json
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Iterable

from digitalme.core.errors import BagValidationError, ResourceIngestError
from digitalme.core.files import safe_basename, sanitize_download_name
from digitalme.core.hashing import compute_bytes_digest
from digitalme.core.time import today_utc_date
from digitalme.domain.models.resource import CustomFieldValue
from digitalme.infrastructure.bagit.manifest import (
    BAG_INFO,
    BAGIT_DECLARATION,
    BAGIT_TXT,
    PAYLOAD_DIR,
    PAYLOAD_MANIFEST,
    SIP_DESCRIPTOR,
    SIP_DESCRIPTOR_ALT,
    TAG_MANIFEST,
    ManifestEntry,
    render_manifest,
)

DEFAULT_SOFTWARE_AGENT = "Digital Me v0.1"


class BagArchive:
    """Read-only view over the entries of a zipped bag."""

    def __init__(self, zf: zipfile.ZipFile) -> None:
        self._zip = zf
        self._entries = {info.filename: info for info in zf.infolist()}

    @property
    def names(self) -> list[str]:
        return list(self._entries)

    def has_file(self, name: str) -> bool:
        info = self._entries.get(name)
        return info is not None and not info.is_dir()

    def has_dir(self, prefix: str) -> bool:
        info = self._entries.get(prefix)
        if info is not None and info.is_dir():
            return True
        return any(
            name.startswith(prefix) and not entry.is_dir()
            for name, entry in self._entries.items()
        )

    def read(self, name: str) -> bytes | None:
        if not self.has_file(name):
            return None
        return self._zip.read(self._entries[name])

    def read_text(self, name: str) -> str | None:
        data = self.read(name)
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise BagValidationError(f'BagIt validation failed: "{name}" is not UTF-8 text') from exc

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "BagArchive":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_bag(data: bytes) -> BagArchive:
    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise BagValidationError(f"BagIt validation failed: upload is not a readable ZIP archive ({exc})") from exc
    return BagArchive(zf)


def open_bag_file(path: Path) -> BagArchive:
    return open_bag(path.read_bytes())


@dataclass(slots=True)
class DescriptorFile:
    path_in_bag: str
    original_name: str
    mimetype: str | None
    size: int | None
    checksum: str | None


@dataclass(slots=True)
class BagDescriptor:
    location: str
    title: str | None
    resource_type: str | None
    creation_date: str | None
    submission_date: str | None
    producer: str | None
    owner: str | None
    is_public: bool | None
    description: str | None
    tags: list[str] = field(default_factory=list)
    custom_fields: dict[str, CustomFieldValue] = field(default_factory=dict)
    files: list[DescriptorFile] = field(default_factory=list)


def find_descriptor_path(bag: BagArchive) -> str | None:
    for candidate in (SIP_DESCRIPTOR, SIP_DESCRIPTOR_ALT):
        if bag.has_file(candidate):
            return candidate
    return None


def load_descriptor(bag: BagArchive) -> BagDescriptor:
    location = find_descriptor_path(bag)
    if location is None:
        raise ResourceIngestError(
            f"SIP manifest file ({SIP_DESCRIPTOR} or {SIP_DESCRIPTOR_ALT}) not found in the ZIP."
        )
    try:
        payload = json.loads(bag.read_text(location) or "")
    except json.JSONDecodeError as exc:
        raise ResourceIngestError(f"SIP manifest {location} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ResourceIngestError(f"SIP manifest {location} must contain a JSON object.")
    return parse_descriptor(payload, location=location)


def parse_descriptor(payload: dict[str, Any], location: str = SIP_DESCRIPTOR) -> BagDescriptor:
    raw_files = payload.get("files")
    if raw_files is None:
        raw_files = []
    if not isinstance(raw_files, list):
        raise ResourceIngestError("SIP manifest 'files' must be a list.")

    files: list[DescriptorFile] = []
    for idx, item in enumerate(raw_files):
        if not isinstance(item, dict):
            raise ResourceIngestError(f"SIP manifest file entry #{idx} must be an object.")
        path_in_bag = _opt_str(item.get("pathInZip")) or _opt_str(item.get("pathInBundle"))
        if not path_in_bag:
            raise ResourceIngestError(f"SIP manifest file entry #{idx} has no pathInZip/pathInBundle.")
        files.append(
            DescriptorFile(
                path_in_bag=path_in_bag,
                original_name=_opt_str(item.get("originalName")) or PurePosixPath(path_in_bag).name,
                mimetype=_opt_str(item.get("mimetype")),
                size=_opt_int(item.get("size")),
                checksum=_opt_str(item.get("checksum")),
            )
        )

    return BagDescriptor(
        location=location,
        title=_opt_str(payload.get("title")),
        resource_type=_opt_str(payload.get("resourceType")),
        creation_date=_opt_str(payload.get("creationDate")),
        submission_date=_opt_str(payload.get("submissionDate")),
        producer=_opt_str(payload.get("producer")),
        owner=_opt_str(payload.get("ownerID")) or _opt_str(payload.get("owner-username")),
        is_public=_opt_bool(payload.get("isPublic")),
        description=_opt_str(payload.get("description")),
        tags=_str_list(payload.get("tags")),
        custom_fields=normalize_custom_fields(payload.get("customFields")),
        files=files,
    )


def normalize_custom_fields(value: object) -> dict[str, CustomFieldValue]:
    """Keep scalar values as-is; nested structures are carried as JSON text."""
    if not isinstance(value, dict):
        return {}
    fields: dict[str, CustomFieldValue] = {}
    for key, raw in value.items():
        if isinstance(raw, (str, int, float, bool)) or raw is None:
            fields[str(key)] = raw
        else:
            fields[str(key)] = json.dumps(raw, ensure_ascii=False, sort_keys=True)
    return fields


@dataclass(slots=True)
class PayloadFile:
    original_name: str
    data: bytes
    mimetype: str = "application/octet-stream"


@dataclass(slots=True)
class BagInfo:
    source_organization: str
    external_identifier: str
    software_agent: str = DEFAULT_SOFTWARE_AGENT
    bagging_date: str | None = None

    def render(self, payload_bytes: int, payload_count: int) -> str:
        return "\n".join(
            [
                f"Source-Organization: {self.source_organization}",
                f"Bagging-Date: {self.bagging_date or today_utc_date()}",
                f"Payload-Oxum: {payload_bytes}.{payload_count}",
                f"Bag-Software-Agent: {self.software_agent}",
                f"External-Identifier: {self.external_identifier}",
            ]
        )


@dataclass(slots=True)
class BuiltBag:
    data: bytes
    descriptor: dict[str, Any]
    payload_manifest: list[ManifestEntry]
    tag_manifest: list[ManifestEntry]


def build_bag(
    payload: Iterable[PayloadFile],
    metadata: dict[str, Any],
    descriptor_name: str,
    bag_info: BagInfo,
) -> BuiltBag:
    """Assemble a zipped bag: payload under data/, descriptor, manifests and tag manifest."""
    descriptor: dict[str, Any] = dict(metadata)
    descriptor["files"] = []
    payload_entries: list[ManifestEntry] = []
    contents: list[tuple[str, bytes]] = []
    used_names: set[str] = set()
    payload_bytes = 0

    for item in payload:
        name = _unique_name(safe_basename(item.original_name), used_names)
        bag_path = f"{PAYLOAD_DIR}{name}"
        digest = compute_bytes_digest(item.data)
        contents.append((bag_path, item.data))
        payload_entries.append(ManifestEntry(digest=digest, path=bag_path))
        payload_bytes += len(item.data)
        descriptor["files"].append(
            {
                "pathInZip": bag_path,
                "originalName": item.original_name,
                "mimetype": item.mimetype,
                "size": len(item.data),
                "checksum": digest,
            }
        )

    tag_files: list[tuple[str, bytes]] = [
        (BAGIT_TXT, BAGIT_DECLARATION.encode("utf-8")),
        (PAYLOAD_MANIFEST, render_manifest(payload_entries).encode("utf-8")),
        (BAG_INFO, bag_info.render(payload_bytes, len(payload_entries)).encode("utf-8")),
        (descriptor_name, json.dumps(descriptor, indent=2, ensure_ascii=False).encode("utf-8")),
    ]
    tag_entries = [
        ManifestEntry(digest=compute_bytes_digest(data), path=name) for name, data in tag_files
    ]

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(_directory_entry(PAYLOAD_DIR), b"")
        for name, data in contents:
            zf.writestr(name, data)
        for name, data in tag_files:
            zf.writestr(name, data)
        zf.writestr(TAG_MANIFEST, render_manifest(tag_entries).encode("utf-8"))

    return BuiltBag(
        data=buffer.getvalue(),
        descriptor=descriptor,
        payload_manifest=payload_entries,
        tag_manifest=tag_entries,
    )


def dip_filename(title: str | None, resource_id: str) -> str:
    sanitized = sanitize_download_name(title or "")
    return f"DIP_{sanitized or resource_id}.zip"


def _directory_entry(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name)
    info.external_attr = (0o40755 << 16) | 0x10
    return info


def _unique_name(name: str, used: set[str]) -> str:
    candidate = name
    counter = 2
    while candidate in used:
        path = PurePosixPath(name)
        candidate = f"{path.stem} ({counter}){path.suffix}"
        counter += 1
    used.add(candidate)
    return candidate


def _opt_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _opt_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _opt_bool(value: object) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return None


def _str_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]
