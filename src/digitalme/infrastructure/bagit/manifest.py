from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

BAGIT_TXT = "bagit.txt"
PAYLOAD_MANIFEST = "manifest-sha256.txt"
TAG_MANIFEST = "tagmanifest-sha256.txt"
BAG_INFO = "bag-info.txt"
PAYLOAD_DIR = "data/"

SIP_DESCRIPTOR = "manifesto-SIP.json"
SIP_DESCRIPTOR_ALT = "metadata/manifesto-SIP.json"
DIP_DESCRIPTOR = "manifesto-DIP.json"

BAGIT_DECLARATION = "BagIt-Version: 0.97\nTag-File-Character-Encoding: UTF-8"

_MANIFEST_LINE_RE = re.compile(r"^([a-f0-9]+)\s+(.+)$")


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    digest: str
    path: str


def parse_manifest(text: str) -> list[ManifestEntry]:
    """Parse ``<digest>  <path>`` lines. Blank and malformed lines are ignored."""
    entries: list[ManifestEntry] = []
    for line in text.strip().splitlines():
        match = _MANIFEST_LINE_RE.match(line.strip())
        if not match:
            continue
        path = match.group(2).strip()
        if not path:
            continue
        entries.append(ManifestEntry(digest=match.group(1), path=path))
    return entries


def render_manifest(entries: Iterable[ManifestEntry]) -> str:
    return "\n".join(f"{entry.digest}  {entry.path}" for entry in entries)
