from __future__ import annotations

from dataclasses import dataclass, field

from digitalme.core.errors import BagValidationError
from digitalme.core.hashing import compute_bytes_digest
from digitalme.infrastructure.bagit.codec import BagArchive
from digitalme.infrastructure.bagit.manifest import (
    BAG_INFO,
    BAGIT_TXT,
    PAYLOAD_DIR,
    PAYLOAD_MANIFEST,
    SIP_DESCRIPTOR,
    SIP_DESCRIPTOR_ALT,
    TAG_MANIFEST,
    parse_manifest,
)

REQUIRED_FILES = (BAGIT_TXT, PAYLOAD_MANIFEST, TAG_MANIFEST, BAG_INFO)
REQUIRED_DIRS = (PAYLOAD_DIR,)

# The descriptor may live at either conventional path; a tag manifest line naming
# the other one is skipped instead of failing.
DESCRIPTOR_ALIASES = {
    SIP_DESCRIPTOR: SIP_DESCRIPTOR_ALT,
    SIP_DESCRIPTOR_ALT: SIP_DESCRIPTOR,
}


@dataclass(slots=True)
class BagValidationReport:
    payload_verified: list[str] = field(default_factory=list)
    tags_verified: list[str] = field(default_factory=list)
    tags_skipped: list[str] = field(default_factory=list)


def validate_bag(bag: BagArchive) -> BagValidationReport:
    """Check structure, then payload checksums, then tag checksums. First failure raises."""
    report = BagValidationReport()
    check_structure(bag)
    report.payload_verified = check_payload_manifest(bag)
    report.tags_verified, report.tags_skipped = check_tag_manifest(bag)
    return report


def check_structure(bag: BagArchive) -> None:
    for name in REQUIRED_FILES:
        if not bag.has_file(name):
            raise BagValidationError(f'BagIt validation failed: missing file "{name}"')
    for name in REQUIRED_DIRS:
        if not bag.has_dir(name):
            raise BagValidationError(f'BagIt validation failed: missing folder or files in "{name}"')


def check_payload_manifest(bag: BagArchive) -> list[str]:
    verified: list[str] = []
    for entry in parse_manifest(bag.read_text(PAYLOAD_MANIFEST) or ""):
        content = bag.read(entry.path)
        if content is None:
            raise BagValidationError(
                f'BagIt validation failed: data file "{entry.path}" listed in {PAYLOAD_MANIFEST} '
                "is missing from ZIP."
            )
        actual = compute_bytes_digest(content)
        if actual != entry.digest:
            raise BagValidationError(
                f'BagIt validation failed: checksum mismatch for "{entry.path}". '
                f"Expected {entry.digest}, got {actual}"
            )
        verified.append(entry.path)
    return verified


def check_tag_manifest(bag: BagArchive) -> tuple[list[str], list[str]]:
    verified: list[str] = []
    skipped: list[str] = []
    for entry in parse_manifest(bag.read_text(TAG_MANIFEST) or ""):
        content = bag.read(entry.path)
        if content is None:
            if entry.path in DESCRIPTOR_ALIASES:
                skipped.append(entry.path)
                continue
            raise BagValidationError(
                f'BagIt validation failed: tag file "{entry.path}" listed in {TAG_MANIFEST} '
                "is missing from ZIP."
            )
        actual = compute_bytes_digest(content)
        if actual != entry.digest:
            raise BagValidationError(
                f'BagIt validation failed: checksum mismatch for tag file "{entry.path}". '
                f"Expected {entry.digest}, got {actual}"
            )
        verified.append(entry.path)
    return verified, skipped
