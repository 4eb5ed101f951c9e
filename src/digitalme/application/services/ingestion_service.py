from __future__ import annotations

import logging
import mimetypes
from pathlib import Path

from digitalme.core.errors import PermissionDeniedError, ResourceIngestError, ValidationError
from digitalme.core.files import safe_basename
from digitalme.core.hashing import compute_file_digest
from digitalme.core.ids import new_uuid
from digitalme.core.time import normalize_iso_datetime, now_utc_iso
from digitalme.domain.models.resource import Resource, ResourceFile
from digitalme.domain.models.user import INGEST_LEVELS
from digitalme.infrastructure.archive.store import FileStore, StagedWrites
from digitalme.infrastructure.bagit.codec import (
    BagArchive,
    BagDescriptor,
    DescriptorFile,
    load_descriptor,
    open_bag,
)
from digitalme.infrastructure.bagit.validator import validate_bag
from digitalme.infrastructure.db.repos.resource_repo import ResourceRepo

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "untitled resource"
DEFAULT_RESOURCE_TYPE = "unknown"
DEFAULT_MIMETYPE = "application/octet-stream"


class IngestionService:
    def __init__(self, resource_repo: ResourceRepo, file_store: FileStore) -> None:
        self.resource_repo = resource_repo
        self.file_store = file_store

    def ingest_bag(self, bag_path: Path, owner_id: str | None, owner_level: str | None) -> Resource:
        self._check_preconditions(owner_id, owner_level)
        path = bag_path.expanduser().resolve()
        if not path.exists() or not path.is_file():
            raise ResourceIngestError(f"SIP file not found: {path}")
        return self.ingest_bag_bytes(path.read_bytes(), owner_id, owner_level)

    def ingest_bag_bytes(self, data: bytes, owner_id: str | None, owner_level: str | None) -> Resource:
        """Validate a zipped SIP and store it as a new resource owned by ``owner_id``.

        Nothing is written before the bag passes validation. Once the resource directory
        exists, any failure removes the files written so far along with the directory.
        """
        self._check_preconditions(owner_id, owner_level)
        owner = str(owner_id).strip()

        with open_bag(data) as bag:
            validate_bag(bag)
            descriptor = load_descriptor(bag)
            creation_date = self._creation_date(descriptor)

            resource_id = new_uuid()
            try:
                with self.file_store.staging(resource_id) as staged:
                    files = [self._extract_file(bag, entry, staged) for entry in descriptor.files]
                    resource = self._build_resource(resource_id, descriptor, owner, files, creation_date)
                    self.resource_repo.insert(resource)
            except Exception as exc:
                logger.error("Ingesting resource %s failed: %s", resource_id, exc)
                raise

        logger.info("Resource %s ingested by user %s (%d files)", resource.id, owner, len(resource.files))
        return resource

    @staticmethod
    def _creation_date(descriptor: BagDescriptor) -> str | None:
        """Normalized creationDate; None when the descriptor has none. Unparseable dates are rejected."""
        if descriptor.creation_date is None:
            return None
        parsed = normalize_iso_datetime(descriptor.creation_date)
        if parsed is None:
            raise ResourceIngestError(
                f"SIP manifest creationDate is not an ISO 8601 date: {descriptor.creation_date!r}"
            )
        return parsed

    @staticmethod
    def _check_preconditions(owner_id: str | None, owner_level: str | None) -> None:
        if owner_level not in INGEST_LEVELS:
            raise PermissionDeniedError("FORBIDDEN: You do not have permission to create resources.")
        if not owner_id or not str(owner_id).strip():
            raise ValidationError("ownerID is required to ingest a resource.")

    def _extract_file(self, bag: BagArchive, entry: DescriptorFile, staged: StagedWrites) -> ResourceFile:
        content = bag.read(entry.path_in_bag)
        if content is None:
            raise ResourceIngestError(
                f'File "{entry.path_in_bag}" (original name: "{entry.original_name}") '
                "listed in SIP manifest not found in ZIP."
            )

        storage_name = f"{new_uuid()}-{safe_basename(entry.original_name)}"
        written = staged.write(storage_name, content)

        actual_checksum = compute_file_digest(written)
        if entry.checksum and entry.checksum != actual_checksum:
            logger.warning(
                "Checksum mismatch for %s. manifest: %s, actual: %s. Using actual checksum.",
                entry.original_name,
                entry.checksum,
                actual_checksum,
            )

        mimetype = entry.mimetype or mimetypes.guess_type(entry.original_name)[0] or DEFAULT_MIMETYPE
        return ResourceFile(
            original_name=entry.original_name,
            storage_name=storage_name,
            path=self.file_store.relpath_for(written),
            mimetype=mimetype,
            size=written.stat().st_size,
            checksum=actual_checksum,
        )

    @staticmethod
    def _build_resource(
        resource_id: str,
        descriptor: BagDescriptor,
        owner_id: str,
        files: list[ResourceFile],
        creation_date: str | None,
    ) -> Resource:
        now = now_utc_iso()
        return Resource(
            id=resource_id,
            title=descriptor.title or DEFAULT_TITLE,
            resource_type=descriptor.resource_type or DEFAULT_RESOURCE_TYPE,
            creation_date=creation_date or now,
            submission_date=now,
            producer=descriptor.producer,
            owner_id=owner_id,
            is_public=bool(descriptor.is_public),
            description=descriptor.description,
            tags=list(descriptor.tags),
            custom_fields=dict(descriptor.custom_fields),
            files=files,
        )
