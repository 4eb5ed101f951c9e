from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from digitalme.core.ids import is_valid_id
from digitalme.core.time import now_utc_iso
from digitalme.domain.models.resource import Resource
from digitalme.infrastructure.archive.store import FileStore
from digitalme.infrastructure.bagit.codec import BagInfo, PayloadFile, build_bag, dip_filename
from digitalme.infrastructure.bagit.manifest import DIP_DESCRIPTOR
from digitalme.infrastructure.db.repos.resource_repo import ResourceRepo

logger = logging.getLogger(__name__)

DIP_SOFTWARE_AGENT = "Digital Me v0.1 (DIP Exporter)"


@dataclass(slots=True)
class DipArtifact:
    filename: str
    data: bytes
    skipped_files: list[str]


class ExportService:
    def __init__(self, resource_repo: ResourceRepo, file_store: FileStore) -> None:
        self.resource_repo = resource_repo
        self.file_store = file_store

    def export_resource(self, resource_id: str) -> DipArtifact | None:
        """Rebuild a DIP for a stored resource, or None when the id is unknown.

        Stored files that can no longer be read are logged and left out of the bag.
        """
        if not is_valid_id(resource_id):
            return None
        resource = self.resource_repo.get_by_id(resource_id)
        if resource is None:
            return None

        payload: list[PayloadFile] = []
        skipped: list[str] = []
        for file_info in resource.files:
            try:
                content = self.file_store.read_bytes(file_info.path)
            except (OSError, ValueError) as exc:
                logger.warning(
                    "Reading file %s for resource %s failed, leaving it out of the DIP: %s",
                    file_info.original_name,
                    resource.id,
                    exc,
                )
                skipped.append(file_info.original_name)
                continue
            payload.append(
                PayloadFile(
                    original_name=file_info.original_name,
                    data=content,
                    mimetype=file_info.mimetype,
                )
            )

        built = build_bag(
            payload,
            metadata=self._dip_metadata(resource),
            descriptor_name=DIP_DESCRIPTOR,
            bag_info=BagInfo(
                source_organization=f"{resource.producer or 'unknown producer'} (exported from Digital Me)",
                external_identifier=resource.id,
                software_agent=DIP_SOFTWARE_AGENT,
            ),
        )
        return DipArtifact(
            filename=dip_filename(resource.title, resource.id),
            data=built.data,
            skipped_files=skipped,
        )

    @staticmethod
    def _dip_metadata(resource: Resource) -> dict[str, Any]:
        return {
            "_id": resource.id,
            "title": resource.title,
            "resourceType": resource.resource_type,
            "creationDate": resource.creation_date or now_utc_iso(),
            "submissionDate": resource.submission_date or now_utc_iso(),
            "producer": resource.producer,
            "ownerID": resource.owner_username or "unknown owner",
            "isPublic": resource.is_public,
            "description": resource.description,
            "tags": list(resource.tags),
            "customFields": dict(resource.custom_fields),
        }
