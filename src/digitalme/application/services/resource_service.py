from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from digitalme.core.errors import AuthenticationError, PermissionDeniedError, ValidationError
from digitalme.core.ids import is_valid_id
from digitalme.core.time import normalize_iso_datetime
from digitalme.domain.models.resource import Resource
from digitalme.domain.models.user import User
from digitalme.infrastructure.archive.store import FileStore
from digitalme.infrastructure.bagit.codec import normalize_custom_fields
from digitalme.infrastructure.db.repos.resource_repo import CustomFieldFilter, ResourceRepo

logger = logging.getLogger(__name__)

LIST_SCOPES = ("public", "profile", "admin")
UPDATABLE_FIELDS = (
    "title",
    "resourceType",
    "creationDate",
    "producer",
    "isPublic",
    "description",
    "tags",
    "customFields",
)
_RANGE_SUFFIXES = (("_gte", ">="), ("_lte", "<="), ("_gt", ">"), ("_lt", "<"))


@dataclass(slots=True)
class FileDetails:
    file_path: Path
    original_name: str
    mimetype: str


@dataclass(slots=True)
class DeleteResult:
    resource_id: str
    message: str


def parse_custom_filters(raw: dict[str, Any] | None) -> list[CustomFieldFilter]:
    """Turn ``{"grade_gte": "15", "school": "X"}`` into range/equality filters; empty values are dropped."""
    filters: list[CustomFieldFilter] = []
    for key, value in (raw or {}).items():
        if value is None or str(value).strip() == "":
            continue
        for suffix, op in _RANGE_SUFFIXES:
            if key.endswith(suffix) and len(key) > len(suffix):
                try:
                    number = float(value)
                except (TypeError, ValueError) as exc:
                    raise ValidationError(f"Custom field filter {key} expects a number, got {value!r}") from exc
                filters.append(CustomFieldFilter(key=key[: -len(suffix)], op=op, value=number))
                break
        else:
            filters.append(CustomFieldFilter(key=key, op="=", value=str(value)))
    return filters


class ResourceService:
    def __init__(self, resource_repo: ResourceRepo, file_store: FileStore) -> None:
        self.resource_repo = resource_repo
        self.file_store = file_store

    def get_resource(self, resource_id: str) -> Resource | None:
        if not is_valid_id(resource_id):
            return None
        return self.resource_repo.get_by_id(resource_id)

    @staticmethod
    def can_view(resource: Resource, user: User | None) -> bool:
        if resource.is_public:
            return True
        if user is None:
            return False
        return user.is_admin or resource.owner_id == user.id

    def list_resources(
        self,
        *,
        scope: str = "public",
        requesting_user_id: str | None = None,
        resource_type: str | None = None,
        custom_fields: dict[str, Any] | None = None,
        limit: int = 100,
    ) -> list[Resource]:
        if scope not in LIST_SCOPES:
            raise ValidationError(f"Unsupported listing scope: {scope}")
        filters = parse_custom_filters(custom_fields)

        # Without a requesting user every scope degrades to the public listing.
        if scope == "admin" and requesting_user_id:
            return self.resource_repo.list(resource_type=resource_type, custom_filters=filters, limit=limit)
        if scope == "profile" and requesting_user_id:
            return self.resource_repo.list(
                owner_id=requesting_user_id,
                resource_type=resource_type,
                custom_filters=filters,
                limit=limit,
            )
        return self.resource_repo.list(
            public_only=True,
            resource_type=resource_type,
            custom_filters=filters,
            limit=limit,
        )

    def get_file_details(self, resource_id: str, storage_name: str) -> FileDetails | None:
        resource = self.get_resource(resource_id)
        if resource is None:
            return None
        file_info = next((f for f in resource.files if f.storage_name == storage_name), None)
        if file_info is None:
            return None
        try:
            file_path = self.file_store.abspath(file_info.path)
        except ValueError:
            logger.warning("Stored path for %s/%s escapes the filestore", resource_id, storage_name)
            return None
        return FileDetails(
            file_path=file_path,
            original_name=file_info.original_name,
            mimetype=file_info.mimetype,
        )

    def update_resource(
        self,
        resource_id: str,
        changes: dict[str, Any],
        requesting_user_id: str | None,
        requesting_user_level: str = "consumer",
    ) -> Resource | None:
        if not is_valid_id(resource_id):
            return None
        if not requesting_user_id:
            raise AuthenticationError("Requesting user ID is required for update operation.")

        resource = self.resource_repo.get_by_id(resource_id)
        if resource is None:
            return None
        is_admin = requesting_user_level == "admin"
        if resource.owner_id != requesting_user_id and not is_admin:
            raise PermissionDeniedError("FORBIDDEN: You do not have permission to update this resource.")

        columns = self._update_columns(resource_id, changes, is_admin)
        if not columns:
            return resource
        self.resource_repo.update_fields(resource_id, columns)
        return self.resource_repo.get_by_id(resource_id)

    def delete_resource(
        self,
        resource_id: str,
        requesting_user_id: str | None,
        requesting_user_level: str = "consumer",
    ) -> DeleteResult | None:
        if not is_valid_id(resource_id):
            return None
        if not requesting_user_id:
            raise AuthenticationError("Requesting user ID is required for delete operation.")

        resource = self.resource_repo.get_by_id(resource_id)
        if resource is None:
            return None
        if resource.owner_id != requesting_user_id and requesting_user_level != "admin":
            raise PermissionDeniedError("FORBIDDEN: You do not have permission to delete this resource.")

        self.resource_repo.delete(resource_id)
        self.file_store.remove_resource_dir(resource_id)
        logger.info("Deleted resource %s and its files", resource_id)
        return DeleteResult(
            resource_id=resource_id,
            message="Resource and associated files deleted successfully.",
        )

    @staticmethod
    def _update_columns(resource_id: str, changes: dict[str, Any], is_admin: bool) -> dict[str, object]:
        columns: dict[str, object] = {}
        for key in UPDATABLE_FIELDS:
            if key not in changes:
                continue
            value = changes[key]
            if key == "title":
                title = str(value or "").strip()
                if not title:
                    raise ValidationError("title cannot be empty.")
                columns["title"] = title
            elif key == "resourceType":
                resource_type = str(value or "").strip()
                if not resource_type:
                    raise ValidationError("resourceType cannot be empty.")
                columns["resource_type"] = resource_type
            elif key == "creationDate":
                parsed = normalize_iso_datetime(value)
                if value and parsed is None:
                    raise ValidationError(f"creationDate is not a valid date: {value!r}")
                columns["creation_date"] = parsed
            elif key == "isPublic":
                if not isinstance(value, bool):
                    raise ValidationError("isPublic must be a boolean.")
                columns["is_public"] = 1 if value else 0
            elif key == "tags":
                if not isinstance(value, list):
                    raise ValidationError("tags must be a list of strings.")
                tags = [str(t).strip() for t in value if t is not None and str(t).strip()]
                columns["tags_json"] = json.dumps(tags, ensure_ascii=False)
            elif key == "customFields":
                if not isinstance(value, dict):
                    logger.warning(
                        "customFields in update for %s was not an object, skipping update for this field.",
                        resource_id,
                    )
                    continue
                columns["custom_fields_json"] = json.dumps(normalize_custom_fields(value), ensure_ascii=False)
            else:
                text = str(value).strip() if value is not None else ""
                columns[key] = text or None

        if "ownerID" in changes:
            if not is_admin:
                logger.warning("Ignoring ownerID change on %s from a non-admin user", resource_id)
            elif not is_valid_id(changes["ownerID"]):
                raise ValidationError(f"ownerID is not a valid user id: {changes['ownerID']!r}")
            else:
                columns["owner_id"] = str(changes["ownerID"]).strip()
        return columns
