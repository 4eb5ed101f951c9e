from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

# Custom fields are opaque type-specific values (e.g. a numeric grade for academic records).
CustomFieldValue = Union[str, int, float, bool, None]


@dataclass(slots=True)
class ResourceFile:
    original_name: str
    storage_name: str
    path: str
    mimetype: str
    size: int
    checksum: str


@dataclass(slots=True)
class Resource:
    id: str
    title: str
    resource_type: str
    creation_date: str | None
    submission_date: str
    producer: str | None
    owner_id: str
    is_public: bool
    description: str | None
    tags: list[str] = field(default_factory=list)
    custom_fields: dict[str, CustomFieldValue] = field(default_factory=dict)
    files: list[ResourceFile] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None
    owner_username: str | None = None
