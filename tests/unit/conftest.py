from __future__ import annotations

import hashlib
import io
import json
import zipfile
from pathlib import Path
from typing import Any, Callable

import pytest

from digitalme.application.services.project_service import ProjectService
from digitalme.application.services.user_service import UserService
from digitalme.core.config import AppPaths, build_paths
from digitalme.domain.models.user import User
from digitalme.infrastructure.bagit.codec import BagInfo, PayloadFile, build_bag
from digitalme.infrastructure.bagit.manifest import SIP_DESCRIPTOR
from digitalme.infrastructure.db.repos.user_repo import UserRepo

HELLO_SHA256 = "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"


def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def zip_entries(entries: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def hello_bag_entries(
    descriptor_path: str = SIP_DESCRIPTOR,
    tag_listed_path: str | None = None,
    extra_descriptor_files: list[dict[str, Any]] | None = None,
) -> dict[str, bytes]:
    """Hand-built minimal SIP: data/a.txt containing b"hello" plus all tag files."""
    payload = b"hello"
    descriptor = json.dumps(
        {
            "title": "Hello record",
            "resourceType": "academic",
            "creationDate": "2021-06-01",
            "producer": "Alice",
            "isPublic": True,
            "description": "greeting",
            "tags": ["greeting", "test"],
            "customFields": {"grade": 17, "school": "Braga"},
            "files": [
                {
                    "pathInZip": "data/a.txt",
                    "originalName": "a.txt",
                    "mimetype": "text/plain",
                    "size": len(payload),
                    "checksum": _sha(payload),
                },
                *(extra_descriptor_files or []),
            ],
        }
    ).encode("utf-8")
    bagit = b"BagIt-Version: 0.97\nTag-File-Character-Encoding: UTF-8"
    manifest = f"{_sha(payload)}  data/a.txt".encode("utf-8")
    bag_info = b"Source-Organization: Alice\nPayload-Oxum: 5.1"
    tag_lines = [
        f"{_sha(bagit)}  bagit.txt",
        f"{_sha(manifest)}  manifest-sha256.txt",
        f"{_sha(bag_info)}  bag-info.txt",
        f"{_sha(descriptor)}  {tag_listed_path or descriptor_path}",
    ]
    return {
        "bagit.txt": bagit,
        "manifest-sha256.txt": manifest,
        "bag-info.txt": bag_info,
        "data/a.txt": payload,
        descriptor_path: descriptor,
        "tagmanifest-sha256.txt": "\n".join(tag_lines).encode("utf-8"),
    }


def build_sip(files: dict[str, bytes] | None = None, **metadata: Any) -> bytes:
    payload = [
        PayloadFile(original_name=name, data=data, mimetype="text/plain")
        for name, data in (files if files is not None else {"a.txt": b"hello"}).items()
    ]
    descriptor = {
        "title": "Sample record",
        "resourceType": "photo",
        "creationDate": "2020-01-02T03:04:05Z",
        "producer": "Alice",
        "isPublic": False,
        "description": "sample",
        "tags": ["family"],
        "customFields": {},
    }
    descriptor.update(metadata)
    return build_bag(
        payload,
        metadata=descriptor,
        descriptor_name=SIP_DESCRIPTOR,
        bag_info=BagInfo(source_organization="Alice", external_identifier="sip-test"),
    ).data


@pytest.fixture
def app_paths(tmp_path: Path) -> AppPaths:
    project_root = tmp_path / "proj"
    project_root.mkdir(parents=True, exist_ok=True)
    paths = build_paths(project_root, project_root / ".digitalme")
    ProjectService(paths).init_project()
    return paths


@pytest.fixture
def user_service(app_paths: AppPaths) -> UserService:
    return UserService(UserRepo(app_paths.db_path))


@pytest.fixture
def producer(user_service: UserService) -> User:
    return user_service.register("alice", level="producer")


@pytest.fixture
def sip_factory() -> Callable[..., bytes]:
    return build_sip


@pytest.fixture
def hello_bag() -> Callable[..., dict[str, bytes]]:
    return hello_bag_entries


@pytest.fixture
def make_zip() -> Callable[[dict[str, bytes]], bytes]:
    return zip_entries
