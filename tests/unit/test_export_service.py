import io
import json
import logging
import zipfile

from digitalme.application.services.export_service import ExportService
from digitalme.application.services.ingestion_service import IngestionService
from digitalme.core.config import AppPaths
from digitalme.infrastructure.archive.store import FileStore
from digitalme.infrastructure.bagit.codec import open_bag
from digitalme.infrastructure.bagit.validator import validate_bag
from digitalme.infrastructure.db.repos.resource_repo import ResourceRepo


def _services(paths: AppPaths) -> tuple[IngestionService, ExportService, FileStore]:
    repo = ResourceRepo(paths.db_path)
    store = FileStore(paths.filestore_dir)
    return IngestionService(repo, store), ExportService(repo, store), store


def test_round_trip_preserves_descriptive_metadata(app_paths, producer, sip_factory) -> None:
    ingestion, export, _ = _services(app_paths)
    sip = sip_factory(
        {"transcript.pdf": b"%PDF-1.4 grades", "photo.jpg": b"\xff\xd8"},
        title="Licenciatura 2023",
        resourceType="academic",
        tags=["university", "grades"],
        customFields={"grade": 16.5, "course": "Engenharia"},
    )
    resource = ingestion.ingest_bag_bytes(sip, producer.id, producer.level)

    artifact = export.export_resource(resource.id)

    assert artifact is not None
    assert artifact.filename == "DIP_Licenciatura_2023.zip"
    assert artifact.skipped_files == []
    zf = zipfile.ZipFile(io.BytesIO(artifact.data))
    dip = json.loads(zf.read("manifesto-DIP.json"))
    assert dip["_id"] == resource.id
    assert dip["title"] == "Licenciatura 2023"
    assert dip["resourceType"] == "academic"
    assert sorted(dip["tags"]) == ["grades", "university"]
    assert dip["customFields"] == {"grade": 16.5, "course": "Engenharia"}
    assert dip["ownerID"] == "alice"
    assert producer.id not in json.dumps(dip)
    assert [f["originalName"] for f in dip["files"]] == ["transcript.pdf", "photo.jpg"]
    assert zf.read("data/transcript.pdf") == b"%PDF-1.4 grades"


def test_exported_bag_passes_validation(app_paths, producer, sip_factory) -> None:
    ingestion, export, _ = _services(app_paths)
    resource = ingestion.ingest_bag_bytes(sip_factory(), producer.id, producer.level)

    artifact = export.export_resource(resource.id)

    assert artifact is not None
    report = validate_bag(open_bag(artifact.data))
    assert report.payload_verified == ["data/a.txt"]
    assert "manifesto-DIP.json" in report.tags_verified
    bag_info = zipfile.ZipFile(io.BytesIO(artifact.data)).read("bag-info.txt").decode()
    assert f"External-Identifier: {resource.id}" in bag_info
    assert "Payload-Oxum: 5.1" in bag_info
    assert "Source-Organization: Alice (exported from Digital Me)" in bag_info


def test_missing_stored_file_is_skipped(app_paths, producer, sip_factory, caplog) -> None:
    ingestion, export, store = _services(app_paths)
    resource = ingestion.ingest_bag_bytes(
        sip_factory({"keep.txt": b"keep", "gone.txt": b"gone"}),
        producer.id,
        producer.level,
    )
    (store.base_dir / resource.files[1].path).unlink()

    with caplog.at_level(logging.WARNING):
        artifact = export.export_resource(resource.id)

    assert artifact is not None
    assert artifact.skipped_files == ["gone.txt"]
    dip = json.loads(zipfile.ZipFile(io.BytesIO(artifact.data)).read("manifesto-DIP.json"))
    assert [f["originalName"] for f in dip["files"]] == ["keep.txt"]
    assert "gone.txt" in caplog.text


def test_unknown_or_malformed_id_returns_none(app_paths) -> None:
    _, export, _ = _services(app_paths)
    assert export.export_resource("not-an-id") is None
    assert export.export_resource("8d4f8f4e-3c1b-4c59-9f0e-0e4a8f3b2a10") is None


def test_title_without_safe_characters_falls_back_to_id(app_paths, producer, sip_factory) -> None:
    ingestion, export, _ = _services(app_paths)
    resource = ingestion.ingest_bag_bytes(sip_factory(title="???"), producer.id, producer.level)

    artifact = export.export_resource(resource.id)

    assert artifact is not None
    assert artifact.filename == f"DIP_{resource.id}.zip"


def test_unknown_owner_is_reported_as_unknown(app_paths, sip_factory) -> None:
    ingestion, export, _ = _services(app_paths)
    resource = ingestion.ingest_bag_bytes(sip_factory(), "3b0c6a02-0d46-4a0b-9a7e-6f7d8f6a1c55", "admin")

    artifact = export.export_resource(resource.id)

    assert artifact is not None
    dip = json.loads(zipfile.ZipFile(io.BytesIO(artifact.data)).read("manifesto-DIP.json"))
    assert dip["ownerID"] == "unknown owner"
