import io
import json
import zipfile

import pytest
from fastapi.testclient import TestClient

from digitalme.web.app import create_app


def _upload(client: TestClient, data: bytes, user_id: str | None, content_type: str = "application/zip"):
    headers = {"X-User-Id": user_id} if user_id else {}
    return client.post(
        "/api/resources",
        files={"sipFile": ("sip.zip", data, content_type)},
        headers=headers,
    )


@pytest.fixture
def client(app_paths) -> TestClient:
    return TestClient(create_app(app_paths))


def _register(client: TestClient, username: str) -> str:
    response = client.post("/api/users", json={"username": username})
    assert response.status_code == 201
    return response.json()["user"]["id"]


def test_init_and_user_registration(client) -> None:
    response = client.post("/api/init")
    assert response.status_code == 200
    assert response.json()["ok"] is True

    created = client.post("/api/users", json={"username": "alice"})
    assert created.status_code == 201
    assert created.json()["user"]["level"] == "producer"

    duplicate = client.post("/api/users", json={"username": "alice"})
    assert duplicate.status_code == 400


def test_upload_requires_known_user_and_cleans_temp_files(client, app_paths, sip_factory) -> None:
    response = _upload(client, sip_factory(), None)
    assert response.status_code == 401
    assert list(app_paths.uploads_dir.iterdir()) == []

    alice = _register(client, "alice")
    created = _upload(client, sip_factory(title="Mine"), alice)
    assert created.status_code == 201
    body = created.json()["resource"]
    assert body["title"] == "Mine"
    assert body["owner_id"] == alice
    assert list(app_paths.uploads_dir.iterdir()) == []


def test_upload_rejects_missing_or_wrong_file(client, sip_factory) -> None:
    alice = _register(client, "alice")

    missing = client.post("/api/resources", headers={"X-User-Id": alice})
    assert missing.status_code == 400

    wrong_type = _upload(client, sip_factory(), alice, content_type="text/plain")
    assert wrong_type.status_code == 400

    broken = _upload(client, b"not a zip", alice)
    assert broken.status_code == 400
    assert "ZIP" in broken.json()["detail"]


def test_consumer_cannot_upload(client, user_service, sip_factory) -> None:
    consumer = user_service.register("reader", level="consumer")

    response = _upload(client, sip_factory(), consumer.id)

    assert response.status_code == 403


def test_listing_and_detail_visibility(client, sip_factory) -> None:
    alice = _register(client, "alice")
    bob = _register(client, "bob")
    public_id = _upload(client, sip_factory(title="Open", isPublic=True), alice).json()["resource"]["id"]
    private_id = _upload(client, sip_factory(title="Closed"), alice).json()["resource"]["id"]

    listing = client.get("/api/resources").json()
    assert [r["id"] for r in listing["resources"]] == [public_id]

    profile = client.get("/api/resources/profile", headers={"X-User-Id": alice}).json()
    assert {r["id"] for r in profile["resources"]} == {public_id, private_id}
    assert client.get("/api/resources/profile").status_code == 401
    assert client.get("/api/admin/resources", headers={"X-User-Id": alice}).status_code == 403

    assert client.get(f"/api/resources/{private_id}", headers={"X-User-Id": alice}).status_code == 200
    assert client.get(f"/api/resources/{private_id}", headers={"X-User-Id": bob}).status_code == 403
    assert client.get(f"/api/resources/{public_id}").status_code == 200
    assert client.get("/api/resources/not-an-id").status_code == 404


def test_admin_listing_sees_everything(client, user_service, sip_factory) -> None:
    alice = _register(client, "alice")
    admin = user_service.register("root", level="admin")
    _upload(client, sip_factory(title="Closed"), alice)

    response = client.get("/api/admin/resources", headers={"X-User-Id": admin.id})

    assert response.status_code == 200
    assert response.json()["count"] == 1


def test_custom_field_query_params(client, sip_factory) -> None:
    alice = _register(client, "alice")
    _upload(client, sip_factory(title="Low", isPublic=True, customFields={"grade": 10}), alice)
    _upload(client, sip_factory(title="High", isPublic=True, customFields={"grade": 18}), alice)

    response = client.get("/api/resources", params={"cf.grade_gte": "15"})
    assert [r["title"] for r in response.json()["resources"]] == ["High"]

    bad = client.get("/api/resources", params={"cf.grade_gte": "lots"})
    assert bad.status_code == 400


def test_file_download_and_dip_export(client, sip_factory) -> None:
    alice = _register(client, "alice")
    created = _upload(client, sip_factory({"notes.txt": b"hello"}, title="Licenciatura 2023"), alice).json()
    resource = created["resource"]
    storage_name = resource["files"][0]["storage_name"]
    headers = {"X-User-Id": alice}

    download = client.get(f"/api/resources/{resource['id']}/files/{storage_name}", headers=headers)
    assert download.status_code == 200
    assert download.content == b"hello"
    assert 'filename="notes.txt"' in download.headers["content-disposition"]
    missing = client.get(f"/api/resources/{resource['id']}/files/nope", headers=headers)
    assert missing.status_code == 404

    dip = client.get(f"/api/resources/{resource['id']}/dip", headers=headers)
    assert dip.status_code == 200
    assert dip.headers["content-type"] == "application/zip"
    assert dip.headers["content-disposition"] == 'attachment; filename="DIP_Licenciatura_2023.zip"'
    with zipfile.ZipFile(io.BytesIO(dip.content)) as zf:
        descriptor = json.loads(zf.read("manifesto-DIP.json"))
        assert zf.read("data/notes.txt") == b"hello"
    assert descriptor["ownerID"] == "alice"


def test_update_and_delete(client, sip_factory) -> None:
    alice = _register(client, "alice")
    bob = _register(client, "bob")
    resource_id = _upload(client, sip_factory(), alice).json()["resource"]["id"]
    url = f"/api/resources/{resource_id}"

    assert client.put(url, json={"title": "Nope"}, headers={"X-User-Id": bob}).status_code == 403
    assert client.put(url, json={}, headers={"X-User-Id": alice}).status_code == 400
    assert client.put(url, json={"title": "x"}).status_code == 401

    updated = client.put(url, json={"title": "Renamed", "isPublic": True}, headers={"X-User-Id": alice})
    assert updated.status_code == 200
    assert updated.json()["resource"]["title"] == "Renamed"
    assert updated.json()["resource"]["is_public"] is True

    assert client.delete(url, headers={"X-User-Id": bob}).status_code == 403
    deleted = client.delete(url, headers={"X-User-Id": alice})
    assert deleted.status_code == 200
    assert deleted.json()["deletedResourceId"] == resource_id
    assert client.get(url).status_code == 404
    assert client.delete(url, headers={"X-User-Id": alice}).status_code == 404


def test_download_of_non_latin1_file_name(client, sip_factory) -> None:
    alice = _register(client, "alice")
    resource = _upload(client, sip_factory({"zdjęcie.txt": b"foto"}, title="Wakacje"), alice).json()["resource"]
    storage_name = resource["files"][0]["storage_name"]

    download = client.get(
        f"/api/resources/{resource['id']}/files/{storage_name}",
        headers={"X-User-Id": alice},
    )

    assert download.status_code == 200
    assert download.content == b"foto"
    assert "filename*=utf-8''zdj%C4%99cie.txt" in download.headers["content-disposition"]


def test_admin_user_endpoints_require_admin(client) -> None:
    alice = _register(client, "alice")
    headers = {"X-User-Id": alice}

    assert client.get("/api/admin/users").status_code == 401
    assert client.get("/api/admin/users", headers=headers).status_code == 403
    assert client.get("/api/admin/stats", headers=headers).status_code == 403
    assert client.delete(f"/api/admin/users/{alice}", headers=headers).status_code == 403


def test_admin_manages_users(client, user_service) -> None:
    admin = user_service.register("root", level="admin")
    headers = {"X-User-Id": admin.id}

    created = client.post("/api/admin/users", json={"username": "bob", "level": "consumer"}, headers=headers)
    assert created.status_code == 201
    bob = created.json()["user"]
    assert bob["level"] == "consumer"

    listed = client.get("/api/admin/users", headers=headers)
    assert listed.json()["count"] == 2

    assert client.put(f"/api/admin/users/{bob['id']}", json={}, headers=headers).status_code == 400
    promoted = client.put(f"/api/admin/users/{bob['id']}", json={"level": "producer"}, headers=headers)
    assert promoted.status_code == 200
    assert promoted.json()["user"]["level"] == "producer"
    assert client.put(f"/api/admin/users/{bob['id']}", json={"level": "god"}, headers=headers).status_code == 400

    assert client.get("/api/admin/users/missing", headers=headers).status_code == 404
    assert client.get(f"/api/admin/users/{bob['id']}", headers=headers).json()["user"]["username"] == "bob"

    assert client.delete(f"/api/admin/users/{admin.id}", headers=headers).status_code == 400
    deleted = client.delete(f"/api/admin/users/{bob['id']}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json()["deletedUserId"] == bob["id"]
    assert client.delete(f"/api/admin/users/{bob['id']}", headers=headers).status_code == 404


def test_admin_cannot_delete_user_owning_resources(client, user_service, sip_factory) -> None:
    alice = _register(client, "alice")
    admin = user_service.register("root", level="admin")
    _upload(client, sip_factory(title="Kept", isPublic=True), alice)

    response = client.delete(f"/api/admin/users/{alice}", headers={"X-User-Id": admin.id})

    assert response.status_code == 400
    assert "owns 1 resource(s)" in response.json()["detail"]
    assert client.get("/api/resources").json()["count"] == 1


def test_admin_usage_statistics(client, user_service, sip_factory) -> None:
    alice = _register(client, "alice")
    admin = user_service.register("root", level="admin")
    _upload(client, sip_factory(resourceType="photo", isPublic=True), alice)
    _upload(client, sip_factory(resourceType="academic"), alice)

    response = client.get("/api/admin/stats", headers={"X-User-Id": admin.id})

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["users_total"] == 2
    assert stats["resources_public"] == 1
    assert stats["resources_private"] == 1
    assert stats["resources_by_type"] == {"academic": 1, "photo": 1}
