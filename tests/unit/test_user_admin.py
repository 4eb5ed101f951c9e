import pytest

from digitalme.application.services.ingestion_service import IngestionService
from digitalme.application.services.statistics_service import StatisticsService
from digitalme.core.errors import ValidationError
from digitalme.infrastructure.archive.store import FileStore
from digitalme.infrastructure.db.repos.resource_repo import ResourceRepo
from digitalme.infrastructure.db.repos.user_repo import UserRepo


def test_update_renames_and_changes_level(user_service, producer) -> None:
    updated = user_service.update_user(producer.id, {"username": "  alicia ", "level": "Consumer"})

    assert updated is not None
    assert (updated.username, updated.level) == ("alicia", "consumer")
    assert user_service.get_by_username("alice") is None


def test_update_ignores_unknown_keys_and_reports_missing_user(user_service, producer) -> None:
    assert user_service.update_user(producer.id, {"password": "x"}) == producer
    assert user_service.update_user("not-an-id", {"level": "admin"}) is None


@pytest.mark.parametrize(
    ("changes", "message"),
    [
        ({"username": "   "}, "cannot be empty"),
        ({"username": "bob"}, "already exists"),
        ({"level": "superuser"}, "Unsupported user level"),
    ],
)
def test_update_rejects_invalid_changes(user_service, producer, changes, message) -> None:
    user_service.register("bob")
    with pytest.raises(ValidationError, match=message):
        user_service.update_user(producer.id, changes)
    assert user_service.get(producer.id) == producer


def test_delete_guards_self_and_owned_resources(app_paths, user_service, producer, sip_factory) -> None:
    admin = user_service.register("root", level="admin")
    repo = ResourceRepo(app_paths.db_path)
    IngestionService(repo, FileStore(app_paths.filestore_dir)).ingest_bag_bytes(
        sip_factory(), producer.id, producer.level
    )

    with pytest.raises(ValidationError, match="their own account"):
        user_service.delete_user(admin.id, admin.id)
    with pytest.raises(ValidationError, match=r"owns 1 resource\(s\)"):
        user_service.delete_user(producer.id, admin.id)
    assert user_service.get(producer.id) is not None

    idle = user_service.register("carol", level="consumer")
    assert user_service.delete_user(idle.id, admin.id) == idle
    assert user_service.get(idle.id) is None
    assert user_service.delete_user(idle.id, admin.id) is None


def test_usage_statistics_counts_users_and_resources(app_paths, user_service, producer, sip_factory) -> None:
    user_service.register("root", level="admin")
    repo = ResourceRepo(app_paths.db_path)
    ingestion = IngestionService(repo, FileStore(app_paths.filestore_dir))
    ingestion.ingest_bag_bytes(sip_factory(resourceType="photo", isPublic=True), producer.id, producer.level)
    ingestion.ingest_bag_bytes(sip_factory(resourceType="photo"), producer.id, producer.level)
    ingestion.ingest_bag_bytes(sip_factory(resourceType="academic"), producer.id, producer.level)

    stats = StatisticsService(UserRepo(app_paths.db_path), repo).usage_statistics()

    assert stats.users_total == 2
    assert stats.users_by_level == {"admin": 1, "producer": 1}
    assert (stats.resources_total, stats.resources_public, stats.resources_private) == (3, 1, 2)
    assert stats.resources_by_type == {"academic": 1, "photo": 2}


def test_usage_statistics_on_empty_archive(app_paths) -> None:
    stats = StatisticsService(UserRepo(app_paths.db_path), ResourceRepo(app_paths.db_path)).usage_statistics()

    assert stats.users_total == 0
    assert (stats.resources_total, stats.resources_public, stats.resources_private) == (0, 0, 0)
    assert stats.resources_by_type == {}
