from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console

from digitalme.application.services.project_service import ProjectService
from digitalme.core.config import AppPaths
from digitalme.infrastructure.archive.store import FileStore
from digitalme.infrastructure.db.repos.resource_repo import ResourceRepo
from digitalme.infrastructure.db.repos.user_repo import UserRepo


@dataclass(slots=True)
class CLIContext:
    paths: AppPaths
    console: Console

    def require_initialized(self) -> None:
        ProjectService(self.paths).require_initialized()

    def resource_repo(self) -> ResourceRepo:
        return ResourceRepo(self.paths.db_path)

    def user_repo(self) -> UserRepo:
        return UserRepo(self.paths.db_path)

    def file_store(self) -> FileStore:
        return FileStore(self.paths.filestore_dir)
