from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from digitalme.core.config import AppPaths
from digitalme.core.errors import ProjectNotInitializedError
from digitalme.core.files import ensure_directory
from digitalme.infrastructure.db.sqlite import initialize_schema


@dataclass(slots=True)
class InitResult:
    paths_created: list[Path]
    db_path: Path


class ProjectService:
    """Lays out the archive data directory: database, per-resource filestore and upload scratch space."""

    def __init__(self, paths: AppPaths) -> None:
        self.paths = paths

    def _directories(self) -> tuple[Path, ...]:
        return (self.paths.data_dir, self.paths.filestore_dir, self.paths.uploads_dir)

    def init_project(self) -> InitResult:
        """Idempotent: existing directories and rows are left alone."""
        missing = [path for path in self._directories() if not path.exists()]
        for path in self._directories():
            ensure_directory(path)
        initialize_schema(self.paths.db_path)
        return InitResult(paths_created=missing, db_path=self.paths.db_path)

    def is_initialized(self) -> bool:
        return self.paths.db_path.is_file() and self.paths.filestore_dir.is_dir()

    def require_initialized(self) -> None:
        if not self.is_initialized():
            raise ProjectNotInitializedError(
                f"No Digital Me archive at {self.paths.data_dir}. Run 'digitalme init' first."
            )
