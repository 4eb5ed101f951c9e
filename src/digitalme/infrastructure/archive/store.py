from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from digitalme.core.files import ensure_directory, write_bytes_atomic

logger = logging.getLogger(__name__)


class StagedWrites:
    """Files written for one resource during ingestion, removable as a unit."""

    def __init__(self, store: "FileStore", resource_id: str) -> None:
        self.store = store
        self.resource_id = resource_id
        self.directory = store.resource_dir(resource_id)
        self.written: list[Path] = []

    def write(self, storage_name: str, data: bytes) -> Path:
        dst = self.directory / storage_name
        if dst.exists():
            raise FileExistsError(f"Storage name already in use: {dst}")
        write_bytes_atomic(dst, data)
        self.written.append(dst)
        return dst

    def rollback(self) -> None:
        for path in self.written:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Error unlinking extracted file %s on rollback: %s", path, exc)
        try:
            self.directory.rmdir()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Error removing resource directory %s on rollback: %s", self.directory, exc)
        self.written.clear()


class FileStore:
    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir

    def ensure_layout(self) -> None:
        ensure_directory(self.base_dir)

    def resource_dir(self, resource_id: str) -> Path:
        return self.base_dir / resource_id

    def relpath_for(self, abspath: Path) -> str:
        return abspath.relative_to(self.base_dir).as_posix()

    def abspath(self, relpath: str) -> Path:
        base = self.base_dir.resolve()
        candidate = (base / relpath).resolve()
        if base not in candidate.parents:
            raise ValueError(f"Stored path escapes the filestore: {relpath}")
        return candidate

    def read_bytes(self, relpath: str) -> bytes:
        return self.abspath(relpath).read_bytes()

    @contextmanager
    def staging(self, resource_id: str) -> Iterator[StagedWrites]:
        """Yield a writer for the resource directory; every write is undone if the block raises."""
        self.ensure_layout()
        staged = StagedWrites(self, resource_id)
        ensure_directory(staged.directory)
        try:
            yield staged
        except BaseException:
            staged.rollback()
            raise

    def remove_resource_dir(self, resource_id: str) -> bool:
        directory = self.resource_dir(resource_id)
        if not directory.exists():
            return False
        try:
            shutil.rmtree(directory)
        except OSError as exc:
            logger.warning("Could not remove folder %s: %s", directory, exc)
            return False
        return True
