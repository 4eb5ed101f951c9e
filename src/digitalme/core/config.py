from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DATA_DIR_ENV = "DIGITALME_HOME"
DEFAULT_DATA_DIRNAME = ".digitalme"


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    data_dir: Path
    db_path: Path
    filestore_dir: Path
    uploads_dir: Path


def build_paths(project_root: Path, data_dir: Path) -> AppPaths:
    """Fixed layout inside the data directory; nothing is created here."""
    return AppPaths(
        project_root=project_root,
        data_dir=data_dir,
        db_path=data_dir / "digitalme.db",
        filestore_dir=data_dir / "filestore",
        uploads_dir=data_dir / "uploads",
    )


def load_paths(project_root: Path | None = None, data_dir: Path | None = None) -> AppPaths:
    """Resolve the data directory: explicit ``data_dir``, then ``$DIGITALME_HOME``, then ``<root>/.digitalme``."""
    root = (project_root or Path.cwd()).expanduser().resolve()
    if data_dir is None:
        env_dir = os.getenv(DATA_DIR_ENV)
        data_dir = Path(env_dir) if env_dir else root / DEFAULT_DATA_DIRNAME
    return build_paths(root, data_dir.expanduser().resolve())
