from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_bytes_atomic(dst: Path, data: bytes) -> None:
    ensure_directory(dst.parent)
    temp_path = dst.parent / f".{dst.name}.tmp"
    try:
        temp_path.write_bytes(data)
        os.replace(temp_path, dst)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def safe_basename(name: str | None, fallback: str = "file") -> str:
    """Strip directory components (both separators) so a name cannot escape its folder."""
    raw = str(name or "").replace("\\", "/")
    base = PurePosixPath(raw).name.strip()
    if base in {"", ".", ".."}:
        return fallback
    return base


def sanitize_download_name(value: str) -> str:
    cleaned = re.sub(r"\s+", "_", value)
    return re.sub(r"[^a-zA-Z0-9_.-]", "", cleaned)
