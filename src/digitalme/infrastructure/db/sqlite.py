from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, TypeVar

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

CONNECT_TIMEOUT_ENV = "DIGITALME_SQLITE_CONNECT_TIMEOUT_SECONDS"
BUSY_TIMEOUT_ENV = "DIGITALME_SQLITE_BUSY_TIMEOUT_MS"
DEFAULT_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_BUSY_TIMEOUT_MS = 30_000

_PRAGMAS = (
    "PRAGMA foreign_keys = ON;",
    "PRAGMA journal_mode = WAL;",
    "PRAGMA synchronous = NORMAL;",
)

N = TypeVar("N", int, float)


def _positive_env(name: str, default: N, cast: Callable[[str], N]) -> N:
    """Positive number from the environment; unset, garbage or non-positive values give ``default``."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def get_connection(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(
        db_path,
        timeout=_positive_env(CONNECT_TIMEOUT_ENV, DEFAULT_CONNECT_TIMEOUT_SECONDS, float),
    )
    conn.row_factory = sqlite3.Row
    for pragma in _PRAGMAS:
        conn.execute(pragma)
    conn.execute(f"PRAGMA busy_timeout = {_positive_env(BUSY_TIMEOUT_ENV, DEFAULT_BUSY_TIMEOUT_MS, int)};")
    return conn


@contextmanager
def connect(db_path: Path) -> Iterator[sqlite3.Connection]:
    """One transaction on a fresh connection: committed on success, rolled back on error, always closed."""
    conn = get_connection(db_path)
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def initialize_schema(db_path: Path, schema_path: Path = SCHEMA_PATH) -> None:
    with connect(db_path) as conn:
        conn.executescript(schema_path.read_text(encoding="utf-8"))
