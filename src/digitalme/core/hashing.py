from __future__ import annotations

import hashlib
from pathlib import Path
from typing import BinaryIO

from digitalme.core.errors import ConfigurationError

DEFAULT_DIGEST_ALG = "sha256"
READ_CHUNK_SIZE = 1024 * 1024


def _hasher(alg: str) -> "hashlib._Hash":
    try:
        return hashlib.new(alg)
    except ValueError as exc:
        raise ConfigurationError(f"Unsupported digest algorithm: {alg}") from exc


def compute_bytes_digest(data: bytes, alg: str = DEFAULT_DIGEST_ALG) -> str:
    h = _hasher(alg)
    h.update(data)
    return h.hexdigest()


def compute_stream_digest(stream: BinaryIO, alg: str = DEFAULT_DIGEST_ALG, chunk_size: int = READ_CHUNK_SIZE) -> str:
    h = _hasher(alg)
    while chunk := stream.read(chunk_size):
        h.update(chunk)
    return h.hexdigest()


def compute_file_digest(path: Path, alg: str = DEFAULT_DIGEST_ALG, chunk_size: int = READ_CHUNK_SIZE) -> str:
    with path.open("rb") as f:
        return compute_stream_digest(f, alg, chunk_size)
