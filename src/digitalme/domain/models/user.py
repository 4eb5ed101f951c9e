from __future__ import annotations

from dataclasses import dataclass

USER_LEVELS = ("consumer", "producer", "admin")
INGEST_LEVELS = frozenset({"producer", "admin"})


@dataclass(slots=True)
class User:
    id: str
    username: str
    level: str
    created_at: str

    @property
    def is_admin(self) -> bool:
        return self.level == "admin"
