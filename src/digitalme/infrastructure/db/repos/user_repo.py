from __future__ import annotations

from pathlib import Path

from digitalme.domain.models.user import User
from digitalme.infrastructure.db.sqlite import connect

_UPDATABLE_COLUMNS = {"username", "level"}


class UserRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, user: User) -> None:
        with connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO users (id, username, level, created_at) VALUES (?, ?, ?, ?)",
                (user.id, user.username, user.level, user.created_at),
            )

    def get_by_id(self, user_id: str) -> User | None:
        with connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._to_model(row) if row else None

    def get_by_username(self, username: str) -> User | None:
        with connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        return self._to_model(row) if row else None

    def list(self, limit: int = 100) -> list[User]:
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM users ORDER BY created_at DESC, username LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._to_model(row) for row in rows]

    def update_fields(self, user_id: str, fields: dict[str, str]) -> None:
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update user columns: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{column} = ?" for column in fields)
        with connect(self.db_path) as conn:
            conn.execute(f"UPDATE users SET {assignments} WHERE id = ?", (*fields.values(), user_id))

    def delete(self, user_id: str) -> bool:
        with connect(self.db_path) as conn:
            cur = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        return cur.rowcount > 0

    def count_owned_resources(self, user_id: str) -> int:
        with connect(self.db_path) as conn:
            row = conn.execute("SELECT COUNT(*) FROM resources WHERE owner_id = ?", (user_id,)).fetchone()
        return int(row[0])

    def count_by_level(self) -> dict[str, int]:
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT level, COUNT(*) AS n FROM users GROUP BY level ORDER BY level"
            ).fetchall()
        return {row["level"]: int(row["n"]) for row in rows}

    @staticmethod
    def _to_model(row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            level=row["level"],
            created_at=row["created_at"],
        )
