from __future__ import annotations

import logging
from typing import Any

from digitalme.core.errors import ValidationError
from digitalme.core.ids import is_valid_id, new_uuid
from digitalme.core.time import now_utc_iso
from digitalme.domain.models.user import USER_LEVELS, User
from digitalme.infrastructure.db.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)

UPDATABLE_USER_FIELDS = ("username", "level")


def _normalize_level(level: object) -> str:
    normalized = str(level or "").strip().lower()
    if normalized not in USER_LEVELS:
        raise ValidationError(f"Unsupported user level: {level} (expected one of {', '.join(USER_LEVELS)})")
    return normalized


class UserService:
    def __init__(self, user_repo: UserRepo) -> None:
        self.user_repo = user_repo

    def register(self, username: str, level: str = "producer") -> User:
        name = str(username or "").strip()
        if not name:
            raise ValidationError("Username is required.")
        level_normalized = _normalize_level(level)
        if self.user_repo.get_by_username(name) is not None:
            raise ValidationError(f"Username already exists: {name}")

        user = User(id=new_uuid(), username=name, level=level_normalized, created_at=now_utc_iso())
        self.user_repo.insert(user)
        return user

    def get(self, user_id: str | None) -> User | None:
        if not is_valid_id(user_id):
            return None
        return self.user_repo.get_by_id(str(user_id).strip())

    def get_by_username(self, username: str) -> User | None:
        return self.user_repo.get_by_username(username.strip())

    def list_users(self, limit: int = 100) -> list[User]:
        return self.user_repo.list(limit=limit)

    def update_user(self, user_id: str, changes: dict[str, Any]) -> User | None:
        """Rename a user or change their level. Unknown keys are ignored; None means no such user."""
        user = self.get(user_id)
        if user is None:
            return None

        fields: dict[str, str] = {}
        if "username" in changes:
            name = str(changes["username"] or "").strip()
            if not name:
                raise ValidationError("Username cannot be empty.")
            holder = self.user_repo.get_by_username(name)
            if holder is not None and holder.id != user.id:
                raise ValidationError(f"Username already exists: {name}")
            fields["username"] = name
        if "level" in changes:
            fields["level"] = _normalize_level(changes["level"])

        if not fields:
            return user
        self.user_repo.update_fields(user.id, fields)
        logger.info("Updated user %s: %s", user.id, ", ".join(sorted(fields)))
        return self.user_repo.get_by_id(user.id)

    def delete_user(self, user_id: str, requesting_user_id: str) -> User | None:
        """Delete a user that owns no resources. Returns the deleted user, or None when unknown."""
        user = self.get(user_id)
        if user is None:
            return None
        if user.id == str(requesting_user_id).strip():
            raise ValidationError("Admins cannot delete their own account through this interface.")

        owned = self.user_repo.count_owned_resources(user.id)
        if owned > 0:
            raise ValidationError(
                f"User owns {owned} resource(s). Cannot delete user. "
                "Please reassign or delete their resources first."
            )
        self.user_repo.delete(user.id)
        logger.info("Deleted user %s (%s)", user.id, user.username)
        return user
