from __future__ import annotations

import uuid


def new_uuid() -> str:
    """Generate a new UUID4 as a string."""
    return str(uuid.uuid4())


def is_valid_id(value: str | None) -> bool:
    """Return True when ``value`` parses as a UUID (resource and user ids)."""
    if not value:
        return False
    try:
        uuid.UUID(str(value).strip())
    except ValueError:
        return False
    return True
