"""Shared service-layer helper functions."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime


def now_iso() -> str:
    """Current UTC time as standard ISO 8601 (for created_at/updated_at/deleted_at)."""
    return datetime.now(UTC).isoformat()


def new_id() -> str:
    """Fresh UUID4 row identity."""
    return str(uuid.uuid4())


def is_uuid(value: str) -> bool:
    """True when *value* parses as a UUID.

    Examples:
        >>> is_uuid("not-an-id")
        False
        >>> is_uuid("6f1c2a9e-3b8d-4c55-9d0e-2f4b8a1c7e63")
        True
    """
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


def split_tag_string(raw: str | None) -> list[str]:
    """Split a comma-joined tag cell into trimmed, non-empty names.

    Examples:
        >>> split_tag_string("VIP, New,,")
        ['VIP', 'New']
        >>> split_tag_string(None)
        []
    """
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]
