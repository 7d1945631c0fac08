"""Tag name rules: trimming, length limit, case preservation."""

from __future__ import annotations

DEFAULT_MAX_LENGTH = 50


def normalize_tag_names(names: list[str], *, max_length: int = DEFAULT_MAX_LENGTH) -> list[str]:
    """Trim names, then drop empties and names longer than *max_length*.

    Case is preserved and duplicates are kept, so the result lines up
    one-to-one with the caller's surviving names.

    Examples:
        >>> normalize_tag_names([" VIP ", "", "vip", "VIP"])
        ['VIP', 'vip', 'VIP']
        >>> normalize_tag_names(["x" * 51])
        []
    """
    trimmed = (name.strip() for name in names)
    return [name for name in trimmed if name and len(name) <= max_length]


def unique_in_order(names: list[str]) -> list[str]:
    """De-duplicate preserving first occurrence.

    Examples:
        >>> unique_in_order(["VIP", "New", "VIP"])
        ['VIP', 'New']
    """
    return list(dict.fromkeys(names))
