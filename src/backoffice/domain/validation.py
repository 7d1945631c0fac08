"""Helpers turning pydantic validation failures into field-level issues."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError


def issues_from(exc: ValidationError) -> list[dict[str, str]]:
    """Flatten a pydantic ValidationError into ``[{"field", "message"}]``."""
    issues: list[dict[str, str]] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        message = str(err["msg"]).removeprefix("Value error, ")
        issues.append({"field": loc, "message": message})
    return issues


def summarize_issues(issues: list[dict[str, Any]]) -> str:
    """Join issues into one human-readable line."""
    return "; ".join(
        f"{i['field']}: {i['message']}" if i.get("field") else str(i["message"]) for i in issues
    )
