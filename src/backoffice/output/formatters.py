"""ServiceResult → text, for humans (Rich) or machines (--json)."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from backoffice.output.renderers import render_quiet, render_result

if TYPE_CHECKING:
    from backoffice.services.result import ServiceResult


@dataclass(frozen=True)
class OutputSettings:
    """Output mode flags taken from the CLI."""

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False


def result_payload(result: ServiceResult) -> dict[str, Any]:
    """JSON-ready dict of *result*, with the error's HTTP-equivalent status."""
    payload = result.model_dump(mode="json")
    if result.error is not None:
        payload["error"]["http_status"] = result.error.http_status
        payload["error"]["fatal"] = result.error.fatal
    return payload


def format_result(
    result: ServiceResult,
    *,
    settings: OutputSettings | None = None,
    json_output: bool = False,
) -> str:
    """Format a ServiceResult for display.

    Args:
        result: The service result to format.
        settings: Output mode; takes precedence over *json_output*.
        json_output: Shorthand for ``OutputSettings(json_output=True)``.
    """
    if settings is None:
        settings = OutputSettings(json_output=json_output)
    if settings.json_output:
        return json.dumps(result_payload(result), indent=2, ensure_ascii=False)
    if settings.quiet:
        return render_quiet(result)
    return render_result(result, verbose=settings.verbose)
