"""ServiceResult and ServiceError: the universal service contract.

INVARIANT: All service-layer methods return ServiceResult.
Failures never cross the service boundary as exceptions; they travel as a
tagged :class:`ErrorKind` plus a structured payload, and the transport
adapter (CLI, HTTP) maps the kind to its own status vocabulary.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ErrorKind(StrEnum):
    """Tagged error taxonomy shared by every service."""

    VALIDATION = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PARSE = "PARSE_ERROR"
    ROW_IMPORT = "ROW_IMPORT_ERROR"
    TAG_RESOLUTION = "TAG_RESOLUTION_ERROR"
    INVOICE_CONSISTENCY = "INVOICE_CONSISTENCY_ERROR"
    STORE = "STORE_ERROR"


# One entry per ErrorKind member; tests assert the table is exhaustive.
HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.PARSE: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ROW_IMPORT: 500,
    ErrorKind.TAG_RESOLUTION: 500,
    ErrorKind.INVOICE_CONSISTENCY: 500,
    ErrorKind.STORE: 500,
}

# Kinds that signal an unrecoverable inconsistency in persisted data.
FATAL_KINDS: frozenset[ErrorKind] = frozenset({ErrorKind.INVOICE_CONSISTENCY})


def http_status_for(kind: ErrorKind) -> int:
    """Return the HTTP-equivalent status for an error kind."""
    return HTTP_STATUS[kind]


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    kind: ErrorKind
    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)

    @property
    def http_status(self) -> int:
        return http_status_for(self.kind)

    @property
    def fatal(self) -> bool:
        return self.kind in FATAL_KINDS


class ServiceResult(BaseModel):
    """Universal return type for all service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"create_invoice"``).
        data: Operation-specific payload on success (and partial payloads
            such as an import summary on failure).
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing, store round trips, etc.).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None


def failure(
    op: str,
    kind: ErrorKind,
    message: str,
    *,
    code: str | None = None,
    detail: dict[str, Any] | None = None,
    data: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> ServiceResult:
    """Build a failed ServiceResult. ``code`` defaults to the kind's value."""
    return ServiceResult(
        ok=False,
        op=op,
        data=data or {},
        warnings=warnings or [],
        error=ServiceError(
            kind=kind,
            code=code or kind.value,
            message=message,
            detail=detail or {},
        ),
    )
