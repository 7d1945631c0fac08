"""ImportService: bulk customer import from CSV text.

Pipeline: PARSE → PARTITION → (per unique row) RESOLVE TAGS → CREATE → ASSOCIATE → SUMMARIZE

Rows are processed strictly in order, one at a time. Each row yields a
:class:`RowOutcome` value; nothing raised by one row reaches the next, and
the summary is computed once from the finished tuple of outcomes.

A failed row is not rolled back: if its customer was created but the tag
links failed, the customer stays and the outcome records its id. Duplicate
detection only looks at the current file, so importing the same file twice
creates the customers twice.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from backoffice.infrastructure.csv_import import (
    CsvFormatError,
    CsvParseResult,
    DuplicateCheck,
    ImportRow,
    detect_duplicates,
    parse_customer_csv,
)
from backoffice.services._helpers import split_tag_string
from backoffice.services.base import BaseService
from backoffice.services.customers import CustomerService
from backoffice.services.result import ErrorKind, ServiceError, ServiceResult, failure
from backoffice.services.tags import TagService
from backoffice.services.telemetry import trace_span, traced

logger = logging.getLogger(__name__)


class RowStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"


class ImportErrorEntry(BaseModel):
    """One line of the summary's error list."""

    model_config = {"frozen": True}

    row: int
    kind: ErrorKind
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class RowOutcome(BaseModel):
    """Result of importing one unique row."""

    model_config = {"frozen": True}

    row: int
    source_row: int
    status: RowStatus
    customer_id: str | None = None
    tag_ids: list[str] = Field(default_factory=list)
    error: ImportErrorEntry | None = None


class ImportSummary(BaseModel):
    """Aggregate counts for one import.

    INVARIANTS:
        ``total == parsed rows + parse errors``
        ``success + (failed - parse errors) + skipped == parsed rows``
    """

    model_config = {"frozen": True}

    total: int
    success: int
    failed: int
    skipped: int
    errors: list[ImportErrorEntry] = Field(default_factory=list)
    duplicates: list[dict[str, Any]] = Field(default_factory=list)
    imported: list[str] = Field(default_factory=list)
    message: str = ""

    @classmethod
    def build(
        cls,
        parsed: CsvParseResult,
        check: DuplicateCheck,
        outcomes: tuple[RowOutcome, ...],
    ) -> ImportSummary:
        parse_errors = [
            ImportErrorEntry(row=e.row, kind=ErrorKind.PARSE, message=e.message, data=e.data)
            for e in parsed.errors
        ]
        row_errors = [o.error for o in outcomes if o.error is not None]
        success = sum(1 for o in outcomes if o.status is RowStatus.SUCCESS)
        failed = len(row_errors) + len(parse_errors)
        skipped = len(check.duplicates)

        message = f"Imported {success} customer(s)"
        if failed:
            message += f", {failed} failed"
        if skipped:
            message += f", {skipped} duplicate(s) skipped"

        return cls(
            total=len(parsed.rows) + len(parse_errors),
            success=success,
            failed=failed,
            skipped=skipped,
            errors=[*parse_errors, *row_errors],
            duplicates=[
                {
                    "row": d.row.row_number,
                    "field": d.field,
                    "value": d.value,
                    "first_row": d.first_row,
                }
                for d in check.duplicates
            ],
            imported=[
                o.customer_id
                for o in outcomes
                if o.status is RowStatus.SUCCESS and o.customer_id is not None
            ],
            message=message,
        )


class ImportService(BaseService):
    """Drives CSV rows through duplicate detection, tag resolution, and creation."""

    @traced
    def import_csv(self, raw_text: str) -> ServiceResult:
        """Import customers from CSV text and return the summary in ``data``.

        Only a structurally unusable file fails the whole request. Otherwise
        the result is a summary with partial counts; it is marked failed
        only when nothing was imported and at least one row failed.
        """
        op = "import_customers"

        # ── PARSE ─────────────────────────────────────────────────
        with trace_span("parse"):
            try:
                parsed = parse_customer_csv(raw_text)
            except CsvFormatError as exc:
                return failure(op, ErrorKind.VALIDATION, str(exc), code="INVALID_CSV")

        # ── PARTITION ─────────────────────────────────────────────
        with trace_span("partition"):
            check = detect_duplicates(parsed.rows, self._settings.csv_import.identity_fields)

        # ── IMPORT (sequential, one outcome per row) ──────────────
        with trace_span("import_rows") as span:
            outcomes = tuple(
                self._import_row(position, row)
                for position, row in enumerate(check.unique, start=1)
            )
            if span is not None:
                span.annotate("rows", len(outcomes))

        # ── SUMMARIZE ─────────────────────────────────────────────
        summary = ImportSummary.build(parsed, check, outcomes)
        logger.info(
            "Import finished: total=%d success=%d failed=%d skipped=%d",
            summary.total,
            summary.success,
            summary.failed,
            summary.skipped,
        )

        ok = summary.success > 0 or summary.failed == 0
        return ServiceResult(
            ok=ok,
            op=op,
            data=summary.model_dump(mode="json"),
            warnings=[
                f"Customer {o.customer_id} (row {o.row}) was created but not fully tagged"
                for o in outcomes
                if o.status is RowStatus.FAILED and o.customer_id
            ],
            error=None
            if ok
            else ServiceError(
                kind=ErrorKind.ROW_IMPORT,
                code="IMPORT_FAILED",
                message=summary.message,
            ),
        )

    # ------------------------------------------------------------------
    # Per-row pipeline
    # ------------------------------------------------------------------

    def _import_row(self, position: int, row: ImportRow) -> RowOutcome:
        """Resolve tags, create the customer, link tags. Never raises StoreError."""
        reported = position + self._settings.csv_import.header_offset

        def failed(
            kind: ErrorKind, message: str, *, customer_id: str | None = None
        ) -> RowOutcome:
            logger.debug("Row %d failed: %s", reported, message)
            return RowOutcome(
                row=reported,
                source_row=row.row_number,
                status=RowStatus.FAILED,
                customer_id=customer_id,
                error=ImportErrorEntry(row=reported, kind=kind, message=message, data=row.payload),
            )

        tag_ids: list[str] = []
        names = split_tag_string(row.tags)
        if names:
            resolved = TagService(self._store, self._settings).resolve_or_create(names)
            if not resolved.ok:
                assert resolved.error is not None
                return failed(ErrorKind.TAG_RESOLUTION, resolved.error.message)
            tag_ids = resolved.data["ids"]

        created = CustomerService(self._store, self._settings).create_customer(row.fields)
        if not created.ok:
            assert created.error is not None
            return failed(ErrorKind.ROW_IMPORT, created.error.message)
        customer_id = created.data["customer"]["id"]

        if tag_ids:
            linked = TagService(self._store, self._settings).associate(customer_id, tag_ids)
            if not linked.ok:
                assert linked.error is not None
                return failed(ErrorKind.ROW_IMPORT, linked.error.message, customer_id=customer_id)

        return RowOutcome(
            row=reported,
            source_row=row.row_number,
            status=RowStatus.SUCCESS,
            customer_id=customer_id,
            tag_ids=tag_ids,
        )
