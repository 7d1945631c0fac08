"""InvoiceService: invoice header + line items over single-table writes.

Create: NUMBER → TOTAL → INSERT HEADER → INSERT ITEMS → (on failure) COMPENSATE
    If the item insert fails, the header is deleted again before the
    original error is returned. If that delete also fails, the result is an
    INVOICE_CONSISTENCY_ERROR: a header without items is left behind and
    needs manual cleanup. A crash between the two inserts leaves the same
    orphan; nothing here can close that window.

Update: CHECK → UPDATE HEADER → DELETE ITEMS → INSERT ITEMS
    No compensation. If the replacement insert fails after the delete,
    the invoice is left with zero items and the failure says so.

Delete: soft-delete the header, then best-effort soft-delete of the items.
    Bulk delete does the same with one statement per table; a crash or
    item failure in between leaves deleted headers with live items, which
    readers never see because they go through the header first.

Search: kana-insensitive OR match at the store, then the term, date and
amount conditions are checked in Python on the candidates.

Item ``display_order`` is 0-based on create and 1-based on update.
Readers order by ``display_order`` only, so both bases sort correctly.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from datetime import date
from typing import Any

import structlog
from pydantic import ValidationError

from backoffice.domain.invoices import InvoiceInput, item_rows
from backoffice.domain.normalize import generate_search_patterns, normalize_search_query
from backoffice.domain.validation import issues_from, summarize_issues
from backoffice.infrastructure.store import StoreError
from backoffice.services._helpers import is_uuid, now_iso
from backoffice.services.base import BaseService
from backoffice.services.result import ErrorKind, ServiceResult, failure
from backoffice.services.telemetry import trace_span, traced

logger = logging.getLogger(__name__)
log = structlog.get_logger(__name__)

CREATE_ORDER_START = 0
UPDATE_ORDER_START = 1

INVOICE_SEARCH_COLUMNS: tuple[str, ...] = ("invoice_number", "billing_name", "billing_address")
INVOICE_SORT_FIELDS: frozenset[str] = frozenset(
    {"issue_date", "total_amount", "invoice_number", "billing_name", "created_at"}
)


class InvoiceService(BaseService):
    """Writes and reads invoices with their line items."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @traced
    def create_invoice(self, data: Mapping[str, Any]) -> ServiceResult:
        """Create an invoice from header fields and a fully formed ``items`` list."""
        op = "create_invoice"
        invoice = self._validate(op, data)
        if isinstance(invoice, ServiceResult):
            return invoice

        # ── NUMBER ───────────────────────────────────────────────
        try:
            with trace_span("number"):
                number = self._store.next_invoice_number(issue_date=invoice.issue_date.isoformat())
        except StoreError as exc:
            return failure(
                op,
                ErrorKind.STORE,
                f"Could not allocate an invoice number: {exc}",
                code="NUMBER_ALLOCATION_FAILED",
            )

        # ── INSERT HEADER ────────────────────────────────────────
        try:
            with trace_span("insert_header"):
                (header,) = self._store.insert(
                    "invoices", [{**invoice.header_row(), "invoice_number": number}]
                )
        except StoreError as exc:
            return failure(
                op,
                ErrorKind.STORE,
                f"Could not create invoice {number}: {exc}",
                code="HEADER_INSERT_FAILED",
                detail={"invoice_number": number},
            )

        # ── INSERT ITEMS ─────────────────────────────────────────
        try:
            with trace_span("insert_items"):
                items = self._store.insert(
                    "invoice_items",
                    item_rows(header["id"], invoice.items, start=CREATE_ORDER_START),
                )
        except StoreError as exc:
            with trace_span("compensate"):
                return self._compensate_create(op, header, exc)

        log.info("invoice.created", invoice_id=header["id"], invoice_number=number)
        return ServiceResult(ok=True, op=op, data={"invoice": header, "items": items})

    @traced
    def update_invoice(self, invoice_id: str, data: Mapping[str, Any]) -> ServiceResult:
        """Replace header fields and the whole item list of an active invoice."""
        op = "update_invoice"
        invoice = self._validate(op, data)
        if isinstance(invoice, ServiceResult):
            return invoice

        # ── CHECK ────────────────────────────────────────────────
        try:
            if self._find_active(invoice_id) is None:
                return _not_found(op, invoice_id)
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, str(exc))

        # ── UPDATE HEADER (total included, one statement) ────────
        try:
            with trace_span("update_header"):
                self._store.update("invoices", {"id": invoice_id}, invoice.header_row())
        except StoreError as exc:
            return failure(
                op,
                ErrorKind.STORE,
                f"Could not update invoice: {exc}",
                code="HEADER_UPDATE_FAILED",
                detail={"invoice_id": invoice_id},
            )

        # ── DELETE ITEMS ─────────────────────────────────────────
        try:
            with trace_span("delete_items"):
                self._store.delete("invoice_items", {"invoice_id": invoice_id})
        except StoreError as exc:
            return failure(
                op,
                ErrorKind.STORE,
                f"Could not replace invoice items: {exc}",
                code="ITEMS_DELETE_FAILED",
                detail={"invoice_id": invoice_id},
            )

        # ── INSERT ITEMS (no compensation) ───────────────────────
        try:
            with trace_span("insert_items"):
                self._store.insert(
                    "invoice_items",
                    item_rows(invoice_id, invoice.items, start=UPDATE_ORDER_START),
                )
        except StoreError as exc:
            log.warning("invoice.items_lost", invoice_id=invoice_id, error=str(exc))
            return failure(
                op,
                ErrorKind.STORE,
                f"Invoice items were removed but the replacements could not be saved: {exc}",
                code="ITEMS_INSERT_FAILED",
                detail={"invoice_id": invoice_id, "items_remaining": 0},
                warnings=[f"Invoice {invoice_id} now has no items"],
            )

        return self._load(op, invoice_id)

    @traced
    def delete_invoice(self, invoice_id: str) -> ServiceResult:
        """Soft-delete an invoice; item cleanup failures become warnings."""
        op = "delete_invoice"
        warnings: list[str] = []
        try:
            if self._find_active(invoice_id) is None:
                return _not_found(op, invoice_id)
            deleted_at = now_iso()
            with trace_span("delete_header"):
                count = self._store.update(
                    "invoices",
                    {"id": invoice_id, "deleted_at": None},
                    {"deleted_at": deleted_at},
                )
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, f"Could not delete invoice: {exc}")
        if count == 0:
            return _not_found(op, invoice_id)

        items_deleted = self._soft_delete_items([invoice_id], deleted_at, warnings)
        return ServiceResult(
            ok=True,
            op=op,
            data={"id": invoice_id, "deleted_at": deleted_at, "items_deleted": items_deleted},
            warnings=warnings,
        )

    @traced
    def delete_invoices(self, invoice_ids: list[str]) -> ServiceResult:
        """Soft-delete several invoices: one header statement, then one items statement.

        Malformed, unknown and already deleted ids are reported per id in
        ``data["failed"]`` and do not stop the others. The header update is
        a single atomic write, so either every valid header is deleted or
        none is. The item step is best-effort as in :meth:`delete_invoice`.
        """
        op = "delete_invoices"
        limit = self._settings.invoices.bulk_delete_limit
        if not invoice_ids:
            return failure(op, ErrorKind.VALIDATION, "No invoice ids given")
        if len(invoice_ids) > limit:
            return failure(
                op,
                ErrorKind.VALIDATION,
                f"At most {limit} invoices can be deleted at once",
                detail={"requested": len(invoice_ids), "limit": limit},
            )

        failed: list[dict[str, str]] = []
        wanted: list[str] = []
        for invoice_id in dict.fromkeys(invoice_ids):
            if is_uuid(invoice_id):
                wanted.append(invoice_id)
            else:
                failed.append({"id": invoice_id, "error": "malformed invoice id"})

        warnings: list[str] = []
        deleted_at = now_iso()
        deleted: list[str] = []
        try:
            if wanted:
                active = {
                    row["id"]
                    for row in self._store.select(
                        "invoices", {"id": wanted, "deleted_at": None}
                    )
                }
                failed.extend(
                    {"id": i, "error": "invoice not found"} for i in wanted if i not in active
                )
                deleted = [i for i in wanted if i in active]
            if deleted:
                with trace_span("delete_headers"):
                    self._store.update(
                        "invoices",
                        {"id": deleted, "deleted_at": None},
                        {"deleted_at": deleted_at},
                    )
        except StoreError as exc:
            return failure(
                op,
                ErrorKind.STORE,
                f"Could not delete invoices: {exc}",
                detail={"failed": failed},
            )

        items_deleted = self._soft_delete_items(deleted, deleted_at, warnings) if deleted else 0
        message = f"Deleted {len(deleted)} invoice(s)"
        if failed:
            message += f", {len(failed)} failed"
        data = {
            "deleted": deleted,
            "failed": failed,
            "deleted_at": deleted_at,
            "items_deleted": items_deleted,
            "message": message,
        }
        if not deleted:
            return failure(op, ErrorKind.NOT_FOUND, message, code="NOTHING_DELETED", data=data)
        log.info("invoice.bulk_deleted", deleted=len(deleted), failed=len(failed))
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @traced
    def get_invoice(self, invoice_id: str) -> ServiceResult:
        """Active invoice with its active items in display order."""
        return self._load("get_invoice", invoice_id)

    @traced
    def list_invoices(self, *, limit: int | None = None) -> ServiceResult:
        """Active invoices, newest first."""
        op = "list_invoices"
        try:
            rows = self._store.select(
                "invoices", {"deleted_at": None}, order_by=("-created_at",), limit=limit
            )
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, str(exc))
        return ServiceResult(ok=True, op=op, data={"items": rows, "count": len(rows)})

    @traced
    def search_invoices(
        self,
        query: str | None = None,
        *,
        date_from: str | None = None,
        date_to: str | None = None,
        amount_min: float | None = None,
        amount_max: float | None = None,
        customer_ids: list[str] | None = None,
        page: int = 1,
        limit: int | None = None,
        sort_by: str = "issue_date",
        descending: bool = True,
    ) -> ServiceResult:
        """Filter, sort and page active invoices.

        Every whitespace-separated term of *query* must appear (kana and
        width insensitive) in the number, billing name or billing address.
        Dates and amounts are inclusive bounds. ``total_amount`` in the
        result sums every match, not just the current page.
        """
        op = "search_invoices"
        limit = limit or self._settings.search.limit
        sort_by = "total_amount" if sort_by == "amount" else sort_by
        try:
            date_from, date_to = _check_search_bounds(
                page, limit, sort_by, (date_from, date_to), (amount_min, amount_max)
            )
        except ValueError as exc:
            return failure(op, ErrorKind.VALIDATION, str(exc))

        filters: dict[str, Any] = {"deleted_at": None}
        if customer_ids:
            filters["customer_id"] = customer_ids
        order = (f"-{sort_by}" if descending else sort_by, "invoice_number")
        terms = normalize_search_query(query or "").split()

        try:
            with trace_span("candidates"):
                if terms:
                    patterns = [p for term in terms for p in generate_search_patterns(term)]
                    rows = self._store.search(
                        "invoices", INVOICE_SEARCH_COLUMNS, patterns, filters, order_by=order
                    )
                else:
                    rows = self._store.select("invoices", filters, order_by=order)
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, str(exc))

        matches = [
            row
            for row in rows
            if _in_range(row["issue_date"], date_from, date_to)
            and _in_range(row["total_amount"], amount_min, amount_max)
            and all(_term_matches(row, term) for term in terms)
        ]
        offset = (page - 1) * limit
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "items": matches[offset : offset + limit],
                "total_count": len(matches),
                "total_amount": sum(row["total_amount"] for row in matches),
                "page": page,
                "limit": limit,
                "total_pages": math.ceil(len(matches) / limit),
                "query": query,
            },
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate(self, op: str, data: Mapping[str, Any]) -> InvoiceInput | ServiceResult:
        cfg = self._settings.invoices
        prepared = dict(data)
        if not prepared.get("billing_honorific"):
            prepared["billing_honorific"] = cfg.default_honorific
        raw_items = prepared.get("items")
        if isinstance(raw_items, list):
            prepared["items"] = [
                {**item, "unit": item.get("unit") or cfg.default_unit}
                if isinstance(item, Mapping)
                else item
                for item in raw_items
            ]
        try:
            invoice = InvoiceInput.model_validate(prepared)
        except ValidationError as exc:
            issues = issues_from(exc)
            return failure(
                op, ErrorKind.VALIDATION, summarize_issues(issues), detail={"issues": issues}
            )
        if len(invoice.items) > cfg.max_items:
            return failure(
                op,
                ErrorKind.VALIDATION,
                f"items: at most {cfg.max_items} items are allowed",
                detail={"issues": [{"field": "items", "message": "too many items"}]},
            )
        return invoice

    def _soft_delete_items(
        self, invoice_ids: list[str], deleted_at: str, warnings: list[str]
    ) -> int | None:
        """Best-effort item cleanup after the headers are gone.

        Returns the number of items soft-deleted, or None when the write
        failed; the failure is appended to *warnings*.
        """
        try:
            with trace_span("delete_items"):
                return self._store.update(
                    "invoice_items",
                    {"invoice_id": invoice_ids, "deleted_at": None},
                    {"deleted_at": deleted_at},
                )
        except StoreError as exc:
            log.warning("invoice.items_not_deleted", invoice_ids=invoice_ids, error=str(exc))
            label = ", ".join(invoice_ids)
            warnings.append(f"Invoice(s) {label} deleted but their items were not: {exc}")
            return None

    def _find_active(self, invoice_id: str) -> dict[str, Any] | None:
        if not is_uuid(invoice_id):
            return None
        rows = self._store.select("invoices", {"id": invoice_id, "deleted_at": None})
        return rows[0] if rows else None

    def _load(self, op: str, invoice_id: str) -> ServiceResult:
        try:
            header = self._find_active(invoice_id)
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, str(exc))
        if header is None:
            return _not_found(op, invoice_id)
        try:
            items = self._store.select(
                "invoice_items",
                {"invoice_id": invoice_id, "deleted_at": None},
                order_by=("display_order",),
            )
        except StoreError as exc:
            logger.warning("Items of invoice %s unavailable: %s", invoice_id, exc)
            return ServiceResult(
                ok=True,
                op=op,
                data={"invoice": header, "items": []},
                warnings=[f"Items could not be loaded: {exc}"],
            )
        return ServiceResult(ok=True, op=op, data={"invoice": header, "items": items})

    def _compensate_create(
        self, op: str, header: dict[str, Any], cause: StoreError
    ) -> ServiceResult:
        """Delete the just-created header after its items failed to insert."""
        invoice_id = header["id"]
        number = header["invoice_number"]
        log.warning("invoice.compensate", invoice_id=invoice_id, invoice_number=number)
        try:
            self._store.delete("invoices", {"id": invoice_id})
        except StoreError as comp_exc:
            log.critical(
                "invoice.orphaned_header",
                invoice_id=invoice_id,
                invoice_number=number,
                error=str(cause),
                compensation_error=str(comp_exc),
            )
            return failure(
                op,
                ErrorKind.INVOICE_CONSISTENCY,
                f"Invoice {number} has no items and could not be removed: {comp_exc}",
                code="COMPENSATION_FAILED",
                detail={
                    "invoice_id": invoice_id,
                    "invoice_number": number,
                    "original_error": str(cause),
                    "compensation_error": str(comp_exc),
                },
            )
        return failure(
            op,
            ErrorKind.STORE,
            f"Invoice items could not be saved: {cause}",
            code="ITEMS_INSERT_FAILED",
            detail={"invoice_number": number, "compensated": True},
        )


def _check_search_bounds(
    page: int,
    limit: int,
    sort_by: str,
    dates: tuple[str | None, str | None],
    amounts: tuple[float | None, float | None],
) -> tuple[str | None, str | None]:
    """Validate search paging and bounds; return the dates in canonical ISO form.

    Raises:
        ValueError: With a user-facing message for the first bad argument.
    """
    if page < 1 or limit < 1:
        raise ValueError("page and limit must be positive")
    if sort_by not in INVOICE_SORT_FIELDS:
        raise ValueError(f"Cannot sort by {sort_by!r}")
    canonical: list[str | None] = []
    for label, value in zip(("date_from", "date_to"), dates, strict=True):
        if value is None:
            canonical.append(None)
            continue
        try:
            canonical.append(date.fromisoformat(value).isoformat())
        except ValueError:
            raise ValueError(f"{label} must be a date like 2024-10-01") from None
    low, high = canonical
    if low is not None and high is not None and low > high:
        raise ValueError("date_from must not be after date_to")
    amount_min, amount_max = amounts
    if amount_min is not None and amount_max is not None and amount_min > amount_max:
        raise ValueError("amount_min must not exceed amount_max")
    return low, high


def _in_range(value: Any, low: Any, high: Any) -> bool:
    return (low is None or value >= low) and (high is None or value <= high)


def _term_matches(row: Mapping[str, Any], term: str) -> bool:
    texts = [str(row[col]).casefold() for col in INVOICE_SEARCH_COLUMNS if row[col]]
    return any(
        pattern.casefold() in text for pattern in generate_search_patterns(term) for text in texts
    )


def _not_found(op: str, invoice_id: str) -> ServiceResult:
    return failure(
        op,
        ErrorKind.NOT_FOUND,
        f"Invoice not found: {invoice_id}",
        detail={"id": invoice_id},
    )
