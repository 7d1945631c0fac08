"""CustomerService: customer creation, update, lookup, soft deletion, and search.

Search is kana-insensitive: the query is expanded with
:func:`generate_search_patterns` into an OR match at the store, and the
candidates are ranked with :func:`best_search_score`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from backoffice.domain.customers import CUSTOMER_FIELDS, CustomerInput
from backoffice.domain.normalize import best_search_score, generate_search_patterns
from backoffice.domain.validation import issues_from, summarize_issues
from backoffice.infrastructure.store import StoreError
from backoffice.services._helpers import is_uuid, now_iso
from backoffice.services.base import BaseService
from backoffice.services.result import ErrorKind, ServiceResult, failure
from backoffice.services.tags import TagService
from backoffice.services.telemetry import trace_span, traced

logger = logging.getLogger(__name__)

SEARCH_COLUMNS: tuple[str, ...] = ("name", "name_kana", "company_name", "email", "phone")
SUGGESTION_FIELDS: tuple[str, ...] = ("id", "name", "name_kana", "customer_type", "company_name")
SORTABLE_FIELDS: frozenset[str] = frozenset({"name", "name_kana", "created_at", "updated_at"})


class CustomerService(BaseService):
    """Customer records: direct creation plus the reads the UI needs."""

    @traced
    def create_customer(
        self,
        fields: Mapping[str, Any],
        *,
        tag_ids: list[str] | None = None,
    ) -> ServiceResult:
        """Validate and insert one customer, then link *tag_ids*.

        The two writes are independent: if linking fails the customer stays
        persisted, and the failure carries its id in ``data["customer"]``.
        """
        op = "create_customer"
        try:
            customer = CustomerInput.model_validate(dict(fields))
        except ValidationError as exc:
            issues = issues_from(exc)
            return failure(
                op,
                ErrorKind.VALIDATION,
                summarize_issues(issues),
                detail={"issues": issues},
            )

        try:
            with trace_span("insert_customer"):
                (row,) = self._store.insert("customers", [customer.to_row()])
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, f"Could not create customer: {exc}")

        if tag_ids:
            linked = TagService(self._store, self._settings).associate(row["id"], tag_ids)
            if not linked.ok:
                assert linked.error is not None
                logger.warning("Customer %s created without tags", row["id"])
                return failure(
                    op,
                    linked.error.kind,
                    linked.error.message,
                    code=linked.error.code,
                    detail=linked.error.detail,
                    data={"customer": row},
                    warnings=[f"Customer {row['id']} was created but has no tags"],
                )

        return ServiceResult(
            ok=True,
            op=op,
            data={"customer": row, "tag_ids": list(tag_ids or [])},
        )

    @traced
    def update_customer(
        self,
        customer_id: str,
        fields: Mapping[str, Any],
        *,
        tag_ids: list[str] | None = None,
    ) -> ServiceResult:
        """Patch an active customer and, when *tag_ids* is given, replace its tags.

        CHECK → VALIDATE → UPDATE FIELDS → REPLACE TAGS. The patch is merged
        over the stored row and the result is validated as a whole, so a
        partial update can never leave the record invalid. ``tag_ids=None``
        leaves the tags alone; an empty list removes them all.

        The field update and the tag replacement are separate writes. If the
        replacement fails, the field changes stay saved and the failure
        carries the updated row in ``data["customer"]``.
        """
        op = "update_customer"
        try:
            existing = self._find_active(customer_id)
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, str(exc))
        if existing is None:
            return _not_found(op, customer_id)

        # ── VALIDATE (fields and tag ids, before any write) ──────
        patch = dict(fields)
        if "customer_class" in patch:
            patch["class"] = patch.pop("customer_class")
        merged = {**{key: existing[key] for key in CUSTOMER_FIELDS}, **patch}
        try:
            customer = CustomerInput.model_validate(merged)
        except ValidationError as exc:
            issues = issues_from(exc)
            return failure(
                op,
                ErrorKind.VALIDATION,
                summarize_issues(issues),
                detail={"issues": issues},
            )
        tags = TagService(self._store, self._settings)
        if tag_ids:
            try:
                unknown = tags.unknown_ids(tag_ids)
            except StoreError as exc:
                return failure(op, ErrorKind.STORE, str(exc))
            if unknown:
                return failure(
                    op,
                    ErrorKind.VALIDATION,
                    f"Unknown tag id(s): {', '.join(unknown)}",
                    code="UNKNOWN_TAG",
                    detail={"tag_ids": unknown},
                )

        # ── UPDATE FIELDS (changed columns only) ─────────────────
        changes = {k: v for k, v in customer.to_row().items() if v != existing[k]}
        row = existing
        if changes:
            try:
                with trace_span("update_fields"):
                    count = self._store.update(
                        "customers", {"id": customer_id, "deleted_at": None}, changes
                    )
                    if count == 0:
                        return _not_found(op, customer_id)
                    row = self._store.select("customers", {"id": customer_id})[0]
            except StoreError as exc:
                return failure(op, ErrorKind.STORE, f"Could not update customer: {exc}")
            logger.info("Updated customer %s: %s", customer_id, ", ".join(sorted(changes)))

        # ── REPLACE TAGS ─────────────────────────────────────────
        if tag_ids is not None:
            replaced = tags.replace(customer_id, tag_ids)
            if not replaced.ok:
                assert replaced.error is not None
                return failure(
                    op,
                    replaced.error.kind,
                    replaced.error.message,
                    code=replaced.error.code,
                    detail=replaced.error.detail,
                    data={"customer": row, "changed": sorted(changes)},
                    warnings=[
                        f"Customer {customer_id} fields were saved but its tags were not replaced",
                        *replaced.warnings,
                    ],
                )

        result = self._load(op, customer_id)
        if result.ok:
            return result.model_copy(update={"data": {**result.data, "changed": sorted(changes)}})
        return result

    @traced
    def get_customer(self, customer_id: str) -> ServiceResult:
        """One active customer with its tags."""
        return self._load("get_customer", customer_id)

    @traced
    def delete_customer(self, customer_id: str) -> ServiceResult:
        """Soft-delete a customer. Tag links are kept so the record can be restored."""
        op = "delete_customer"
        if not is_uuid(customer_id):
            return failure(op, ErrorKind.VALIDATION, f"Malformed customer id: {customer_id!r}")
        try:
            rows = self._store.select("customers", {"id": customer_id})
            if not rows:
                return _not_found(op, customer_id)
            if rows[0]["deleted_at"] is not None:
                return failure(
                    op,
                    ErrorKind.NOT_FOUND,
                    f"Customer {customer_id} is already deleted",
                    code="ALREADY_DELETED",
                    detail={"id": customer_id},
                )
            deleted_at = now_iso()
            count = self._store.update(
                "customers",
                {"id": customer_id, "deleted_at": None},
                {"deleted_at": deleted_at},
            )
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, f"Could not delete customer: {exc}")
        if count == 0:
            return _not_found(op, customer_id)
        logger.info("Soft-deleted customer %s", customer_id)
        return ServiceResult(ok=True, op=op, data={"id": customer_id, "deleted_at": deleted_at})

    @traced
    def search_customers(
        self,
        query: str | None = None,
        *,
        customer_type: str | None = None,
        customer_class: str | None = None,
        page: int = 1,
        limit: int | None = None,
        sort_by: str = "created_at",
        descending: bool = True,
    ) -> ServiceResult:
        """Filter and page active customers.

        With a *query*, rows are ranked by relevance (best first, ties in
        *sort_by* order) and each item carries its ``score``.
        """
        op = "search_customers"
        limit = limit or self._settings.search.limit
        if page < 1 or limit < 1:
            return failure(op, ErrorKind.VALIDATION, "page and limit must be positive")
        if sort_by not in SORTABLE_FIELDS:
            return failure(op, ErrorKind.VALIDATION, f"Cannot sort by {sort_by!r}")

        filters: dict[str, Any] = {"deleted_at": None}
        if customer_type:
            filters["customer_type"] = customer_type
        if customer_class:
            filters["class"] = customer_class
        order = (f"-{sort_by}" if descending else sort_by,)
        offset = (page - 1) * limit

        try:
            if query and query.strip():
                with trace_span("pattern_match"):
                    ranked = self._ranked(query, filters, order)
                total = len(ranked)
                items = ranked[offset : offset + limit]
            else:
                total = self._store.count("customers", filters)
                items = self._store.select(
                    "customers", filters, order_by=order, limit=limit, offset=offset
                )
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, str(exc))

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "items": items,
                "total_count": total,
                "page": page,
                "limit": limit,
                "total_pages": math.ceil(total / limit),
                "query": query,
            },
        )

    @traced
    def suggest(self, query: str, *, limit: int | None = None) -> ServiceResult:
        """Top matches for autocomplete (compact rows)."""
        op = "suggest_customers"
        limit = limit or self._settings.search.suggestion_limit
        if not query or not query.strip():
            return ServiceResult(ok=True, op=op, data={"items": []})
        try:
            ranked = self._ranked(query, {"deleted_at": None}, ("name",))
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, str(exc))
        items = [
            {**{f: row[f] for f in SUGGESTION_FIELDS}, "score": row["score"]}
            for row in ranked[:limit]
        ]
        return ServiceResult(ok=True, op=op, data={"items": items})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, op: str, customer_id: str) -> ServiceResult:
        try:
            row = self._find_active(customer_id)
            if row is None:
                return _not_found(op, customer_id)
            tag_rows = TagService(self._store, self._settings).tags_for_customer(customer_id)
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, str(exc))
        tag_list = [{"id": t["id"], "name": t["name"]} for t in tag_rows]
        return ServiceResult(ok=True, op=op, data={"customer": row, "tags": tag_list})

    def _find_active(self, customer_id: str) -> dict[str, Any] | None:
        if not is_uuid(customer_id):
            return None
        rows = self._store.select("customers", {"id": customer_id, "deleted_at": None})
        return rows[0] if rows else None

    def _ranked(
        self, query: str, filters: dict[str, Any], order: tuple[str, ...]
    ) -> list[dict[str, Any]]:
        patterns = generate_search_patterns(query)
        rows = self._store.search("customers", SEARCH_COLUMNS, patterns, filters, order_by=order)
        scored = [
            {**row, "score": max(best_search_score(row[col], query) for col in SEARCH_COLUMNS)}
            for row in rows
        ]
        # sorted() is stable, so equal scores keep the store's order.
        return sorted(scored, key=lambda r: r["score"], reverse=True)


def _not_found(op: str, customer_id: str) -> ServiceResult:
    return failure(
        op,
        ErrorKind.NOT_FOUND,
        f"Customer not found: {customer_id}",
        detail={"id": customer_id},
    )
