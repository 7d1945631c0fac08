"""TagService: create-or-reuse resolution of tag names and customer association.

Resolution costs at most two round trips: one batch select for the names
that already exist and one batch insert for the rest. Names are compared
exactly (case preserved), so ``VIP`` and ``vip`` are distinct tags.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from backoffice.domain.tags import normalize_tag_names, unique_in_order
from backoffice.infrastructure.store import StoreError
from backoffice.services.base import BaseService
from backoffice.services.result import ErrorKind, ServiceResult, failure
from backoffice.services.telemetry import trace_span, traced

logger = logging.getLogger(__name__)


class TagService(BaseService):
    """Maps free-text tag names to tag ids and links tags to customers."""

    @traced
    def resolve_or_create(self, names: list[str]) -> ServiceResult:
        """Resolve *names* to tag ids, creating the ones that do not exist.

        Returns ``data["ids"]`` aligned one-to-one with the normalized names
        (trimmed; empty and over-long names dropped), so repeated names map
        to repeated ids. A single call never inserts the same name twice.
        """
        op = "resolve_tags"
        normalized = normalize_tag_names(names, max_length=self._settings.tags.max_length)
        if not normalized:
            return ServiceResult(ok=True, op=op, data={"ids": [], "names": [], "created": []})

        wanted = unique_in_order(normalized)
        try:
            with trace_span("fetch_existing"):
                id_by_name = self._fetch_ids(wanted)
            missing = [name for name in wanted if name not in id_by_name]
            created: list[str] = []
            if missing:
                with trace_span("create_missing"):
                    created = self._create(missing, id_by_name)
        except StoreError as exc:
            logger.warning("Tag resolution failed for %s: %s", wanted, exc)
            return failure(
                op,
                ErrorKind.TAG_RESOLUTION,
                f"Could not resolve tags: {exc}",
                detail={"names": wanted},
            )

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "ids": [id_by_name[name] for name in normalized],
                "names": normalized,
                "created": created,
            },
        )

    @traced
    def associate(self, customer_id: str, tag_ids: list[str]) -> ServiceResult:
        """Link *tag_ids* to a customer in one batch insert.

        No de-duplication: repeated ids produce repeated join rows.
        """
        op = "associate_tags"
        if not tag_ids:
            return ServiceResult(ok=True, op=op, data={"customer_id": customer_id, "count": 0})
        try:
            rows = self._store.insert(
                "customer_tags",
                [{"customer_id": customer_id, "tag_id": tag_id} for tag_id in tag_ids],
            )
        except StoreError as exc:
            return failure(
                op,
                ErrorKind.STORE,
                f"Could not associate tags with customer {customer_id}: {exc}",
                code="TAG_ASSOCIATION_FAILED",
                detail={"customer_id": customer_id, "tag_ids": tag_ids},
            )
        return ServiceResult(ok=True, op=op, data={"customer_id": customer_id, "count": len(rows)})

    @traced
    def replace(self, customer_id: str, tag_ids: list[str]) -> ServiceResult:
        """Make *tag_ids* the complete tag set of a customer.

        DELETE LINKS → INSERT LINKS, no compensation. If the insert fails
        after the delete, the customer is left with no tags and the failure
        says so.
        """
        op = "replace_tags"
        try:
            with trace_span("delete_links"):
                removed = self._store.delete("customer_tags", {"customer_id": customer_id})
        except StoreError as exc:
            return failure(
                op,
                ErrorKind.STORE,
                f"Could not remove existing tags of customer {customer_id}: {exc}",
                code="TAG_REPLACE_FAILED",
                detail={"customer_id": customer_id},
            )

        with trace_span("insert_links"):
            linked = self.associate(customer_id, tag_ids)
        if not linked.ok:
            assert linked.error is not None
            logger.warning("Customer %s lost its tags during replacement", customer_id)
            return failure(
                op,
                linked.error.kind,
                linked.error.message,
                code=linked.error.code,
                detail={**(linked.error.detail or {}), "tags_remaining": 0},
                warnings=[f"Customer {customer_id} now has no tags"],
            )
        return ServiceResult(
            ok=True,
            op=op,
            data={"customer_id": customer_id, "removed": removed, "count": len(tag_ids)},
        )

    @traced
    def list_tags(self) -> ServiceResult:
        """All tags by name, with the number of customer links each has."""
        op = "list_tags"
        try:
            tag_rows = self._store.select("tags", order_by=("name",))
            links = self._store.select("customer_tags")
        except StoreError as exc:
            return failure(op, ErrorKind.STORE, str(exc))
        usage = Counter(link["tag_id"] for link in links)
        items = [{"id": t["id"], "name": t["name"], "usage": usage[t["id"]]} for t in tag_rows]
        return ServiceResult(ok=True, op=op, data={"items": items, "count": len(items)})

    def tags_for_customer(self, customer_id: str) -> list[dict[str, Any]]:
        """Tags linked to a customer (raises StoreError)."""
        links = self._store.select("customer_tags", {"customer_id": customer_id})
        tag_ids = unique_in_order([link["tag_id"] for link in links])
        if not tag_ids:
            return []
        return self._store.select("tags", {"id": tag_ids}, order_by=("name",))

    def unknown_ids(self, tag_ids: list[str]) -> list[str]:
        """Ids in *tag_ids* that name no tag (raises StoreError)."""
        wanted = unique_in_order(tag_ids)
        if not wanted:
            return []
        known = {row["id"] for row in self._store.select("tags", {"id": wanted})}
        return [tag_id for tag_id in wanted if tag_id not in known]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch_ids(self, names: list[str]) -> dict[str, str]:
        rows = self._store.select("tags", {"name": names})
        return {row["name"]: row["id"] for row in rows}

    def _create(self, missing: list[str], id_by_name: dict[str, str]) -> list[str]:
        """Insert *missing* names and merge them into *id_by_name*.

        When the insert hits the unique constraint, another writer created
        some of the names after our select; re-read once and insert only
        what is still absent.
        """
        try:
            rows = self._store.insert("tags", [{"name": name} for name in missing])
        except StoreError as exc:
            if not exc.conflict:
                raise
            logger.info("Tag insert conflicted; re-reading %d name(s)", len(missing))
            id_by_name.update(self._fetch_ids(missing))
            still_missing = [name for name in missing if name not in id_by_name]
            rows = self._store.insert("tags", [{"name": name} for name in still_missing])
        for row in rows:
            id_by_name[row["name"]] = row["id"]
        return [row["name"] for row in rows]
