"""Tests for ImportService: the CSV import orchestrator."""

from __future__ import annotations

from typing import Any

import pytest

from backoffice.config.settings import BackofficeSettings
from backoffice.infrastructure.store import Store, StoreError
from backoffice.services.importer import ImportService
from backoffice.services.result import ErrorKind


@pytest.fixture
def svc(store: Store, settings: BackofficeSettings) -> ImportService:
    return ImportService(store, settings)


class TestImportEndToEnd:
    def test_duplicate_email_skipped(self, svc: ImportService, store: Store) -> None:
        text = 'name,email,tags\nYamada,a@a.com,"VIP,New"\nYamada2,a@a.com,\n'
        result = svc.import_csv(text)

        assert result.ok
        d = result.data
        assert (d["total"], d["success"], d["failed"], d["skipped"]) == (2, 1, 0, 1)
        assert d["duplicates"] == [
            {"row": 3, "field": "email", "value": "a@a.com", "first_row": 2}
        ]

        assert sorted(t["name"] for t in store.select("tags")) == ["New", "VIP"]
        (customer,) = store.select("customers")
        assert customer["name"] == "Yamada"
        assert d["imported"] == [customer["id"]]
        assert store.count("customer_tags", {"customer_id": customer["id"]}) == 2

    def test_japanese_template_import(self, svc: ImportService, store: Store) -> None:
        from backoffice.infrastructure.csv_import import csv_template

        result = svc.import_csv(csv_template())
        assert result.data["success"] == 2
        assert store.count("customers", {"customer_type": "company"}) == 1
        assert store.count("tags") == 3

    def test_reimport_creates_again(self, svc: ImportService, store: Store) -> None:
        text = "name,email\nYamada,a@a.com\n"
        svc.import_csv(text)
        svc.import_csv(text)
        assert store.count("customers") == 2


class TestSummaryCounts:
    def test_parse_errors_counted(self, svc: ImportService) -> None:
        text = "name,email\nA,a@a.com\n,b@b.com\nC,bad\nD,a@a.com\n"
        d = svc.import_csv(text).data
        assert d["total"] == 4
        assert d["success"] == 1
        assert d["failed"] == 2
        assert d["skipped"] == 1
        assert [(e["row"], e["kind"]) for e in d["errors"]] == [
            (3, "PARSE_ERROR"),
            (4, "PARSE_ERROR"),
        ]

    def test_identities(self, svc: ImportService) -> None:
        text = (
            "name,email,phone\n"
            "A,a@a.com,\n"
            "B,A@a.com,\n"
            "C,,03-1111-2222\n"
            "D,,0311112222\n"
            "E,bad,\n"
            "F,,\n"
        )
        d = svc.import_csv(text).data
        parse_errors = sum(1 for e in d["errors"] if e["kind"] == "PARSE_ERROR")
        parsed_rows = d["total"] - parse_errors
        assert d["success"] + (d["failed"] - parse_errors) + d["skipped"] == parsed_rows
        assert (d["success"], d["skipped"], parse_errors) == (3, 2, 1)

    def test_message(self, svc: ImportService) -> None:
        d = svc.import_csv("name,email\nA,a@a.com\nB,a@a.com\n").data
        assert d["message"] == "Imported 1 customer(s), 1 duplicate(s) skipped"


class TestRowFailures:
    def test_tag_failure_does_not_stop_batch(
        self, svc: ImportService, store: Store, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        real_select = store.select

        def flaky_select(table: str, *a: Any, **kw: Any) -> Any:
            if table == "tags" and (a and a[0] == {"name": ["Broken"]}):
                raise StoreError("tags unavailable", table="tags", operation="select")
            return real_select(table, *a, **kw)

        monkeypatch.setattr(store, "select", flaky_select)
        text = "name,tags\nA,Broken\nB,VIP\n"
        result = svc.import_csv(text)

        assert result.ok
        d = result.data
        assert (d["success"], d["failed"]) == (1, 1)
        (error,) = d["errors"]
        assert error["row"] == 2
        assert error["kind"] == "TAG_RESOLUTION_ERROR"
        assert error["data"]["name"] == "A"
        assert [c["name"] for c in store.select("customers")] == ["B"]

    def test_association_failure_keeps_customer(
        self, svc: ImportService, store: Store, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        real_insert = store.insert

        def no_links(table: str, rows: Any) -> Any:
            if table == "customer_tags":
                raise StoreError("links down", table=table, operation="insert")
            return real_insert(table, rows)

        monkeypatch.setattr(store, "insert", no_links)
        result = svc.import_csv("name,tags\nA,VIP\n")

        assert not result.ok
        assert result.error is not None
        assert result.error.kind is ErrorKind.ROW_IMPORT
        assert result.data["failed"] == 1
        (customer,) = store.select("customers")
        assert customer["name"] == "A"
        assert result.warnings and customer["id"] in result.warnings[0]

    def test_row_number_uses_position_plus_header_offset(
        self, svc: ImportService, store: Store, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        real_insert = store.insert

        def fail_c(table: str, rows: Any) -> Any:
            if table == "customers" and rows[0]["name"] == "C":
                raise StoreError("nope", table=table, operation="insert")
            return real_insert(table, rows)

        monkeypatch.setattr(store, "insert", fail_c)
        # B is a duplicate, so C is the second unique row
        text = "name,email\nA,a@a.com\nB,a@a.com\nC,c@c.com\n"
        (error,) = svc.import_csv(text).data["errors"]
        assert error["row"] == 3
        assert error["kind"] == "ROW_IMPORT_ERROR"


class TestWholeRequestFailures:
    def test_empty_file(self, svc: ImportService) -> None:
        result = svc.import_csv("")
        assert not result.ok
        assert result.error is not None
        assert result.error.kind is ErrorKind.VALIDATION
        assert result.error.code == "INVALID_CSV"

    def test_missing_name_column(self, svc: ImportService, store: Store) -> None:
        result = svc.import_csv("email\na@a.com\n")
        assert not result.ok
        assert store.count("customers") == 0

    def test_oversized_field_is_invalid_csv(self, svc: ImportService, store: Store) -> None:
        result = svc.import_csv("name,memo\nA," + "x" * 200_000 + "\nB,ok\n")
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "INVALID_CSV"
        assert store.count("customers") == 0

    def test_unterminated_quote_does_not_swallow_rows(
        self, svc: ImportService, store: Store
    ) -> None:
        result = svc.import_csv('name,memo\nA,"open\nB,ok\n')
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "INVALID_CSV"
        assert store.count("customers") == 0

    def test_all_rows_invalid(self, svc: ImportService) -> None:
        result = svc.import_csv("name,email\n,a@a.com\n")
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "IMPORT_FAILED"
        assert result.data["failed"] == 1

    def test_header_only_is_ok(self, svc: ImportService) -> None:
        result = svc.import_csv("氏名,メールアドレス\n")
        assert result.ok
        assert result.data["total"] == 0
