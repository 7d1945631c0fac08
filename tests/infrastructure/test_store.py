"""Tests for the Store: single-table atomic operations and filters."""

from __future__ import annotations

import pytest

from backoffice.infrastructure.store import Store, StoreError
from backoffice.services._helpers import is_uuid


def _customer(name: str, **kw: object) -> dict[str, object]:
    return {"customer_type": "personal", "name": name, **kw}


class TestInsert:
    def test_stamps_identity_and_timestamps(self, store: Store) -> None:
        (row,) = store.insert("customers", [_customer("山田")])
        assert is_uuid(row["id"])
        assert row["created_at"] == row["updated_at"]
        assert row["deleted_at"] is None

    def test_returns_rows_in_input_order(self, store: Store) -> None:
        rows = store.insert("tags", [{"name": n} for n in ("c", "a", "b")])
        assert [r["name"] for r in rows] == ["c", "a", "b"]

    def test_batch_is_atomic(self, store: Store) -> None:
        store.insert("tags", [{"name": "VIP"}])
        with pytest.raises(StoreError) as exc_info:
            store.insert("tags", [{"name": "New"}, {"name": "VIP"}])
        assert exc_info.value.conflict is True
        assert exc_info.value.table == "tags"
        assert [r["name"] for r in store.select("tags")] == ["VIP"]

    def test_rows_with_differing_keys(self, store: Store) -> None:
        rows = store.insert(
            "customers",
            [_customer("live"), _customer("gone", deleted_at="2024", email="g@g.com")],
        )
        assert rows[0]["email"] is None
        assert rows[0]["deleted_at"] is None
        assert rows[1]["email"] == "g@g.com"
        assert rows[1]["deleted_at"] == "2024"

    def test_later_row_missing_a_key(self, store: Store) -> None:
        rows = store.insert(
            "customers", [_customer("a", email="a@example.com"), _customer("b")]
        )
        assert [r["email"] for r in rows] == ["a@example.com", None]

    def test_missing_key_takes_column_default(self, store: Store) -> None:
        base = {"issue_date": "2024-10-01", "billing_name": "X"}
        rows = store.insert(
            "invoices",
            [
                {**base, "invoice_number": "INV-1", "total_amount": 500.0},
                {**base, "invoice_number": "INV-2"},
            ],
        )
        assert [r["total_amount"] for r in rows] == [500.0, 0.0]

    def test_unknown_column_raises_store_error(self, store: Store) -> None:
        with pytest.raises(StoreError):
            store.insert("tags", [{"name": "a", "colour": "red"}])

    def test_empty_rows_no_op(self, store: Store) -> None:
        assert store.insert("tags", []) == []

    def test_foreign_key_enforced(self, store: Store) -> None:
        with pytest.raises(StoreError):
            store.insert("customer_tags", [{"customer_id": "nope", "tag_id": "nope"}])

    def test_unknown_table(self, store: Store) -> None:
        with pytest.raises(StoreError, match="Unknown table"):
            store.insert("widgets", [{"name": "x"}])


class TestSelect:
    def test_filters(self, store: Store) -> None:
        a, b, _ = store.insert("tags", [{"name": n} for n in ("a", "b", "c")])
        assert store.select("tags", {"name": "a"}) == [a]
        by_list = store.select("tags", {"name": ["a", "b"]}, order_by=("name",))
        assert by_list == [a, b]

    def test_none_matches_null(self, store: Store) -> None:
        store.insert("customers", [_customer("live"), _customer("gone", deleted_at="2024")])
        rows = store.select("customers", {"deleted_at": None})
        assert [r["name"] for r in rows] == ["live"]

    def test_order_limit_offset(self, store: Store) -> None:
        store.insert("tags", [{"name": n} for n in ("a", "b", "c", "d")])
        rows = store.select("tags", order_by=("-name",), limit=2, offset=1)
        assert [r["name"] for r in rows] == ["c", "b"]

    def test_count(self, store: Store) -> None:
        store.insert("tags", [{"name": n} for n in ("a", "b")])
        assert store.count("tags") == 2
        assert store.count("tags", {"name": "a"}) == 1


class TestSearch:
    def test_or_across_columns_and_patterns(self, store: Store) -> None:
        store.insert(
            "customers",
            [
                _customer("山田", name_kana="ヤマダ"),
                _customer("佐藤", email="sato@example.com"),
                _customer("鈴木"),
            ],
        )
        rows = store.search(
            "customers", ("name", "name_kana", "email"), ["やまだ", "ヤマダ", "sato"]
        )
        assert {r["name"] for r in rows} == {"山田", "佐藤"}

    def test_wildcards_escaped(self, store: Store) -> None:
        store.insert("tags", [{"name": "100%"}, {"name": "1000"}])
        rows = store.search("tags", ("name",), ["0%"])
        assert [r["name"] for r in rows] == ["100%"]


class TestUpdateDelete:
    def test_update_returns_count_and_bumps_updated_at(self, store: Store) -> None:
        (row,) = store.insert("customers", [_customer("x", updated_at="2000-01-01")])
        assert store.update("customers", {"id": row["id"]}, {"memo": "hi"}) == 1
        (after,) = store.select("customers", {"id": row["id"]})
        assert after["memo"] == "hi"
        assert after["updated_at"] > "2000-01-01"

    def test_delete(self, store: Store) -> None:
        store.insert("tags", [{"name": "a"}, {"name": "b"}])
        assert store.delete("tags", {"name": "a"}) == 1
        assert [r["name"] for r in store.select("tags")] == ["b"]

    @pytest.mark.parametrize("method", ["update", "delete"])
    def test_unfiltered_write_refused(self, store: Store, method: str) -> None:
        args = ({}, {"name": "z"}) if method == "update" else ({},)
        with pytest.raises(StoreError, match="unfiltered"):
            getattr(store, method)("tags", *args)


class TestInvoiceNumbers:
    def test_uses_configured_prefix(self, store: Store) -> None:
        assert store.next_invoice_number(issue_date="2024-10-01") == "INV-202410-0001"
        assert store.next_invoice_number(issue_date="2024-10-05") == "INV-202410-0002"

    def test_custom_prefix(self, store: Store) -> None:
        custom = Store(store.engine, invoice_prefix="BILL-")
        assert custom.next_invoice_number() == "BILL-0001"
