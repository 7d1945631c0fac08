"""Tests for CSV parsing, duplicate detection, and the import template."""

from __future__ import annotations

import pytest

from backoffice.infrastructure.csv_import import (
    CsvFormatError,
    ImportRow,
    convert_date_to_iso,
    csv_template,
    detect_duplicates,
    identity_value,
    parse_customer_csv,
)

JP_HEADER = "顧客種別,会社名,氏名,フリガナ,電話番号,メールアドレス,生年月日,請求書送付方法,タグ"


def _row(n: int, **fields: object) -> ImportRow:
    return ImportRow(row_number=n, fields={"name": f"c{n}", **fields})


class TestParseCustomerCsv:
    def test_english_headers(self) -> None:
        parsed = parse_customer_csv("name,email,tags\nYamada,a@a.com,\"VIP,New\"\n")
        (row,) = parsed.rows
        assert row.row_number == 2
        assert row.fields["name"] == "Yamada"
        assert row.fields["email"] == "a@a.com"
        assert row.fields["customer_type"] == "personal"
        assert row.tags == "VIP,New"
        assert parsed.errors == []

    def test_japanese_headers_and_normalization(self) -> None:
        text = (
            f"{JP_HEADER}\n"
            "法人,株式会社サンプル,佐藤花子,サトウハナコ,06-1234-5678,sato@sample.co.jp,1990/1/2,郵送,VIP\n"
        )
        (row,) = parse_customer_csv(text).rows
        assert row.fields["customer_type"] == "company"
        assert row.fields["company_name"] == "株式会社サンプル"
        assert row.fields["birth_date"] == "1990-01-02"
        assert row.fields["invoice_method"] == "mail"
        assert row.tags == "VIP"

    def test_bom_and_blank_lines(self) -> None:
        parsed = parse_customer_csv("\ufeffname,email\n\nA,a@a.com\n,\nB,b@b.com\n")
        assert [r.fields["name"] for r in parsed.rows] == ["A", "B"]
        assert parsed.headers == ["name", "email"]

    def test_blank_cells_become_none(self) -> None:
        (row,) = parse_customer_csv("name,email,phone\nA, ,\n").rows
        assert row.fields["email"] is None
        assert row.fields["phone"] is None

    def test_unknown_columns_ignored(self) -> None:
        (row,) = parse_customer_csv("name,favourite colour\nA,blue\n").rows
        assert "favourite colour" not in row.fields

    def test_invalid_rows_become_errors(self) -> None:
        text = "name,email,customer_type\nA,bad-email,personal\nB,b@b.com,company\nC,c@c.com,\n"
        parsed = parse_customer_csv(text)
        assert [r.fields["name"] for r in parsed.rows] == ["C"]
        assert [e.row for e in parsed.errors] == [2, 3]
        assert "email" in parsed.errors[0].fields
        assert "company_name" in parsed.errors[1].message
        assert parsed.errors[0].data["name"] == "A"

    def test_one_error_per_row(self) -> None:
        parsed = parse_customer_csv("name,email,phone\n,bad,x y\n")
        assert len(parsed.errors) == 1
        assert {"name", "email", "phone"} <= set(parsed.errors[0].fields)

    def test_empty_file(self) -> None:
        with pytest.raises(CsvFormatError, match="empty"):
            parse_customer_csv("\ufeff\n\n")

    def test_missing_name_column(self) -> None:
        with pytest.raises(CsvFormatError, match="name"):
            parse_customer_csv("email\na@a.com\n")

    def test_unterminated_quote(self) -> None:
        with pytest.raises(CsvFormatError, match="Malformed CSV"):
            parse_customer_csv('name,memo\nA,"open\nB,ok\n')

    def test_oversized_field(self) -> None:
        text = "name,memo\nA," + "x" * 200_000 + "\nB,ok\n"
        with pytest.raises(CsvFormatError, match="Malformed CSV"):
            parse_customer_csv(text)

    def test_quoted_cells_with_commas_and_newlines(self) -> None:
        parsed = parse_customer_csv('name,memo\nA,"one, two\nthree"\nB,ok\n')
        assert [r.fields["name"] for r in parsed.rows] == ["A", "B"]
        assert parsed.rows[0].fields["memo"] == "one, two\nthree"

    def test_header_only(self) -> None:
        parsed = parse_customer_csv("氏名\n")
        assert parsed.rows == []
        assert parsed.errors == []

    def test_total_identity(self) -> None:
        text = "name,email\nA,a@a.com\n,b@b.com\nC,bad\nD,\n"
        parsed = parse_customer_csv(text)
        assert len(parsed.rows) + len(parsed.errors) == 4


class TestConvertDate:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("2024/1/5", "2024-01-05"), ("2024/12/31", "2024-12-31"), ("2024-01-05", "2024-01-05")],
    )
    def test_convert(self, raw: str, expected: str) -> None:
        assert convert_date_to_iso(raw) == expected


class TestIdentityValue:
    def test_email_casefolded(self) -> None:
        assert identity_value(_row(2, email=" A@Example.COM "), "email") == "a@example.com"

    def test_phone_hyphens_removed(self) -> None:
        assert identity_value(_row(2, phone="03-1234-5678"), "phone") == "0312345678"

    def test_missing(self) -> None:
        assert identity_value(_row(2), "email") is None


class TestDetectDuplicates:
    def test_email_duplicate(self) -> None:
        rows = [_row(2, email="a@a.com"), _row(3, email="A@A.com")]
        check = detect_duplicates(rows)
        assert check.unique == [rows[0]]
        (dup,) = check.duplicates
        assert dup.row == rows[1]
        assert dup.field == "email"
        assert dup.first_row == 2

    def test_phone_duplicate(self) -> None:
        rows = [_row(2, phone="03-1111-2222"), _row(3, phone="0311112222", email="x@x.com")]
        (dup,) = detect_duplicates(rows).duplicates
        assert dup.field == "phone"
        assert dup.value == "0311112222"

    def test_rows_without_identity_never_collide(self) -> None:
        rows = [_row(2), _row(3)]
        check = detect_duplicates(rows)
        assert check.unique == rows
        assert check.duplicates == []

    def test_duplicate_keys_not_registered(self) -> None:
        # row 3 is skipped, so its phone does not claim the identity
        rows = [
            _row(2, email="a@a.com"),
            _row(3, email="a@a.com", phone="111"),
            _row(4, phone="111"),
        ]
        check = detect_duplicates(rows)
        assert [r.row_number for r in check.unique] == [2, 4]

    def test_custom_identity_fields(self) -> None:
        rows = [_row(2, email="a@a.com"), _row(3, email="a@a.com")]
        assert detect_duplicates(rows, identity_fields=("phone",)).duplicates == []

    def test_partition_identity(self) -> None:
        rows = [_row(n, email=f"{n % 3}@x.com") for n in range(2, 12)]
        check = detect_duplicates(rows)
        assert len(check.unique) + len(check.duplicates) == len(rows)


class TestTemplate:
    def test_bom_and_parseable(self) -> None:
        text = csv_template()
        assert text.startswith("\ufeff")
        parsed = parse_customer_csv(text)
        assert len(parsed.rows) == 2
        assert parsed.errors == []
        assert parsed.rows[1].fields["customer_type"] == "company"
