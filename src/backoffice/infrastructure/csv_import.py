"""Customer CSV collaborator: parsing, per-row validation, duplicate detection.

The parser never aborts on a bad data row: each invalid row becomes one
:class:`ParseError` and is excluded from further processing. Only
structurally unusable input (empty file, malformed CSV, no name column) raises
:class:`CsvFormatError`.

Row numbers are file rows with the header as row 1, so the first data row
is row 2.
"""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from backoffice.domain.customers import CustomerInput
from backoffice.domain.validation import issues_from, summarize_issues

# Japanese headers as exported by the spreadsheet template.
HEADER_MAPPING: dict[str, str] = {
    "顧客ID": "id",
    "顧客種別": "customer_type",
    "会社名": "company_name",
    "氏名": "name",
    "フリガナ": "name_kana",
    "クラス": "class",
    "生年月日": "birth_date",
    "郵便番号": "postal_code",
    "都道府県": "prefecture",
    "市区町村": "city",
    "番地・建物名": "address",
    "電話番号": "phone",
    "メールアドレス": "email",
    "契約開始日": "contract_start_date",
    "請求書送付方法": "invoice_method",
    "支払い条件": "payment_terms",
    "タグ": "tags",
    "備考": "memo",
}

# Column names are also accepted verbatim.
FIELD_NAMES: frozenset[str] = frozenset(HEADER_MAPPING.values())

REQUIRED_FIELDS: tuple[str, ...] = ("name",)

_CUSTOMER_TYPES = {"個人": "personal", "法人": "company", "personal": "personal", "company": "company"}
_INVOICE_METHODS = {"メール": "email", "郵送": "mail", "email": "email", "mail": "mail"}
_DATE_FIELDS = ("birth_date", "contract_start_date")
_SLASH_DATE = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")

TEMPLATE_HEADERS: tuple[str, ...] = (
    "顧客種別",
    "会社名",
    "氏名",
    "フリガナ",
    "クラス",
    "生年月日",
    "郵便番号",
    "都道府県",
    "市区町村",
    "番地・建物名",
    "電話番号",
    "メールアドレス",
    "契約開始日",
    "請求書送付方法",
    "支払い条件",
    "タグ",
    "備考",
)

TEMPLATE_ROWS: tuple[tuple[str, ...], ...] = (
    (
        "個人", "", "山田太郎", "ヤマダタロウ", "A", "1990/1/1", "100-0001", "東京都",
        "千代田区", "千代田1-1-1", "03-1234-5678", "yamada@example.com", "2024/1/1",
        "メール", "月末締め翌月末払い", "新規,重要顧客", "サンプルデータ",
    ),
    (
        "法人", "株式会社サンプル", "佐藤花子", "サトウハナコ", "B", "", "530-0001", "大阪府",
        "大阪市北区", "梅田1-1-1", "06-1234-5678", "sato@sample.co.jp", "2024/2/1",
        "郵送", "月末締め翌々月末払い", "VIP", "",
    ),
)  # fmt: skip


class CsvFormatError(ValueError):
    """The file as a whole cannot be imported (empty, malformed, or missing columns)."""


class ImportRow(BaseModel):
    """A validated data row: scalar customer fields plus the raw tag cell."""

    model_config = {"frozen": True}

    row_number: int
    fields: dict[str, Any]
    tags: str | None = None

    @property
    def payload(self) -> dict[str, Any]:
        """The row as it was read, tag cell included."""
        return {**self.fields, "tags": self.tags}


class ParseError(BaseModel):
    """One rejected data row. All issues of the row are folded together."""

    model_config = {"frozen": True}

    row: int
    message: str
    fields: list[str] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


class CsvParseResult(BaseModel):
    model_config = {"frozen": True}

    rows: list[ImportRow] = Field(default_factory=list)
    errors: list[ParseError] = Field(default_factory=list)
    headers: list[str] = Field(default_factory=list)


class DuplicateRow(BaseModel):
    """A row skipped because an earlier row in the batch shares an identity value."""

    model_config = {"frozen": True}

    row: ImportRow
    field: str
    value: str
    first_row: int


class DuplicateCheck(BaseModel):
    model_config = {"frozen": True}

    unique: list[ImportRow] = Field(default_factory=list)
    duplicates: list[DuplicateRow] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Cell normalization
# ---------------------------------------------------------------------------


def convert_date_to_iso(value: str) -> str:
    """``YYYY/M/D`` → ``YYYY-MM-DD``; anything else passes through.

    Examples:
        >>> convert_date_to_iso("1990/1/1")
        '1990-01-01'
        >>> convert_date_to_iso("2024-02-01")
        '2024-02-01'
    """
    match = _SLASH_DATE.match(value)
    if match is None:
        return value
    year, month, day = match.groups()
    return f"{year}-{int(month):02d}-{int(day):02d}"


def _normalize_cell(field: str, value: str) -> str | None:
    value = value.strip()
    if not value:
        return None
    if field == "customer_type":
        return _CUSTOMER_TYPES.get(value.lower(), value)
    if field == "invoice_method":
        return _INVOICE_METHODS.get(value.lower(), value)
    if field in _DATE_FIELDS:
        return convert_date_to_iso(value)
    return value


def _map_row(headers: list[str | None], values: list[str]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for field, value in zip(headers, values, strict=False):
        if field is None or field == "id":
            continue
        data[field] = _normalize_cell(field, value or "")
    return data


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_customer_csv(text: str) -> CsvParseResult:
    """Parse and validate customer rows from CSV *text*.

    Raises:
        CsvFormatError: If the file has no header row, lacks the name column,
            or is not well-formed CSV (unterminated quote, oversized field).
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")), strict=True)
    try:
        records = [r for r in reader if any(cell.strip() for cell in r)]
    except csv.Error as exc:
        raise CsvFormatError(f"Malformed CSV near line {reader.line_num}: {exc}") from exc
    if not records:
        raise CsvFormatError("CSV file is empty")

    headers = [h.strip() for h in records[0]]
    fields: list[str | None] = [
        HEADER_MAPPING.get(h, h if h in FIELD_NAMES else None) for h in headers
    ]
    missing = [f for f in REQUIRED_FIELDS if f not in fields]
    if missing:
        raise CsvFormatError(f"Missing required column(s): {', '.join(missing)}")

    rows: list[ImportRow] = []
    errors: list[ParseError] = []
    for line_no, values in enumerate(records[1:], start=2):
        data = _map_row(fields, values)
        tags = data.pop("tags", None)
        scalars = {k: v for k, v in data.items() if v is not None}
        try:
            customer = CustomerInput.model_validate(scalars)
        except ValidationError as exc:
            issues = issues_from(exc)
            errors.append(
                ParseError(
                    row=line_no,
                    message=summarize_issues(issues),
                    fields=[i["field"] for i in issues if i["field"]],
                    data={**data, "tags": tags},
                )
            )
            continue
        rows.append(ImportRow(row_number=line_no, fields=customer.to_row(), tags=tags))

    return CsvParseResult(rows=rows, errors=errors, headers=headers)


def identity_value(row: ImportRow, field: str) -> str | None:
    """Normalized identity value of *row* for *field* (None when absent).

    Emails compare trimmed and case-folded; phones compare with hyphens
    removed; other fields compare trimmed.
    """
    raw = row.fields.get(field)
    if not raw:
        return None
    value = str(raw).strip()
    if field == "email":
        value = value.casefold()
    elif field == "phone":
        value = value.replace("-", "")
    return value or None


def detect_duplicates(
    rows: Sequence[ImportRow],
    identity_fields: Sequence[str] = ("email", "phone"),
) -> DuplicateCheck:
    """Partition *rows* into first occurrences and later duplicates.

    A row is a duplicate when any of its identity values was already seen
    on an earlier row of this batch. Previously persisted customers are not
    consulted.
    """
    seen: dict[tuple[str, str], int] = {}
    unique: list[ImportRow] = []
    duplicates: list[DuplicateRow] = []
    for row in rows:
        keys = [(f, v) for f in identity_fields if (v := identity_value(row, f)) is not None]
        clash = next((k for k in keys if k in seen), None)
        if clash is not None:
            duplicates.append(
                DuplicateRow(row=row, field=clash[0], value=clash[1], first_row=seen[clash])
            )
            continue
        for key in keys:
            seen[key] = row.row_number
        unique.append(row)
    return DuplicateCheck(unique=unique, duplicates=duplicates)


def csv_template() -> str:
    """Import template with sample rows, BOM-prefixed for spreadsheet apps."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(TEMPLATE_HEADERS)
    writer.writerows(TEMPLATE_ROWS)
    return "\ufeff" + buf.getvalue()
