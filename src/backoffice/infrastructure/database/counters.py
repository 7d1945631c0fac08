"""Atomic invoice number generation.

Uses the ``id_counters`` table, one row per number prefix. The read and
the increment run inside the caller's transaction so the claim is a single
atomic step: numbers never repeat, and a number claimed by an invoice
create that later fails is simply skipped.

The caller owns the transaction: pass a ``Connection`` obtained from
``engine.begin()``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import insert, select, update

from backoffice.infrastructure.database.schema import id_counters

if TYPE_CHECKING:
    from sqlalchemy import Connection


def next_invoice_number(conn: Connection, prefix: str, *, issue_date: str | None = None) -> str:
    """Claim the next invoice number for *prefix*.

    Counters are kept per ``prefix + YYYYMM`` of *issue_date* when given, so
    numbering restarts each month (e.g. ``"INV-202410-0001"``); without a date
    a single running counter is used (``"INV-0001"``). Minimum 4 digits,
    grows naturally past 9999.

    Raises:
        ValueError: If *prefix* is empty.
    """
    if not prefix:
        msg = "Invoice number prefix must not be empty"
        raise ValueError(msg)

    key = prefix
    if issue_date:
        key = f"{prefix}{issue_date[:4]}{issue_date[5:7]}-"

    row = conn.execute(
        select(id_counters.c.next_value).where(id_counters.c.type_prefix == key)
    ).first()

    if row is None:
        current_value = 1
        conn.execute(insert(id_counters).values(type_prefix=key, next_value=2))
    else:
        current_value = row.next_value
        conn.execute(
            update(id_counters)
            .where(id_counters.c.type_prefix == key)
            .values(next_value=current_value + 1)
        )

    return f"{key}{current_value:04d}"
