"""Store: the injected handle for single-table atomic operations.

Every public method runs in its own ``engine.begin()`` block, so each call
either commits as a unit or leaves the table untouched. Nothing spans two
calls: multi-entity writes are orchestrated (and compensated) by the
service layer.

Filters are plain mappings of column name to value:

- a scalar matches by equality,
- ``None`` matches ``IS NULL`` (used for ``deleted_at``),
- a list/tuple/set matches with ``IN``.

Order specs are column names, prefixed with ``-`` for descending.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import AbstractContextManager, contextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from backoffice.infrastructure.database.counters import next_invoice_number
from backoffice.infrastructure.database.engine import init_database
from backoffice.infrastructure.database.schema import TABLES
from backoffice.services._helpers import new_id, now_iso
from backoffice.services.telemetry import record_store_call

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement, Connection, Table
    from sqlalchemy.engine import Engine

    from backoffice.config.settings import BackofficeSettings

logger = logging.getLogger(__name__)

Filters = Mapping[str, Any]
Row = dict[str, Any]


class StoreError(Exception):
    """A single store operation failed; the table was left untouched."""

    def __init__(
        self,
        message: str,
        *,
        table: str,
        operation: str,
        conflict: bool = False,
    ) -> None:
        super().__init__(message)
        self.table = table
        self.operation = operation
        self.conflict = conflict


class Store:
    """Single-table atomic operations over the backoffice database.

    Constructed once per process (or per test) and passed explicitly into
    every service.
    """

    def __init__(self, engine: Engine, *, invoice_prefix: str = "INV-") -> None:
        self._engine = engine
        self._invoice_prefix = invoice_prefix

    @classmethod
    def open(cls, settings: BackofficeSettings) -> Store:
        """Initialize the database described by *settings* and wrap it."""
        engine = init_database(settings.db_path)
        return cls(engine, invoice_prefix=settings.invoices.number_prefix)

    @property
    def engine(self) -> Engine:
        """The underlying SQLAlchemy engine (for direct access in tests and tooling)."""
        return self._engine

    def close(self) -> None:
        """Dispose the engine's connection pool."""
        self._engine.dispose()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        order_by: Sequence[str] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Row]:
        """Return rows of *table* matching *filters* as plain dicts."""
        tbl = self._table(table)
        stmt = select(tbl).where(*self._where(tbl, filters))
        stmt = stmt.order_by(*self._order(tbl, order_by))
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        with self._run(table, "select") as conn:
            return [dict(r._mapping) for r in conn.execute(stmt)]

    def count(self, table: str, filters: Filters | None = None) -> int:
        """Count rows of *table* matching *filters*."""
        tbl = self._table(table)
        stmt = select(func.count()).select_from(tbl).where(*self._where(tbl, filters))
        with self._run(table, "count") as conn:
            return int(conn.execute(stmt).scalar_one())

    def search(
        self,
        table: str,
        columns: Sequence[str],
        patterns: Sequence[str],
        filters: Filters | None = None,
        *,
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Row]:
        """Rows where any of *columns* contains any of *patterns* (OR match)."""
        tbl = self._table(table)
        clauses = [
            tbl.c[col].contains(pattern, autoescape=True)
            for col in columns
            for pattern in patterns
            if pattern
        ]
        stmt = select(tbl).where(*self._where(tbl, filters))
        if clauses:
            stmt = stmt.where(or_(*clauses))
        stmt = stmt.order_by(*self._order(tbl, order_by))
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._run(table, "search") as conn:
            return [dict(r._mapping) for r in conn.execute(stmt)]

    # ------------------------------------------------------------------
    # Writes (each one atomic on its own)
    # ------------------------------------------------------------------

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        """Insert *rows* in one statement and return them as created.

        Missing ``id``/``created_at``/``updated_at`` values are stamped.
        An empty *rows* sequence is a no-op that never touches the store.
        """
        if not rows:
            return []
        tbl = self._table(table)
        now = now_iso()
        prepared: list[Row] = []
        for row in rows:
            values = dict(row)
            if "id" in tbl.c and not values.get("id"):
                values["id"] = new_id()
            for stamp in ("created_at", "updated_at"):
                if stamp in tbl.c:
                    values.setdefault(stamp, now)
            prepared.append(values)

        # executemany compiles against the first row's keys; give every row the same keys.
        keys = list(dict.fromkeys(k for values in prepared for k in values))
        prepared = [{k: values.get(k, _default(tbl, k)) for k in keys} for values in prepared]

        ids = [v["id"] for v in prepared]
        with self._run(table, "insert") as conn:
            conn.execute(insert(tbl), prepared)
            created = {
                r.id: dict(r._mapping) for r in conn.execute(select(tbl).where(tbl.c.id.in_(ids)))
            }
        logger.debug("Inserted %d row(s) into %s", len(prepared), table)
        return [created[i] for i in ids]

    def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> int:
        """Apply *patch* to rows matching *filters*. Returns the row count."""
        tbl = self._table(table)
        self._require_filters(table, "update", filters)
        values = dict(patch)
        if "updated_at" in tbl.c:
            values.setdefault("updated_at", now_iso())
        stmt = update(tbl).where(*self._where(tbl, filters)).values(**values)
        with self._run(table, "update") as conn:
            count = conn.execute(stmt).rowcount
        logger.debug("Updated %d row(s) in %s", count, table)
        return count

    def delete(self, table: str, filters: Filters) -> int:
        """Hard-delete rows matching *filters*. Returns the row count."""
        tbl = self._table(table)
        self._require_filters(table, "delete", filters)
        stmt = delete(tbl).where(*self._where(tbl, filters))
        with self._run(table, "delete") as conn:
            count = conn.execute(stmt).rowcount
        logger.debug("Deleted %d row(s) from %s", count, table)
        return count

    def next_invoice_number(self, *, issue_date: str | None = None) -> str:
        """Claim the next invoice number (atomic read-and-increment)."""
        with self._run("id_counters", "next_invoice_number") as conn:
            return next_invoice_number(conn, self._invoice_prefix, issue_date=issue_date)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, table: str, operation: str) -> AbstractContextManager[Connection]:
        record_store_call()
        return _atomic(self._engine, table, operation)

    @staticmethod
    def _table(name: str) -> Table:
        try:
            return TABLES[name]
        except KeyError:
            msg = f"Unknown table: {name!r}"
            raise StoreError(msg, table=name, operation="resolve") from None

    @staticmethod
    def _where(tbl: Table, filters: Filters | None) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        for key, value in (filters or {}).items():
            col = tbl.c[key]
            if value is None:
                clauses.append(col.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(col.in_(list(value)))
            else:
                clauses.append(col == value)
        return clauses

    @staticmethod
    def _order(tbl: Table, order_by: Sequence[str]) -> list[Any]:
        return [
            tbl.c[key[1:]].desc() if key.startswith("-") else tbl.c[key].asc()
            for key in order_by
        ]

    @staticmethod
    def _require_filters(table: str, operation: str, filters: Filters) -> None:
        if not filters:
            msg = f"Refusing unfiltered {operation} on {table}"
            raise StoreError(msg, table=table, operation=operation)


def _default(tbl: Table, key: str) -> Any:
    """Scalar column default for *key*, else None."""
    if key not in tbl.c:
        return None
    default = tbl.c[key].default
    if default is not None and default.is_scalar:
        return default.arg
    return None


@contextmanager
def _atomic(engine: Engine, table: str, operation: str) -> Iterator[Connection]:
    """One ``engine.begin()`` block; SQLAlchemy errors surface as StoreError."""
    try:
        with engine.begin() as conn:
            yield conn
    except SQLAlchemyError as exc:
        logger.warning("Store %s on %s failed: %s", operation, table, exc)
        raise StoreError(
            f"{operation} on {table} failed: {exc.__class__.__name__}",
            table=table,
            operation=operation,
            conflict=isinstance(exc, IntegrityError),
        ) from exc
