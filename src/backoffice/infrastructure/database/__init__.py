"""SQLite database engine, schema, and invoice counters via SQLAlchemy Core."""

from backoffice.infrastructure.database.counters import next_invoice_number
from backoffice.infrastructure.database.engine import create_db_engine, init_database
from backoffice.infrastructure.database.schema import (
    TABLES,
    customer_tags,
    customers,
    id_counters,
    invoice_items,
    invoices,
    metadata,
    tags,
)

__all__ = [
    "TABLES",
    "create_db_engine",
    "customer_tags",
    "customers",
    "id_counters",
    "init_database",
    "invoice_items",
    "invoices",
    "metadata",
    "next_invoice_number",
    "tags",
]
