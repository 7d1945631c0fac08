"""SQLAlchemy Core table definitions for the backoffice database.

Identity columns are UUID4 text. Soft-deletable tables carry ``deleted_at``
(NULL while active). Monetary and quantity columns are REAL: totals are the
plain sum of ``quantity * unit_price`` with no extra rounding.
"""

from __future__ import annotations

from sqlalchemy import (
    REAL,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

customers = Table(
    "customers",
    metadata,
    Column("id", Text, primary_key=True),
    Column("customer_type", Text, nullable=False),  # personal | company
    Column("company_name", Text),
    Column("name", Text, nullable=False),
    Column("name_kana", Text),
    Column("class", Text),  # schedule slot
    Column("birth_date", Text),
    Column("postal_code", Text),
    Column("prefecture", Text),
    Column("city", Text),
    Column("address", Text),
    Column("phone", Text),
    Column("email", Text),
    Column("contract_start_date", Text),
    Column("invoice_method", Text),  # mail | email
    Column("payment_terms", Text),
    Column("memo", Text),
    Column("created_at", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
    Column("deleted_at", Text),
)

tags = Table(
    "tags",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text, nullable=False),
    Column("created_at", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
    # Backstop for concurrent resolvers racing on the same new name.
    UniqueConstraint("name", name="uq_tags_name"),
)

# No uniqueness on (customer_id, tag_id): duplicate pairs are the caller's concern.
customer_tags = Table(
    "customer_tags",
    metadata,
    Column("id", Text, primary_key=True),
    Column("customer_id", Text, ForeignKey("customers.id"), nullable=False),
    Column("tag_id", Text, ForeignKey("tags.id"), nullable=False),
    Column("created_at", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
)

invoices = Table(
    "invoices",
    metadata,
    Column("id", Text, primary_key=True),
    Column("invoice_number", Text, nullable=False, unique=True),
    Column("issue_date", Text, nullable=False),
    Column("billing_name", Text, nullable=False),
    Column("billing_address", Text),
    Column("billing_honorific", Text),
    Column("customer_id", Text),
    Column("total_amount", REAL, nullable=False, default=0.0, server_default="0.0"),
    Column("created_at", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
    Column("deleted_at", Text),
)

# No FK to invoices: a compensating header delete must not be blocked by
# items, and items must be insertable in a separate single-table write.
invoice_items = Table(
    "invoice_items",
    metadata,
    Column("id", Text, primary_key=True),
    Column("invoice_id", Text, nullable=False),
    Column("product_id", Text),
    Column("item_name", Text, nullable=False),
    Column("quantity", REAL, nullable=False),
    Column("unit", Text),
    Column("unit_price", REAL, nullable=False),
    Column("amount", REAL, nullable=False),
    Column("description", Text),
    Column("display_order", Integer, nullable=False),
    Column("created_at", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
    Column("deleted_at", Text),
)

id_counters = Table(
    "id_counters",
    metadata,
    Column("type_prefix", Text, primary_key=True),
    Column("next_value", Integer, nullable=False, default=1, server_default="1"),
)

# ---------------------------------------------------------------------------
# Indexes for frequently filtered columns
# ---------------------------------------------------------------------------

Index("ix_customers_deleted_at", customers.c.deleted_at)
Index("ix_customers_email", customers.c.email)
Index("ix_customer_tags_customer", customer_tags.c.customer_id)
Index("ix_customer_tags_tag", customer_tags.c.tag_id)
Index("ix_invoices_deleted_at", invoices.c.deleted_at)
Index("ix_invoice_items_invoice", invoice_items.c.invoice_id)

# Tables addressable by name through the Store.
TABLES: dict[str, Table] = {
    table.name: table
    for table in (customers, tags, customer_tags, invoices, invoice_items)
}
