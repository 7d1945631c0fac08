"""backoffice: customers, invoices, and tags on top of single-table atomic writes."""

__version__ = "0.1.0"
