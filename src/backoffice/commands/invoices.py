"""Command group: invoices (create, update, read, search, delete)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from backoffice.commands._base import BoGroup
from backoffice.services.invoices import INVOICE_SORT_FIELDS, InvoiceService

if TYPE_CHECKING:
    from backoffice.commands._context import AppContext


_INVOICES_EXAMPLES = """\
  backoffice invoices create invoice.json
  backoffice invoices update 7c1d0e52-6b8f-4a3e-b2f4-1e9a0d3c5b77 invoice.json
  backoffice invoices list --limit 5
  backoffice invoices search サンプル --from 2024-10-01 --to 2024-10-31
  backoffice invoices delete-many ID1 ID2
  backoffice invoices show 7c1d0e52-6b8f-4a3e-b2f4-1e9a0d3c5b77"""

_BODY_HELP = """\
FILE is a JSON object (or - for stdin):

\b
  {"issue_date": "2024-10-01", "billing_name": "株式会社サンプル",
   "items": [{"item_name": "Consulting", "quantity": 2, "unit_price": 15000}]}
"""


@click.group(cls=BoGroup, examples=_INVOICES_EXAMPLES)
@click.pass_obj
def invoices(app: AppContext) -> None:
    """Create and manage invoices."""


@invoices.command(
    epilog=_BODY_HELP,
    examples="""\
  backoffice invoices create invoice.json
  echo '{"issue_date": "2024-10-01", ...}' | backoffice invoices create -""",
)
@click.argument("file", type=click.Path(dir_okay=False, allow_dash=True))
@click.pass_obj
def create(app: AppContext, file: str) -> None:
    """Create an invoice with its line items from FILE."""
    data = app.read_json("create_invoice", file)
    app.emit(InvoiceService(app.store, app.settings).create_invoice(data))


@invoices.command(
    epilog=_BODY_HELP,
    examples="""\
  backoffice invoices update 7c1d0e52-6b8f-4a3e-b2f4-1e9a0d3c5b77 invoice.json""",
)
@click.argument("invoice_id")
@click.argument("file", type=click.Path(dir_okay=False, allow_dash=True))
@click.pass_obj
def update(app: AppContext, invoice_id: str, file: str) -> None:
    """Replace an invoice's header and items with FILE."""
    data = app.read_json("update_invoice", file)
    app.emit(InvoiceService(app.store, app.settings).update_invoice(invoice_id, data))


@invoices.command(
    examples="""\
  backoffice invoices show 7c1d0e52-6b8f-4a3e-b2f4-1e9a0d3c5b77""",
)
@click.argument("invoice_id")
@click.pass_obj
def show(app: AppContext, invoice_id: str) -> None:
    """Show an invoice with its items."""
    app.emit(InvoiceService(app.store, app.settings).get_invoice(invoice_id))


@invoices.command(
    examples="""\
  backoffice invoices delete 7c1d0e52-6b8f-4a3e-b2f4-1e9a0d3c5b77""",
)
@click.argument("invoice_id")
@click.pass_obj
def delete(app: AppContext, invoice_id: str) -> None:
    """Soft-delete an invoice and its items."""
    app.emit(InvoiceService(app.store, app.settings).delete_invoice(invoice_id))


@invoices.command(
    "list",
    examples="""\
  backoffice invoices list
  backoffice -q invoices list --limit 10""",
)
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Maximum invoices.")
@click.pass_obj
def list_cmd(app: AppContext, limit: int | None) -> None:
    """List active invoices, newest first."""
    app.emit(InvoiceService(app.store, app.settings).list_invoices(limit=limit))


@invoices.command(
    "delete-many",
    examples="""\
  backoffice invoices delete-many 7c1d0e52-6b8f-4a3e-b2f4-1e9a0d3c5b77 0a6f3e1b-2c4d-4e8f-9a1b-3c5d7e9f1a2b
  backoffice -q invoices search --to 2023-12-31 | xargs backoffice invoices delete-many""",
)
@click.argument("invoice_ids", nargs=-1, required=True)
@click.pass_obj
def delete_many(app: AppContext, invoice_ids: tuple[str, ...]) -> None:
    """Soft-delete several invoices; unknown ids are reported, not fatal."""
    app.emit(InvoiceService(app.store, app.settings).delete_invoices(list(invoice_ids)))


@invoices.command(
    examples="""\
  backoffice invoices search サンプル
  backoffice invoices search --from 2024-10-01 --to 2024-10-31 --min 10000
  backoffice invoices search --customer 3f2b1c9e-0d4a-4c1e-9a57-5b0f0c4d2e11 --sort amount
  backoffice --json invoices search "INV-2024 サンプル" --page 2 --limit 10""",
)
@click.argument("query", required=False, default=None)
@click.option("--from", "date_from", default=None, help="Issued on or after (YYYY-MM-DD).")
@click.option("--to", "date_to", default=None, help="Issued on or before (YYYY-MM-DD).")
@click.option("--min", "amount_min", type=float, default=None, help="Minimum total amount.")
@click.option("--max", "amount_max", type=float, default=None, help="Maximum total amount.")
@click.option("--customer", "customer_ids", multiple=True, help="Customer id (repeatable).")
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Page size.")
@click.option(
    "--sort",
    "sort_by",
    type=click.Choice(sorted(INVOICE_SORT_FIELDS | {"amount"})),
    default="issue_date",
    show_default=True,
)
@click.option("--asc", is_flag=True, help="Ascending order (default: descending).")
@click.pass_obj
def search(
    app: AppContext,
    query: str | None,
    date_from: str | None,
    date_to: str | None,
    amount_min: float | None,
    amount_max: float | None,
    customer_ids: tuple[str, ...],
    page: int,
    limit: int | None,
    sort_by: str,
    asc: bool,
) -> None:
    """Search active invoices by number, billing name or address."""
    svc = InvoiceService(app.store, app.settings)
    app.emit(
        svc.search_invoices(
            query,
            date_from=date_from,
            date_to=date_to,
            amount_min=amount_min,
            amount_max=amount_max,
            customer_ids=list(customer_ids),
            page=page,
            limit=limit,
            sort_by=sort_by,
            descending=not asc,
        )
    )
