"""Command group: customers (CSV import, creation, update, lookup, search)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from backoffice.commands._base import BoGroup
from backoffice.services.customers import SORTABLE_FIELDS, CustomerService
from backoffice.services.importer import ImportService
from backoffice.services.result import ServiceResult
from backoffice.services.tags import TagService

if TYPE_CHECKING:
    from backoffice.commands._context import AppContext


_CUSTOMERS_EXAMPLES = """\
  backoffice customers import customers.csv
  backoffice customers template > customers.csv
  backoffice customers create --name "山田 太郎" --email taro@example.com --tag VIP
  backoffice customers search やまだ --type company --page 2
  backoffice customers suggest ヤマ"""


@click.group(cls=BoGroup, examples=_CUSTOMERS_EXAMPLES)
@click.pass_obj
def customers(app: AppContext) -> None:
    """Import, create, and search customers."""


@customers.command(
    "import",
    examples="""\
  backoffice customers import customers.csv
  backoffice --json customers import customers.csv
  cat customers.csv | backoffice customers import -""",
)
@click.argument("file", type=click.Path(dir_okay=False, allow_dash=True))
@click.pass_obj
def import_cmd(app: AppContext, file: str) -> None:
    """Import customers from a CSV FILE (UTF-8, optional BOM)."""
    raw = app.read_text("import_customers", file)
    app.emit(ImportService(app.store, app.settings).import_csv(raw))


@customers.command(
    examples="""\
  backoffice customers template > customers.csv""",
)
@click.pass_obj
def template(app: AppContext) -> None:
    """Print an import template with sample rows."""
    from backoffice.infrastructure.csv_import import csv_template

    if app.settings.json_output:
        app.emit(ServiceResult(ok=True, op="csv_template", data={"csv": csv_template()}))
        return
    click.echo(csv_template(), nl=False)


@customers.command(
    examples="""\
  backoffice customers create --name "山田 太郎"
  backoffice customers create --type company --company-name "株式会社サンプル" --name "佐藤 花子"
  backoffice customers create --name "鈴木 一郎" --set postal_code=100-0001 --tag VIP --tag 新規""",
)
@click.option("--name", required=True, help="Customer name.")
@click.option("--kana", "name_kana", default=None, help="Name reading (furigana).")
@click.option(
    "--type",
    "customer_type",
    type=click.Choice(["personal", "company"]),
    default="personal",
    show_default=True,
    help="Customer type.",
)
@click.option("--company-name", default=None, help="Company name (required for companies).")
@click.option("--class", "customer_class", default=None, help="Customer class.")
@click.option("--email", default=None, help="Email address.")
@click.option("--phone", default=None, help="Phone number.")
@click.option("--set", "extra", multiple=True, help="Other field as KEY=VALUE (repeatable).")
@click.option("--tag", "tag_names", multiple=True, help="Tag name (repeatable).")
@click.pass_obj
def create(
    app: AppContext,
    name: str,
    name_kana: str | None,
    customer_type: str,
    company_name: str | None,
    customer_class: str | None,
    email: str | None,
    phone: str | None,
    extra: tuple[str, ...],
    tag_names: tuple[str, ...],
) -> None:
    """Create one customer, optionally tagged."""
    fields: dict[str, str | None] = {
        "name": name,
        "name_kana": name_kana,
        "customer_type": customer_type,
        "company_name": company_name,
        "class": customer_class,
        "email": email,
        "phone": phone,
    }
    fields.update(_parse_set(extra))
    tag_ids = _resolve_tags(app, tag_names) if tag_names else []

    svc = CustomerService(app.store, app.settings)
    app.emit(svc.create_customer(fields, tag_ids=tag_ids))


@customers.command(
    examples="""\
  backoffice customers update 3f2b1c9e-0d4a-4c1e-9a57-5b0f0c4d2e11 --email new@example.com
  backoffice customers update 3f2b1c9e-0d4a-4c1e-9a57-5b0f0c4d2e11 --tag VIP --tag 新規
  backoffice customers update 3f2b1c9e-0d4a-4c1e-9a57-5b0f0c4d2e11 --clear-tags
  backoffice customers update 3f2b1c9e-0d4a-4c1e-9a57-5b0f0c4d2e11 --set memo=""",
)
@click.argument("customer_id")
@click.option("--name", default=None, help="Customer name.")
@click.option("--kana", "name_kana", default=None, help="Name reading (furigana).")
@click.option(
    "--type",
    "customer_type",
    type=click.Choice(["personal", "company"]),
    default=None,
    help="Customer type.",
)
@click.option("--company-name", default=None, help="Company name.")
@click.option("--class", "customer_class", default=None, help="Customer class.")
@click.option("--email", default=None, help="Email address.")
@click.option("--phone", default=None, help="Phone number.")
@click.option("--set", "extra", multiple=True, help="Other field as KEY=VALUE; empty clears it.")
@click.option("--tag", "tag_names", multiple=True, help="Replace all tags (repeatable).")
@click.option("--clear-tags", is_flag=True, help="Remove every tag from the customer.")
@click.pass_obj
def update(
    app: AppContext,
    customer_id: str,
    name: str | None,
    name_kana: str | None,
    customer_type: str | None,
    company_name: str | None,
    customer_class: str | None,
    email: str | None,
    phone: str | None,
    extra: tuple[str, ...],
    tag_names: tuple[str, ...],
    clear_tags: bool,
) -> None:
    """Update a customer's fields; --tag or --clear-tags replaces its tags."""
    if tag_names and clear_tags:
        raise click.UsageError("--tag and --clear-tags are mutually exclusive")
    options = {
        "name": name,
        "name_kana": name_kana,
        "customer_type": customer_type,
        "company_name": company_name,
        "class": customer_class,
        "email": email,
        "phone": phone,
    }
    fields: dict[str, str | None] = {k: v for k, v in options.items() if v is not None}
    fields.update(_parse_set(extra))

    tag_ids: list[str] | None = None
    if clear_tags:
        tag_ids = []
    elif tag_names:
        tag_ids = _resolve_tags(app, tag_names)

    svc = CustomerService(app.store, app.settings)
    app.emit(svc.update_customer(customer_id, fields, tag_ids=tag_ids))


@customers.command(
    examples="""\
  backoffice customers show 3f2b1c9e-0d4a-4c1e-9a57-5b0f0c4d2e11""",
)
@click.argument("customer_id")
@click.pass_obj
def show(app: AppContext, customer_id: str) -> None:
    """Show one customer with its tags."""
    app.emit(CustomerService(app.store, app.settings).get_customer(customer_id))


@customers.command(
    examples="""\
  backoffice customers delete 3f2b1c9e-0d4a-4c1e-9a57-5b0f0c4d2e11""",
)
@click.argument("customer_id")
@click.pass_obj
def delete(app: AppContext, customer_id: str) -> None:
    """Soft-delete a customer."""
    app.emit(CustomerService(app.store, app.settings).delete_customer(customer_id))


@customers.command(
    examples="""\
  backoffice customers search
  backoffice customers search やまだ
  backoffice customers search --type company --class A --sort name --asc
  backoffice --json customers search 佐藤 --page 2 --limit 10""",
)
@click.argument("query", required=False, default=None)
@click.option(
    "--type",
    "customer_type",
    type=click.Choice(["personal", "company"]),
    default=None,
    help="Filter by customer type.",
)
@click.option("--class", "customer_class", default=None, help="Filter by class.")
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Page size.")
@click.option(
    "--sort",
    "sort_by",
    type=click.Choice(sorted(SORTABLE_FIELDS)),
    default="created_at",
    show_default=True,
)
@click.option("--asc", is_flag=True, help="Ascending order (default: descending).")
@click.pass_obj
def search(
    app: AppContext,
    query: str | None,
    customer_type: str | None,
    customer_class: str | None,
    page: int,
    limit: int | None,
    sort_by: str,
    asc: bool,
) -> None:
    """Search active customers (kana-insensitive)."""
    svc = CustomerService(app.store, app.settings)
    app.emit(
        svc.search_customers(
            query,
            customer_type=customer_type,
            customer_class=customer_class,
            page=page,
            limit=limit,
            sort_by=sort_by,
            descending=not asc,
        )
    )


@customers.command(
    examples="""\
  backoffice customers suggest やま
  backoffice customers suggest sato --limit 5""",
)
@click.argument("query")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Maximum suggestions.")
@click.pass_obj
def suggest(app: AppContext, query: str, limit: int | None) -> None:
    """Suggest customers for autocomplete."""
    app.emit(CustomerService(app.store, app.settings).suggest(query, limit=limit))


def _parse_set(items: tuple[str, ...]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--set")
        fields[key.strip()] = value
    return fields


def _resolve_tags(app: AppContext, names: tuple[str, ...]) -> list[str]:
    resolved = TagService(app.store, app.settings).resolve_or_create(list(names))
    if not resolved.ok:
        app.abort(resolved)
    return list(resolved.data["ids"])
