"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO). The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from backoffice.output.console import create_console, get_output

if TYPE_CHECKING:
    from rich.console import Console

    from backoffice.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    items = result.data.get("items")
    if items and isinstance(items, list):
        return "\n".join(str(item["id"]) for item in items if isinstance(item, dict) and "id" in item)
    for key in ("invoice", "customer"):
        record = result.data.get(key)
        if isinstance(record, dict) and "id" in record:
            return str(record["id"])
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK status line."""
    console.print(Text.assemble(Text("OK", style="bo.ok"), Text(f"  {result.op}", style="bo.op")))


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="bo.key")
    if key == "id" or key.endswith("_id"):
        v = Text(str(value), style="bo.id")
    elif key == "invoice_number":
        v = Text(str(value), style="bo.number")
    elif key == "total_amount":
        v = Text(_money(value), style="bo.amount")
    else:
        v = Text(str(value))
    console.print(Text.assemble(k, v))


def _money(value: Any) -> str:
    if isinstance(value, (int, float)):
        return f"{value:,.2f}".rstrip("0").rstrip(".")
    return str(value)


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(console: Console, span_data: dict[str, Any], indent: int = 4) -> None:
    """Render a span tree: duration, then store round trips."""
    prefix = " " * indent
    duration = span_data.get("duration_ms", 0.0)
    style = "bold red" if duration > 1000 else "yellow" if duration > 100 else "dim"
    calls = span_data.get("store_calls", 0)
    console.print(
        f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {span_data.get('name', '?')}"
        f"  (store_calls={calls})"
    )
    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="bo.error")
    op = Text(f"  {result.op}", style="bo.op")
    console.print(Text.assemble(label, op, " — ", msg))
    if err is not None:
        console.print(Text(f"  {err.kind.value} ({err.http_status})", style="bo.kind"))
    if result.op == "import_customers" and result.data:
        _render_import_body(result, console)
    if result.op == "delete_invoices" and result.data:
        _render_failed_ids(console, result.data.get("failed", []))
    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Customers ─────────────────────────────────────────────────────────


def _render_import(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _render_import_body(result, console)
    if verbose:
        _render_meta(console, result)


def _render_import_body(result: ServiceResult, console: Console) -> None:
    d = result.data
    for key in ("total", "success", "failed", "skipped"):
        _field(console, key, d.get(key, 0))
    if d.get("message"):
        _field(console, "message", d["message"])

    errors = d.get("errors", [])
    if errors:
        table = Table(show_header=True, pad_edge=False, expand=False, title="errors")
        table.add_column("Row", justify="right")
        table.add_column("Kind", style="bo.kind")
        table.add_column("Message")
        for entry in errors:
            table.add_row(str(entry["row"]), str(entry["kind"]), str(entry["message"]))
        console.print(table)

    for dup in d.get("duplicates", []):
        console.print(
            f"  [bo.warning]skipped[/bo.warning] row {dup['row']}: "
            f"{dup['field']}={dup['value']} (first seen on row {dup['first_row']})"
        )


def _render_customer(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    customer = result.data.get("customer", {})
    lines = [
        f"{key}: {value}"
        for key, value in customer.items()
        if value is not None and key not in ("id", "name")
    ]
    tags = result.data.get("tags")
    if tags:
        lines.append(f"tags: {', '.join(t['name'] for t in tags)}")
    title = f"{customer.get('id', '?')} — {customer.get('name', '')}"
    console.print(Panel("\n".join(lines), title=title, border_style="dim", expand=False))


def _render_customer_table(
    result: ServiceResult, console: Console, *, verbose: bool = False
) -> None:
    items = result.data.get("items", [])
    scored = bool(items) and "score" in items[0]
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("ID", style="bo.id", no_wrap=True)
    table.add_column("Name")
    table.add_column("Kana")
    table.add_column("Type")
    table.add_column("Company")
    if scored:
        table.add_column("Score", style="bo.score", justify="right")
    for item in items:
        row = [
            str(item.get("id", "")),
            str(item.get("name") or ""),
            str(item.get("name_kana") or ""),
            str(item.get("customer_type") or ""),
            str(item.get("company_name") or ""),
        ]
        if scored:
            row.append(f"{float(item['score']):.1f}")
        table.add_row(*row)
    console.print(table)
    if "total_count" in result.data:
        d = result.data
        console.print(f"\n{d['total_count']} customers (page {d['page']}/{max(d['total_pages'], 1)})")


# ── Invoices ──────────────────────────────────────────────────────────


def _render_invoice(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    invoice = result.data.get("invoice", {})
    for key in ("id", "invoice_number", "issue_date", "billing_name", "total_amount"):
        if key in invoice:
            _field(console, key, invoice[key])
    items = result.data.get("items", [])
    if items:
        table = Table(show_header=True, pad_edge=False, expand=False)
        table.add_column("#", justify="right")
        table.add_column("Item")
        table.add_column("Qty", justify="right")
        table.add_column("Unit")
        table.add_column("Unit price", justify="right")
        table.add_column("Amount", style="bo.amount", justify="right")
        for item in items:
            table.add_row(
                str(item["display_order"]),
                str(item["item_name"]),
                f"{item['quantity']:g}",
                str(item.get("unit") or ""),
                _money(item["unit_price"]),
                _money(item["amount"]),
            )
        console.print(table)
    if verbose:
        _render_meta(console, result)


def _render_invoice_table(
    result: ServiceResult, console: Console, *, verbose: bool = False
) -> None:
    items = result.data.get("items", [])
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("ID", style="bo.id", no_wrap=True)
    table.add_column("Number", style="bo.number")
    table.add_column("Issued")
    table.add_column("Billing name")
    table.add_column("Total", style="bo.amount", justify="right")
    for inv in items:
        table.add_row(
            str(inv["id"]),
            str(inv["invoice_number"]),
            str(inv["issue_date"]),
            str(inv["billing_name"]),
            _money(inv["total_amount"]),
        )
    console.print(table)
    d = result.data
    if "total_count" in d:
        console.print(
            f"\n{d['total_count']} invoices (page {d['page']}/{max(d['total_pages'], 1)}),"
            f" total {_money(d['total_amount'])}"
        )
    else:
        console.print(f"\n{d.get('count', len(items))} invoices")


def _render_bulk_delete(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    d = result.data
    _field(console, "deleted", len(d.get("deleted", [])))
    _field(console, "items_deleted", d.get("items_deleted"))
    _render_failed_ids(console, d.get("failed", []))
    if verbose:
        _render_meta(console, result)


def _render_failed_ids(console: Console, failed: list[dict[str, str]]) -> None:
    for entry in failed:
        console.print(
            Text.assemble(
                "  ", Text("failed", style="bo.warning"), f" {entry['id']}: {entry['error']}"
            )
        )


# ── Tags ──────────────────────────────────────────────────────────────


def _render_tag_table(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("ID", style="bo.id", no_wrap=True)
    table.add_column("Name")
    table.add_column("Customers", justify="right")
    for tag in result.data.get("items", []):
        table.add_row(str(tag["id"]), str(tag["name"]), str(tag["usage"]))
    console.print(table)


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        if isinstance(value, (dict, list)):
            _field(console, key, json.dumps(value, separators=(",", ":"), ensure_ascii=False))
        else:
            _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    # Customers
    "import_customers": _render_import,
    "get_customer": _render_customer,
    "update_customer": _render_customer,
    "search_customers": _render_customer_table,
    "suggest_customers": _render_customer_table,
    # Invoices
    "create_invoice": _render_invoice,
    "update_invoice": _render_invoice,
    "get_invoice": _render_invoice,
    "list_invoices": _render_invoice_table,
    "search_invoices": _render_invoice_table,
    "delete_invoices": _render_bulk_delete,
    # Tags
    "list_tags": _render_tag_table,
}
