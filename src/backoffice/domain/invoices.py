"""Invoice input models and total computation.

INVARIANT: ``total_amount == sum(quantity * unit_price)`` over the items,
computed in plain float arithmetic with no extra rounding. Each item's
``amount`` uses the same product, so the stored total always equals the
sum of the stored amounts.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator

DEFAULT_HONORIFIC = "様"
DEFAULT_UNIT = "個"


class InvoiceItemInput(BaseModel):
    """One line item as submitted by the caller."""

    model_config = {"frozen": True}

    product_id: str | None = None
    item_name: str = Field(min_length=1, max_length=100)
    quantity: float = Field(ge=0.01, le=999999)
    unit: str = Field(default=DEFAULT_UNIT, min_length=1, max_length=50)
    unit_price: float = Field(ge=0, le=99999999)
    description: str | None = Field(default=None, max_length=500)

    @field_validator("item_name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @property
    def amount(self) -> float:
        return line_amount(self.quantity, self.unit_price)


class InvoiceInput(BaseModel):
    """Header fields plus a fully formed item list."""

    model_config = {"frozen": True}

    issue_date: date
    billing_name: str = Field(min_length=1, max_length=200)
    billing_address: str | None = Field(default=None, max_length=500)
    billing_honorific: str = Field(default=DEFAULT_HONORIFIC, max_length=20)
    customer_id: str | None = None
    items: list[InvoiceItemInput] = Field(min_length=1)

    @property
    def total_amount(self) -> float:
        return compute_total(self.items)

    def header_row(self) -> dict[str, Any]:
        """Header columns (without number/identity) for insert or update."""
        return {
            "issue_date": self.issue_date.isoformat(),
            "billing_name": self.billing_name,
            "billing_address": self.billing_address,
            "billing_honorific": self.billing_honorific,
            "customer_id": self.customer_id,
            "total_amount": self.total_amount,
        }


def line_amount(quantity: float, unit_price: float) -> float:
    """``quantity * unit_price``, fractional quantities included."""
    return quantity * unit_price


def compute_total(items: list[InvoiceItemInput]) -> float:
    """Sum of line amounts.

    Examples:
        >>> compute_total([])
        0
    """
    return sum(line_amount(i.quantity, i.unit_price) for i in items)


def item_rows(invoice_id: str, items: list[InvoiceItemInput], *, start: int) -> list[dict[str, Any]]:
    """Rows for ``invoice_items`` with ``display_order`` counting up from *start*."""
    return [
        {
            "invoice_id": invoice_id,
            "product_id": item.product_id,
            "item_name": item.item_name,
            "quantity": item.quantity,
            "unit": item.unit,
            "unit_price": item.unit_price,
            "amount": item.amount,
            "description": item.description,
            "display_order": start + index,
        }
        for index, item in enumerate(items)
    ]
