"""Customer input model and business rules.

Validation runs before any write. Blank strings are treated as absent and
every text field is trimmed, so persisted rows never carry stray padding.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE = re.compile(r"^[\d-]+$")
_POSTAL_CODE = re.compile(r"^\d{3}-?\d{4}$")


class CustomerType(StrEnum):
    PERSONAL = "personal"
    COMPANY = "company"


class InvoiceMethod(StrEnum):
    MAIL = "mail"
    EMAIL = "email"


# Column names persisted for a customer, in table order.
CUSTOMER_FIELDS: tuple[str, ...] = (
    "customer_type",
    "company_name",
    "name",
    "name_kana",
    "class",
    "birth_date",
    "postal_code",
    "prefecture",
    "city",
    "address",
    "phone",
    "email",
    "contract_start_date",
    "invoice_method",
    "payment_terms",
    "memo",
)


class CustomerInput(BaseModel):
    """Fields accepted when creating a customer.

    ``class`` is a Python keyword, so the model exposes it as
    ``customer_class`` with the alias ``class``.
    """

    model_config = {"frozen": True, "populate_by_name": True, "extra": "forbid"}

    customer_type: CustomerType = CustomerType.PERSONAL
    company_name: str | None = None
    name: str = Field(min_length=1)
    name_kana: str | None = None
    customer_class: str | None = Field(default=None, alias="class")
    birth_date: str | None = None
    postal_code: str | None = None
    prefecture: str | None = None
    city: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    contract_start_date: str | None = None
    invoice_method: InvoiceMethod | None = None
    payment_terms: str | None = None
    memo: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str | None) -> str | None:
        if value is not None and not _EMAIL.match(value):
            raise ValueError("invalid email address")
        return value

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str | None) -> str | None:
        if value is not None and not _PHONE.match(value):
            raise ValueError("phone may contain only digits and hyphens")
        return value

    @field_validator("postal_code")
    @classmethod
    def _check_postal_code(cls, value: str | None) -> str | None:
        if value is not None and not _POSTAL_CODE.match(value):
            raise ValueError("postal code must look like 000-0000")
        return value

    @model_validator(mode="after")
    def _company_needs_name(self) -> CustomerInput:
        if self.customer_type is CustomerType.COMPANY and not self.company_name:
            raise ValueError("company_name is required for company customers")
        return self

    def to_row(self) -> dict[str, Any]:
        """Column dict ready for ``Store.insert('customers', ...)``."""
        data = self.model_dump(by_alias=True, mode="json")
        return {key: data[key] for key in CUSTOMER_FIELDS}
