"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, backoffice.toml only contains
overrides. An empty file (or no file at all) is a valid configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class StoreConfig(BaseModel):
    """[store] section."""

    model_config = {"frozen": True}

    # Relative paths resolve against the project root.
    path: str = ".backoffice/backoffice.db"


class TagsConfig(BaseModel):
    """[tags] section."""

    model_config = {"frozen": True}

    max_length: int = 50


class ImportConfig(BaseModel):
    """[csv_import] section."""

    model_config = {"frozen": True}

    header_offset: int = 1
    identity_fields: list[str] = Field(default_factory=lambda: ["email", "phone"])


class InvoicesConfig(BaseModel):
    """[invoices] section."""

    model_config = {"frozen": True}

    number_prefix: str = "INV-"
    max_items: int = 10
    default_honorific: str = "様"
    default_unit: str = "個"
    bulk_delete_limit: int = 100


class SearchConfig(BaseModel):
    """[search] section."""

    model_config = {"frozen": True}

    limit: int = 20
    suggestion_limit: int = 10


class BackofficeConfig(BaseModel):
    """Root configuration composing all sections."""

    model_config = {"frozen": True}

    store: StoreConfig = Field(default_factory=StoreConfig)
    tags: TagsConfig = Field(default_factory=TagsConfig)
    csv_import: ImportConfig = Field(default_factory=ImportConfig)
    invoices: InvoicesConfig = Field(default_factory=InvoicesConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
