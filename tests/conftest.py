"""Shared pytest fixtures and test helpers for backoffice tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from backoffice.config.settings import BackofficeSettings
from backoffice.infrastructure.store import Store
from backoffice.services.telemetry import _current_span, disable_telemetry


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Drop BACKOFFICE_* overrides and reset telemetry left on by ``-v`` runs."""
    monkeypatch.delenv("BACKOFFICE_CONFIG", raising=False)
    monkeypatch.delenv("BACKOFFICE_STORE__PATH", raising=False)
    yield
    disable_telemetry()
    _current_span.set(None)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def settings(tmp_path: Path) -> BackofficeSettings:
    """Settings rooted at a temp directory (no config file)."""
    return BackofficeSettings.from_cli(project_root=tmp_path)


@pytest.fixture
def store(settings: BackofficeSettings) -> Generator[Store]:
    """Store over a fresh SQLite database in the temp project."""
    s = Store.open(settings)
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def _isolated_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to a temp project root so the CLI uses an isolated database.

    Use via ``@pytest.mark.usefixtures("_isolated_project")`` on command test
    classes.
    """
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Shared test data
# ---------------------------------------------------------------------------


def invoice_body(**overrides: Any) -> dict[str, Any]:
    """A valid create/update body with two items (total 32000)."""
    body: dict[str, Any] = {
        "issue_date": "2024-10-01",
        "billing_name": "株式会社サンプル",
        "items": [
            {"item_name": "Consulting", "quantity": 2, "unit_price": 15000},
            {"item_name": "Travel", "quantity": 1, "unit": "式", "unit_price": 2000},
        ],
    }
    body.update(overrides)
    return body


@pytest.fixture
def invoice_data() -> dict[str, Any]:
    return invoice_body()
