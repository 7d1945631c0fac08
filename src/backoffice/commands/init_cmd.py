"""Command: project initialization (named init_cmd to avoid shadowing builtins)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click
from sqlalchemy.exc import SQLAlchemyError

from backoffice.commands._base import BoCommand
from backoffice.config.discovery import CONFIG_FILENAME
from backoffice.config.settings import BackofficeSettings
from backoffice.services.result import ErrorKind, ServiceResult, failure

if TYPE_CHECKING:
    from backoffice.commands._context import AppContext

_INIT_EXAMPLES = """\
  backoffice init
  backoffice init /srv/backoffice
  backoffice init . --no-config"""

_CONFIG_STUB = """\
# backoffice configuration. Every key is optional; defaults shown.

[store]
# path = ".backoffice/backoffice.db"

[csv_import]
# header_offset = 1
# identity_fields = ["email", "phone"]

[invoices]
# number_prefix = "INV-"
# max_items = 10
# bulk_delete_limit = 100
"""


@click.command("init", cls=BoCommand, examples=_INIT_EXAMPLES)
@click.argument("path", required=False, default=".")
@click.option("--no-config", is_flag=True, help=f"Do not write {CONFIG_FILENAME}.")
@click.pass_obj
def init_cmd(app: AppContext, path: str, no_config: bool) -> None:
    """Create the database (and a starter config) under PATH."""
    from backoffice.infrastructure.database.engine import init_database

    op = "init"
    root = Path(path).resolve()
    config_file = root / CONFIG_FILENAME
    config_written = False
    if not no_config and not config_file.exists():
        root.mkdir(parents=True, exist_ok=True)
        config_file.write_text(_CONFIG_STUB, encoding="utf-8")
        config_written = True

    settings = BackofficeSettings.from_cli(
        project_root=root,
        config_path=str(config_file) if config_file.exists() else None,
    )
    try:
        engine = init_database(settings.db_path)
    except SQLAlchemyError as exc:
        app.abort(failure(op, ErrorKind.STORE, f"Could not create database: {exc}"))
    engine.dispose()

    app.emit(
        ServiceResult(
            ok=True,
            op=op,
            data={
                "project_root": str(root),
                "database": str(settings.db_path),
                "config": str(config_file) if config_file.exists() else None,
                "config_written": config_written,
            },
        )
    )
