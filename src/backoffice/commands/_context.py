"""AppContext: shared Click context for all commands.

Created once by the root CLI group and handed to subcommands via
``@click.pass_obj``. Opens the store lazily and centralizes result
emission (stdout/stderr routing and exit codes).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, NoReturn

import click

from backoffice.output.formatters import OutputSettings, format_result
from backoffice.services.result import ErrorKind, failure

if TYPE_CHECKING:
    from backoffice.config.settings import BackofficeSettings
    from backoffice.infrastructure.store import Store
    from backoffice.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    The store is created on first use so ``--help`` and ``--version``
    never touch the database.
    """

    def __init__(self, settings: BackofficeSettings) -> None:
        self.settings = settings
        self._store: Store | None = None

        from backoffice.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        if settings.verbose:
            from backoffice.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def store(self) -> Store:
        """The store (opened lazily on first access)."""
        if self._store is None:
            from backoffice.infrastructure.store import Store

            self._store = Store.open(self.settings)
        return self._store

    @property
    def output_settings(self) -> OutputSettings:
        return OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success: stdout, exit 0. Warnings go to stderr outside JSON mode.
        * Failure: stderr, exit 1.
        """
        if not result.ok:
            self.abort(result)
        settings = self.output_settings
        click.echo(format_result(result, settings=settings))
        if not settings.json_output:
            for warning in result.warnings:
                click.echo(f"WARNING: {warning}", err=True)

    def abort(self, result: ServiceResult) -> NoReturn:
        """Write a failed result to stderr and exit with code 1."""
        settings = self.output_settings
        if not settings.json_output:
            for warning in result.warnings:
                click.echo(f"WARNING: {warning}", err=True)
        click.echo(format_result(result, settings=settings), err=True)
        raise SystemExit(1)

    def read_text(self, op: str, path: str) -> str:
        """Read a UTF-8 input file (``-`` for stdin; BOM dropped), aborting on I/O errors."""
        try:
            with click.open_file(path, encoding="utf-8-sig") as fh:
                return fh.read()
        except (OSError, UnicodeDecodeError) as exc:
            self.abort(failure(op, ErrorKind.VALIDATION, f"Cannot read {path}: {exc}"))

    def read_json(self, op: str, path: str) -> dict[str, Any]:
        """Read a JSON object from *path*, aborting with a VALIDATION failure."""
        raw = self.read_text(op, path)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            self.abort(
                failure(
                    op,
                    ErrorKind.VALIDATION,
                    f"Invalid JSON in {path}: {exc}",
                    code="INVALID_JSON",
                )
            )
        if not isinstance(data, dict):
            self.abort(
                failure(
                    op,
                    ErrorKind.VALIDATION,
                    f"{path} must contain a JSON object",
                    code="INVALID_JSON",
                )
            )
        return data
