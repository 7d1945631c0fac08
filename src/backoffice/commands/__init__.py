"""Subcommand modules for backoffice.

Provides register_commands(), which imports command modules lazily so
``backoffice --help`` stays fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register the command groups and standalone commands on the root group."""
    # --- Groups ---
    from backoffice.commands.customers import customers
    from backoffice.commands.invoices import invoices
    from backoffice.commands.tags import tags

    cli.add_command(customers)
    cli.add_command(invoices)
    cli.add_command(tags)

    # --- Standalone commands ---
    from backoffice.commands.init_cmd import init_cmd

    cli.add_command(init_cmd)
