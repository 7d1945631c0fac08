"""Command group: tags."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from backoffice.commands._base import BoGroup
from backoffice.services.tags import TagService

if TYPE_CHECKING:
    from backoffice.commands._context import AppContext


@click.group(
    cls=BoGroup,
    examples="""\
  backoffice tags resolve VIP 新規
  backoffice tags list""",
)
@click.pass_obj
def tags(app: AppContext) -> None:
    """Resolve and list customer tags."""


@tags.command(
    examples="""\
  backoffice tags resolve VIP
  backoffice --json tags resolve "VIP" " 新規 " """,
)
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def resolve(app: AppContext, names: tuple[str, ...]) -> None:
    """Resolve tag NAMES to ids, creating missing tags."""
    app.emit(TagService(app.store, app.settings).resolve_or_create(list(names)))


@tags.command(
    "list",
    examples="""\
  backoffice tags list""",
)
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List tags with the number of customers using each."""
    app.emit(TagService(app.store, app.settings).list_tags())
