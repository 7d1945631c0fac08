"""BaseService: abstract foundation for all backoffice services.

Every service receives a :class:`Store` at construction time. The Store
offers single-table atomic operations only; services own the ordering of
their writes and any compensation when a later write fails.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from backoffice.config.settings import BackofficeSettings

if TYPE_CHECKING:
    from backoffice.infrastructure.store import Store


class BaseService:
    """Abstract base for all service-layer classes.

    Usage::

        class TagService(BaseService):
            def resolve_or_create(self, names: list[str]) -> ServiceResult:
                rows = self._store.select("tags", {"name": names})
                ...
    """

    def __init__(self, store: Store, settings: BackofficeSettings | None = None) -> None:
        self._store = store
        self._settings = settings if settings is not None else BackofficeSettings()

    @property
    def settings(self) -> BackofficeSettings:
        return self._settings
