from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, ClassVar, Self

from sqlalchemy import Table, select

from uniwiz.core.notifications import Notifier
from uniwiz.db.store import DataStore, StoreError

logger = logging.getLogger(__name__)


class Entity:
    """Row-backed domain object.

    Subclasses declare ``table`` and ``fields``; ``coerce`` normalizes raw
    input so that ``cls(store, obj.to_dict())`` reproduces ``obj``.
    """

    table: ClassVar[Table]
    fields: ClassVar[tuple[str, ...]]
    defaults: ClassVar[dict[str, Any]] = {}

    def __init__(
        self,
        store: DataStore,
        data: Mapping[str, Any] | None = None,
        *,
        notifier: Notifier | None = None,
    ):
        self.store = store
        self.notifier = notifier or Notifier(store)
        self.load(data or {})

    def load(self, data: Mapping[str, Any]) -> None:
        for name in self.fields:
            value = data.get(name, self.defaults.get(name))
            setattr(self, name, self.coerce(name, value))

    def coerce(self, name: str, value: Any) -> Any:
        return value

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.fields}

    def refresh(self) -> bool:
        try:
            row = self.store.select_one(select(self.table).where(self.table.c.id == self.id))
        except StoreError:
            logger.exception("Reload failed table=%s id=%s", self.table.name, self.id)
            return False
        if row is None:
            return False
        self.load(row)
        return True

    def _guarded(self, default: Any, read: Callable[[], Any]) -> Any:
        try:
            return read()
        except StoreError:
            logger.exception("Read failed table=%s id=%s", self.table.name, getattr(self, "id", None))
            return default

    @classmethod
    def find_by_id(cls, store: DataStore, entity_id: int | None, *, notifier: Notifier | None = None) -> Self | None:
        if not entity_id:
            return None
        try:
            row = store.select_one(select(cls.table).where(cls.table.c.id == entity_id))
        except StoreError:
            logger.exception("Lookup failed table=%s id=%s", cls.table.name, entity_id)
            return None
        return cls(store, row, notifier=notifier) if row else None

    @classmethod
    def from_rows(cls, store: DataStore, rows: list[dict[str, Any]], *, notifier: Notifier | None = None) -> list[Self]:
        return [cls(store, row, notifier=notifier) for row in rows]

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={getattr(self, 'id', None)}>"
