from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Table, and_, delete, func, insert, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement, Executable

from uniwiz.db import models  # noqa: F401
from uniwiz.db.base import Base

logger = logging.getLogger(__name__)

Query = str | Executable


class StoreError(RuntimeError):
    """Raised for any storage failure surfaced through the DataStore."""


class IntegrityViolation(StoreError):
    """A unique or foreign-key constraint rejected the write."""


class DataStore:
    """Thin parameterized-query facade over a caller-owned SQLAlchemy session.

    Writes outside of ``transaction()`` commit immediately. Inside a transaction
    scope they are flushed and committed (or rolled back) when the outermost
    scope exits.
    """

    def __init__(self, session: Session):
        self.session = session
        self._depth = 0

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def select(self, query: Query, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        result = self._execute(query, params)
        return [dict(row._mapping) for row in result]

    def select_one(self, query: Query, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        result = self._execute(query, params)
        row = result.first()
        return dict(row._mapping) if row is not None else None

    def scalar(self, query: Query, params: Mapping[str, Any] | None = None) -> Any:
        return self._execute(query, params).scalar()

    def insert(self, table: str, fields: Mapping[str, Any]) -> int:
        target = self._table(table)
        result = self._write(insert(target).values(**fields))
        return int(result.inserted_primary_key[0])

    def update(self, table: str, fields: Mapping[str, Any], where: Mapping[str, Any]) -> int:
        target = self._table(table)
        statement = update(target).where(self._where(target, where)).values(**fields)
        return int(self._write(statement).rowcount)

    def delete(self, table: str, where: Mapping[str, Any]) -> int:
        target = self._table(table)
        return int(self._write(delete(target).where(self._where(target, where))).rowcount)

    def count(self, table: str, where: Mapping[str, Any] | None = None) -> int:
        target = self._table(table)
        statement = select(func.count()).select_from(target)
        if where:
            statement = statement.where(self._where(target, where))
        return int(self.scalar(statement) or 0)

    def exists(self, table: str, where: Mapping[str, Any]) -> bool:
        target = self._table(table)
        statement = select(1).select_from(target).where(self._where(target, where)).limit(1)
        return self.scalar(statement) is not None

    def begin(self) -> None:
        self._depth += 1

    def commit(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            try:
                self.session.commit()
            except SQLAlchemyError as exc:
                self.session.rollback()
                raise self._wrap(exc) from exc

    def rollback(self) -> None:
        self._depth = 0
        self.session.rollback()

    @contextmanager
    def transaction(self) -> Iterator[DataStore]:
        if self._depth:
            yield self
            return

        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def _execute(self, query: Query, params: Mapping[str, Any] | None):
        statement = text(query) if isinstance(query, str) else query
        try:
            return self.session.execute(statement, dict(params or {}))
        except SQLAlchemyError as exc:
            if not self._depth:
                self.session.rollback()
            raise self._wrap(exc) from exc

    def _write(self, statement: Executable):
        try:
            result = self.session.execute(statement)
            if self._depth:
                self.session.flush()
            else:
                self.session.commit()
            return result
        except SQLAlchemyError as exc:
            if not self._depth:
                self.session.rollback()
            raise self._wrap(exc) from exc

    @staticmethod
    def _table(name: str) -> Table:
        table = Base.metadata.tables.get(name)
        if table is None:
            raise StoreError(f"unknown table '{name}'")
        return table

    @staticmethod
    def _where(table: Table, where: Mapping[str, Any]) -> ColumnElement[bool]:
        if not where:
            raise StoreError(f"refusing unconditional write on '{table.name}'")
        clauses = []
        for key, value in where.items():
            if key not in table.c:
                raise StoreError(f"unknown column '{key}' on '{table.name}'")
            column = table.c[key]
            if value is None:
                clauses.append(column.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            else:
                clauses.append(column == value)
        return and_(*clauses)

    @staticmethod
    def _wrap(exc: SQLAlchemyError) -> StoreError:
        if isinstance(exc, IntegrityError):
            return IntegrityViolation(str(exc.orig or exc))
        return StoreError(str(exc))
