"""SQLAlchemy store wrapper exposing filtered read, patch, and insert primitives."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import ColumnElement, create_engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from store.schemas import Base

logger = logging.getLogger("cse.store")

Filter = ColumnElement[bool]


class SQLStore:
    """Provides SQLAlchemy session management plus single-statement row operations.

    Every mutation is one filtered UPDATE or one INSERT; nothing here opens a
    multi-row transaction across calls. Callers rely on the affected row count
    of a patch to detect missing rows and create them (create-on-patch-miss).
    """

    def __init__(self, db_path: Path | None = None, *, url: str | None = None) -> None:
        if url is None:
            if db_path is None:
                raise ValueError("SQLStore needs either db_path or url.")
            db_path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite+pysqlite:///{db_path}"
        self.db_path = db_path
        self.url = url
        self.engine = create_engine(url, future=True)
        self._session_factory = sessionmaker(bind=self.engine, future=True)

    def create_all(self) -> None:
        """Create all schema tables if missing."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager that commits on success and rolls back on error."""
        sess = self._session_factory()
        try:
            yield sess
            sess.commit()
        except Exception:
            sess.rollback()
            raise
        finally:
            sess.close()

    def read(
        self,
        model: type[Base],
        *filters: Filter,
        order_by: Iterable[Any] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows matching all filters as plain dictionaries."""
        stmt = select(model).where(*filters).order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.session() as sess:
            return [self.row_to_dict(row) for row in sess.scalars(stmt).all()]

    def first(
        self,
        model: type[Base],
        *filters: Filter,
        order_by: Iterable[Any] = (),
    ) -> dict[str, Any] | None:
        rows = self.read(model, *filters, order_by=order_by, limit=1)
        return rows[0] if rows else None

    def count(self, model: type[Base], *filters: Filter) -> int:
        stmt = select(func.count()).select_from(model).where(*filters)
        with self.session() as sess:
            return int(sess.execute(stmt).scalar_one())

    def patch(self, model: type[Base], *filters: Filter, **fields: Any) -> int:
        """Apply fields to every matching row and return the affected row count."""
        if not fields:
            return 0
        stmt = (
            update(model)
            .where(*filters)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        with self.session() as sess:
            result = sess.execute(stmt)
            return int(result.rowcount or 0)

    def insert(self, model: type[Base], **fields: Any) -> dict[str, Any]:
        """Insert one row and return it."""
        row = model(**fields)
        with self.session() as sess:
            sess.add(row)
            sess.flush()
            return self.row_to_dict(row)

    def upsert(
        self,
        model: type[Base],
        key: Mapping[str, Any],
        fields: Mapping[str, Any],
        defaults: Mapping[str, Any] | None = None,
    ) -> bool:
        """Patch the row identified by key, inserting it when the patch misses.

        Returns True when a new row was created. A concurrent insert that wins
        the unique constraint is resolved by patching the winner's row.
        """
        filters = [getattr(model, column) == value for column, value in key.items()]
        if self.patch(model, *filters, **fields):
            return False
        payload = {**(defaults or {}), **key, **fields}
        try:
            self.insert(model, **payload)
            return True
        except IntegrityError:
            logger.info("Concurrent insert on %s %s; patching instead", model.__tablename__, dict(key))
            self.patch(model, *filters, **fields)
            return False

    def claim(self, model: type[Base], *filters: Filter, **fields: Any) -> bool:
        """Conditional single-row patch used as compare-and-set."""
        return self.patch(model, *filters, **fields) > 0

    @staticmethod
    def row_to_dict(row: Base) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for column in row.__table__.columns:
            value = getattr(row, column.key)
            if isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            payload[column.key] = value
        return payload
