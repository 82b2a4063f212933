"""
SQLAlchemy implementation of the PersistenceGateway.

Sessions are blocking, so every query runs in a worker thread via
asyncio.to_thread. Commits made here (or anywhere else through SessionLocal)
reach subscribers through the ChangeHub.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping, Optional, Sequence

from sqlalchemy import asc, desc, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from livesync.errors import ConflictError, NotFoundError, TransportError, ValidationError
from livesync.gateway import ChangeCallback, Disposer, PersistenceGateway, Row
from livesync.records import Collection, parse_collection, validate_row

from .changes import ChangeHub
from .models import FireZone, SecurityPoint, TeamMember

logger = logging.getLogger(__name__)

MODELS: dict[Collection, type] = {
    Collection.FIRE_ZONES: FireZone,
    Collection.SECURITY_POINTS: SecurityPoint,
    Collection.TEAM_MEMBERS: TeamMember,
}

# Newest incidents first; the roster alphabetically.
DEFAULT_ORDER: dict[Collection, tuple[str, ...]] = {
    Collection.FIRE_ZONES: ("-reported_at",),
    Collection.SECURITY_POINTS: ("-created_at",),
    Collection.TEAM_MEMBERS: ("name",),
}

# Columns a client may not set directly.
READ_ONLY_COLUMNS = frozenset({"id", "created_at", "updated_at"})


def _column(model: type, name: str):
    column = model.__table__.columns.get(name)
    if column is None:
        raise ValidationError(f"Unknown column {name!r} for {model.__tablename__}")
    return column


def _writable(model: type, values: Mapping[str, Any]) -> dict[str, Any]:
    unknown = [key for key in values if key not in model.__table__.columns]
    if unknown:
        raise ValidationError(f"Unknown column(s) for {model.__tablename__}: {', '.join(sorted(unknown))}")
    return {key: value for key, value in values.items() if key not in READ_ONLY_COLUMNS}


def _order_clause(model: type, key: str):
    descending = key.startswith("-")
    column = _column(model, key.lstrip("-"))
    # Case-insensitive ordering for text, so "alice" sorts beside "Alice".
    if column.type.python_type is str:
        column = func.lower(column)
    return desc(column) if descending else asc(column)


class SqlGateway(PersistenceGateway):
    """
    Args:
        session_factory: Callable returning a new Session (normally SessionLocal)
        hub: ChangeHub receiving this database's committed changes
    """

    def __init__(self, session_factory: Callable[[], Session], hub: ChangeHub) -> None:
        self._session_factory = session_factory
        self._hub = hub

    async def fetch_all(
        self,
        collection: Collection,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> list[Row]:
        collection = parse_collection(collection)
        return await self._run(collection, self._fetch_all, collection, dict(filters or {}), order_by)

    async def fetch_one(self, collection: Collection, row_id: str) -> Row:
        collection = parse_collection(collection)
        return await self._run(collection, self._fetch_one, collection, str(row_id))

    async def insert(self, collection: Collection, row: Mapping[str, Any]) -> Row:
        collection = parse_collection(collection)
        return await self._run(collection, self._insert, collection, dict(row))

    async def update(self, collection: Collection, row_id: str, partial: Mapping[str, Any]) -> Row:
        collection = parse_collection(collection)
        return await self._run(collection, self._update, collection, str(row_id), dict(partial))

    async def delete(self, collection: Collection, row_id: str) -> None:
        collection = parse_collection(collection)
        await self._run(collection, self._delete, collection, str(row_id))

    def subscribe_to_changes(self, collection: Collection, callback: ChangeCallback) -> Disposer:
        return self._hub.subscribe(parse_collection(collection), callback)

    # ------------------------------------------------------------------
    # Blocking implementations (worker thread)
    # ------------------------------------------------------------------

    async def _run(self, collection: Collection, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except IntegrityError as e:
            raise ConflictError(f"Conflicting {collection.value} data: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error("Database error on %s: %s", collection.value, e)
            raise TransportError(f"Database unavailable: {e}") from e

    def _fetch_all(self, collection: Collection, filters: dict[str, Any], order_by: Optional[Sequence[str]]) -> list[Row]:
        model = MODELS[collection]
        with self._session_factory() as db:
            query = db.query(model)
            for name, value in filters.items():
                query = query.filter(_column(model, name) == value)
            for key in order_by or DEFAULT_ORDER[collection]:
                query = query.order_by(_order_clause(model, key))
            return [validate_row(collection, obj).model_dump() for obj in query.all()]

    def _get(self, db: Session, collection: Collection, row_id: str):
        obj = db.get(MODELS[collection], row_id)
        if obj is None:
            raise NotFoundError(collection.value, row_id)
        return obj

    def _fetch_one(self, collection: Collection, row_id: str) -> Row:
        with self._session_factory() as db:
            return validate_row(collection, self._get(db, collection, row_id)).model_dump()

    def _insert(self, collection: Collection, values: dict[str, Any]) -> Row:
        model = MODELS[collection]
        with self._session_factory() as db:
            obj = model(**_writable(model, values))
            db.add(obj)
            try:
                db.flush()
                record = validate_row(collection, obj)
                db.commit()
            except Exception:
                db.rollback()
                raise
            return record.model_dump()

    def _update(self, collection: Collection, row_id: str, partial: dict[str, Any]) -> Row:
        model = MODELS[collection]
        changes = _writable(model, partial)
        with self._session_factory() as db:
            obj = self._get(db, collection, row_id)
            for key, value in changes.items():
                setattr(obj, key, value)
            try:
                db.flush()
                record = validate_row(collection, obj)
                db.commit()
            except Exception:
                db.rollback()
                raise
            return record.model_dump()

    def _delete(self, collection: Collection, row_id: str) -> None:
        with self._session_factory() as db:
            obj = self._get(db, collection, row_id)
            db.delete(obj)
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
