from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping

from sqlalchemy import Table, Update, any_, delete, func, insert, literal, not_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from ..core.config import Settings
from ..core.logging import get_logger
from ..db.models import FIELD_COLUMNS, TABLES
from ..query.matching import project
from ..query.schema import SCHEMAS
from ..query.sql import compile_filter, compile_order_by
from ..query.translator import ListQuery
from .base import ID_FIELD, Document, DocumentStore, DuplicateKeyError, StoreSession, TransactionAborted

logger = get_logger(name=__name__)

# Columns carrying a unique index, per collection.
UNIQUE_FIELDS: dict[str, tuple[str, ...]] = {"users": ("email",)}


def async_database_url(dsn: str) -> str:
    if dsn.startswith("postgresql://"):
        return dsn.replace("postgresql://", "postgresql+asyncpg://", 1)
    return dsn


def _table(collection: str) -> Table:
    try:
        return TABLES[collection]
    except KeyError:
        raise KeyError(f"unknown collection: {collection}") from None


def _row_to_document(collection: str, row: Mapping[str, Any]) -> Document:
    document: Document = {}
    for field, column in FIELD_COLUMNS[collection].items():
        value = row[column]
        if isinstance(value, tuple):
            value = list(value)
        document[field] = value
    return document


def _document_to_values(collection: str, document: Mapping[str, Any]) -> dict[str, Any]:
    columns = FIELD_COLUMNS[collection]
    return {columns[field]: value for field, value in document.items() if field in columns}


def _duplicate_key(collection: str, document: Mapping[str, Any], exc: IntegrityError) -> DuplicateKeyError:
    detail = str(exc.orig)
    for field in UNIQUE_FIELDS.get(collection, ()):
        if FIELD_COLUMNS[collection][field] in detail:
            return DuplicateKeyError(collection, field, document.get(field))
    return DuplicateKeyError(collection, ID_FIELD, document.get(ID_FIELD))


def add_to_set_statement(collection: str, doc_id: str, field: str, value: Any) -> Update:
    """Append ``value`` to an array column unless it is already a member."""

    table = _table(collection)
    column = table.c[FIELD_COLUMNS[collection][field]]
    member = literal(value, type_=column.type.item_type)
    return (
        update(table)
        .where(table.c.id == doc_id, not_(member == any_(column)))
        .values({column: func.array_append(column, member, type_=column.type)})
    )


def pull_statement(collection: str, doc_id: str, field: str, value: Any) -> Update:
    table = _table(collection)
    column = table.c[FIELD_COLUMNS[collection][field]]
    member = literal(value, type_=column.type.item_type)
    return (
        update(table)
        .where(table.c.id == doc_id, member == any_(column))
        .values({column: func.array_remove(column, member, type_=column.type)})
    )


class _PostgresSession(StoreSession):
    def __init__(self, connection: AsyncConnection) -> None:
        self._connection = connection

    async def get(self, collection: str, doc_id: str) -> Document | None:
        table = _table(collection)
        statement = select(table).where(table.c.id == doc_id).with_for_update()
        row = (await self._connection.execute(statement)).mappings().first()
        return None if row is None else _row_to_document(collection, row)

    async def find(self, collection: str, filter: Mapping[str, Any]) -> list[Document]:
        table = _table(collection)
        clause = compile_filter(table, FIELD_COLUMNS[collection], SCHEMAS[collection], filter)
        statement = select(table).where(clause).with_for_update()
        rows = (await self._connection.execute(statement)).mappings().all()
        return [_row_to_document(collection, row) for row in rows]

    async def insert(self, collection: str, document: Mapping[str, Any]) -> Document:
        table = _table(collection)
        statement = insert(table).values(**_document_to_values(collection, document)).returning(*table.c)
        try:
            row = (await self._connection.execute(statement)).mappings().one()
        except IntegrityError as exc:
            raise _duplicate_key(collection, document, exc) from exc
        return _row_to_document(collection, row)

    async def replace(self, collection: str, document: Mapping[str, Any]) -> Document | None:
        table = _table(collection)
        values = _document_to_values(collection, document)
        doc_id = values.pop("id")
        statement = update(table).where(table.c.id == doc_id).values(**values).returning(*table.c)
        try:
            row = (await self._connection.execute(statement)).mappings().first()
        except IntegrityError as exc:
            raise _duplicate_key(collection, document, exc) from exc
        return None if row is None else _row_to_document(collection, row)

    async def delete(self, collection: str, doc_id: str) -> bool:
        table = _table(collection)
        result = await self._connection.execute(delete(table).where(table.c.id == doc_id))
        return bool(result.rowcount)

    async def update_fields(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        table = _table(collection)
        statement = update(table).where(table.c.id == doc_id).values(**_document_to_values(collection, fields))
        try:
            result = await self._connection.execute(statement)
        except IntegrityError as exc:
            raise _duplicate_key(collection, fields, exc) from exc
        return bool(result.rowcount)

    async def add_to_set(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        result = await self._connection.execute(add_to_set_statement(collection, doc_id, field, value))
        return bool(result.rowcount)

    async def pull(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        result = await self._connection.execute(pull_statement(collection, doc_id, field, value))
        return bool(result.rowcount)


class PostgresDocumentStore(DocumentStore):
    """Users and tasks persisted in PostgreSQL, one row per document."""

    name = "postgres"

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresDocumentStore":
        engine = create_async_engine(
            async_database_url(str(settings.postgres.dsn)),
            pool_size=settings.postgres.pool_min_size,
            max_overflow=max(0, settings.postgres.pool_max_size - settings.postgres.pool_min_size),
            echo=settings.postgres.echo,
        )
        return cls(engine)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreSession]:
        try:
            async with self._engine.begin() as connection:
                yield _PostgresSession(connection)
        except DBAPIError as exc:
            logger.warning("postgres_transaction_aborted", error=str(exc))
            raise TransactionAborted(str(exc)) from exc

    async def find(self, collection: str, query: ListQuery) -> list[Document]:
        table = _table(collection)
        columns = FIELD_COLUMNS[collection]
        statement = select(table).where(compile_filter(table, columns, SCHEMAS[collection], query.filter))
        if query.sort:
            statement = statement.order_by(*compile_order_by(table, columns, query.sort))
        else:
            statement = statement.order_by(table.c.date_created, table.c.id)
        if query.skip:
            statement = statement.offset(query.skip)
        if query.limit is not None:
            statement = statement.limit(query.limit)
        rows = await self._fetch_all(statement)
        return [project(_row_to_document(collection, row), query.projection) for row in rows]

    async def count(self, collection: str, filter: Mapping[str, Any]) -> int:
        table = _table(collection)
        clause = compile_filter(table, FIELD_COLUMNS[collection], SCHEMAS[collection], filter)
        statement = select(func.count()).select_from(table).where(clause)
        try:
            async with self._engine.connect() as connection:
                return int((await connection.execute(statement)).scalar_one())
        except DBAPIError as exc:
            raise TransactionAborted(str(exc)) from exc

    async def get(self, collection: str, doc_id: str) -> Document | None:
        table = _table(collection)
        rows = await self._fetch_all(select(table).where(table.c.id == doc_id))
        return _row_to_document(collection, rows[0]) if rows else None

    async def close(self) -> None:
        await self._engine.dispose()

    async def _fetch_all(self, statement: Any) -> list[Mapping[str, Any]]:
        try:
            async with self._engine.connect() as connection:
                return list((await connection.execute(statement)).mappings().all())
        except DBAPIError as exc:
            raise TransactionAborted(str(exc)) from exc


__all__ = ["PostgresDocumentStore", "add_to_set_statement", "async_database_url", "pull_statement"]
