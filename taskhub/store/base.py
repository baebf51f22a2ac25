from __future__ import annotations

import os
import re
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncContextManager, AsyncIterator, Mapping

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..query.translator import ListQuery

Document = dict[str, Any]

USERS = "users"
TASKS = "tasks"
COLLECTIONS = (USERS, TASKS)

ID_FIELD = "_id"
VERSION_FIELD = "__v"

_OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


class StoreError(RuntimeError):
    """Base class for document store failures."""


class DuplicateKeyError(StoreError):
    """Raised when a write would violate a unique index."""

    def __init__(self, collection: str, field: str, value: Any) -> None:
        self.collection = collection
        self.field = field
        self.value = value
        super().__init__(f"duplicate key for {collection}.{field}: {value!r}")


class TransactionAborted(StoreError):
    """Raised when the backing store aborts or fails to commit a transaction."""


def new_object_id() -> str:
    """Return a 24 hex character identifier whose first 8 characters encode the creation second."""
    return f"{int(time.time()) & 0xFFFFFFFF:08x}{os.urandom(8).hex()}"


def normalize_object_id(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not _OBJECT_ID_PATTERN.match(candidate):
        return None
    return candidate.lower()


def is_object_id(value: Any) -> bool:
    return normalize_object_id(value) is not None


class StoreSession:
    """Write-capable view of the store bound to a single open transaction.

    Filters passed to ``find`` must already be in the normalized form produced by
    ``taskhub.query.translator.normalize_filter``.
    """

    async def get(self, collection: str, doc_id: str) -> Document | None:
        raise NotImplementedError

    async def find(self, collection: str, filter: Mapping[str, Any]) -> list[Document]:
        raise NotImplementedError

    async def insert(self, collection: str, document: Mapping[str, Any]) -> Document:
        raise NotImplementedError

    async def replace(self, collection: str, document: Mapping[str, Any]) -> Document | None:
        raise NotImplementedError

    async def delete(self, collection: str, doc_id: str) -> bool:
        raise NotImplementedError

    async def update_fields(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    async def add_to_set(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        """Add ``value`` to the array ``field``; returns False when it was already present."""
        raise NotImplementedError

    async def pull(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        """Remove ``value`` from the array ``field``; returns False when it was absent."""
        raise NotImplementedError


class DocumentStore:
    """Collection store offering read queries and multi-document transactions."""

    name = "abstract"

    def transaction(self) -> AsyncContextManager[StoreSession]:
        raise NotImplementedError

    async def find(self, collection: str, query: "ListQuery") -> list[Document]:
        raise NotImplementedError

    async def count(self, collection: str, filter: Mapping[str, Any]) -> int:
        raise NotImplementedError

    async def get(self, collection: str, doc_id: str) -> Document | None:
        raise NotImplementedError

    async def close(self) -> None:
        return None

    @asynccontextmanager
    async def lifecycle(self) -> AsyncIterator["DocumentStore"]:
        try:
            yield self
        finally:
            await self.close()


__all__ = [
    "COLLECTIONS",
    "Document",
    "DocumentStore",
    "DuplicateKeyError",
    "ID_FIELD",
    "StoreError",
    "StoreSession",
    "TASKS",
    "TransactionAborted",
    "USERS",
    "VERSION_FIELD",
    "is_object_id",
    "new_object_id",
    "normalize_object_id",
]
