from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Sequence

from ..core.logging import get_logger
from ..query.matching import matches, project, sort_documents
from ..query.translator import ListQuery
from .base import COLLECTIONS, ID_FIELD, USERS, Document, DocumentStore, DuplicateKeyError, StoreSession

logger = get_logger(name=__name__)

DEFAULT_UNIQUE_FIELDS: dict[str, tuple[str, ...]] = {USERS: ("email",)}


class _MemorySession(StoreSession):
    """Stages writes against shallow copies of the committed collections.

    Documents are never mutated in place: every write stores a fresh copy, so the
    committed maps stay untouched until ``InMemoryDocumentStore`` swaps in the
    staged ones.
    """

    def __init__(self, committed: Mapping[str, dict[str, Document]], unique_fields: Mapping[str, Sequence[str]]) -> None:
        self._staged: dict[str, dict[str, Document]] = {name: dict(docs) for name, docs in committed.items()}
        self._unique_fields = unique_fields

    def staged(self) -> dict[str, dict[str, Document]]:
        return self._staged

    async def get(self, collection: str, doc_id: str) -> Document | None:
        document = self._collection(collection).get(doc_id)
        return None if document is None else copy.deepcopy(document)

    async def find(self, collection: str, filter: Mapping[str, Any]) -> list[Document]:
        return [copy.deepcopy(doc) for doc in self._collection(collection).values() if matches(doc, filter)]

    async def insert(self, collection: str, document: Mapping[str, Any]) -> Document:
        docs = self._collection(collection)
        doc_id = document[ID_FIELD]
        if doc_id in docs:
            raise DuplicateKeyError(collection, ID_FIELD, doc_id)
        self._check_unique(collection, document)
        docs[doc_id] = copy.deepcopy(dict(document))
        return copy.deepcopy(docs[doc_id])

    async def replace(self, collection: str, document: Mapping[str, Any]) -> Document | None:
        docs = self._collection(collection)
        doc_id = document[ID_FIELD]
        if doc_id not in docs:
            return None
        self._check_unique(collection, document)
        docs[doc_id] = copy.deepcopy(dict(document))
        return copy.deepcopy(docs[doc_id])

    async def delete(self, collection: str, doc_id: str) -> bool:
        return self._collection(collection).pop(doc_id, None) is not None

    async def update_fields(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> bool:
        docs = self._collection(collection)
        current = docs.get(doc_id)
        if current is None:
            return False
        updated = {**current, **copy.deepcopy(dict(fields))}
        self._check_unique(collection, updated)
        docs[doc_id] = updated
        return True

    async def add_to_set(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        docs = self._collection(collection)
        current = docs.get(doc_id)
        if current is None:
            return False
        members = list(current.get(field) or [])
        if value in members:
            return False
        docs[doc_id] = {**current, field: [*members, value]}
        return True

    async def pull(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        docs = self._collection(collection)
        current = docs.get(doc_id)
        if current is None:
            return False
        members = list(current.get(field) or [])
        if value not in members:
            return False
        docs[doc_id] = {**current, field: [member for member in members if member != value]}
        return True

    def _collection(self, collection: str) -> dict[str, Document]:
        try:
            return self._staged[collection]
        except KeyError:
            raise KeyError(f"unknown collection: {collection}") from None

    def _check_unique(self, collection: str, document: Mapping[str, Any]) -> None:
        for field in self._unique_fields.get(collection, ()):
            value = document.get(field)
            if value is None:
                continue
            for other_id, other in self._staged[collection].items():
                if other_id != document[ID_FIELD] and other.get(field) == value:
                    raise DuplicateKeyError(collection, field, value)


class InMemoryDocumentStore(DocumentStore):
    """Process-local store with serialized, all-or-nothing transactions."""

    name = "memory"

    def __init__(self, *, unique_fields: Mapping[str, Sequence[str]] | None = None) -> None:
        self._collections: dict[str, dict[str, Document]] = {name: {} for name in COLLECTIONS}
        self._unique_fields = dict(DEFAULT_UNIQUE_FIELDS if unique_fields is None else unique_fields)
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreSession]:
        async with self._lock:
            session = _MemorySession(self._collections, self._unique_fields)
            try:
                yield session
            except BaseException:
                logger.debug("memory_transaction_rolled_back")
                raise
            self._collections = session.staged()

    async def find(self, collection: str, query: ListQuery) -> list[Document]:
        docs = [doc for doc in self._snapshot(collection) if matches(doc, query.filter)]
        if query.sort:
            docs = sort_documents(docs, query.sort)
        start = query.skip or 0
        stop = None if query.limit is None else start + query.limit
        return [project(copy.deepcopy(doc), query.projection) for doc in docs[start:stop]]

    async def count(self, collection: str, filter: Mapping[str, Any]) -> int:
        return sum(1 for doc in self._snapshot(collection) if matches(doc, filter))

    async def get(self, collection: str, doc_id: str) -> Document | None:
        document = self._collections[collection].get(doc_id)
        return None if document is None else copy.deepcopy(document)

    def _snapshot(self, collection: str) -> list[Document]:
        return list(self._collections[collection].values())


__all__ = ["InMemoryDocumentStore"]
