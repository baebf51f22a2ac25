from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends

from .core.config import Settings, get_settings
from .store.base import DocumentStore
from .store.factory import build_document_store
from .sync.mutator import TransactionalMutator

_document_store_singleton: DocumentStore | None = None


def get_document_store_singleton(settings: Settings) -> DocumentStore:
    global _document_store_singleton
    if _document_store_singleton is None:
        _document_store_singleton = build_document_store(settings)
    return _document_store_singleton


async def close_document_store() -> None:
    global _document_store_singleton
    store, _document_store_singleton = _document_store_singleton, None
    if store is not None:
        await store.close()


async def get_app_settings() -> AsyncIterator[Settings]:
    yield get_settings()


async def get_document_store(
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[DocumentStore]:
    yield get_document_store_singleton(settings)


async def get_mutator(
    store: DocumentStore = Depends(get_document_store),
) -> AsyncIterator[TransactionalMutator]:
    yield TransactionalMutator(store)
