from __future__ import annotations

from ..core.config import Settings
from ..core.logging import get_logger
from .base import DocumentStore
from .memory import InMemoryDocumentStore
from .postgres import PostgresDocumentStore

logger = get_logger(name=__name__)


def build_document_store(settings: Settings) -> DocumentStore:
    if settings.environment == "test":
        logger.info("document_store_in_memory", reason="test_environment")
        return InMemoryDocumentStore()
    if settings.store.backend == "memory":
        logger.info("document_store_in_memory", reason="configured")
        return InMemoryDocumentStore()
    store = PostgresDocumentStore.from_settings(settings)
    logger.info("document_store_postgres_enabled", environment=settings.environment)
    return store


__all__ = ["build_document_store"]
