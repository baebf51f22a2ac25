from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "test")

from typing import Any, Awaitable, Callable, Iterator

import pytest
from fastapi.testclient import TestClient

from taskhub.dependencies import get_document_store
from taskhub.query.translator import ListQuery
from taskhub.store.base import TASKS, USERS, DocumentStore
from taskhub.store.memory import InMemoryDocumentStore


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def client(store: InMemoryDocumentStore) -> Iterator[TestClient]:
    from taskhub.main import app

    async def _override() -> Any:
        yield store

    app.dependency_overrides[get_document_store] = _override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_document_store, None)


async def _assert_consistent(store: DocumentStore) -> None:
    users = await store.find(USERS, ListQuery(filter={}))
    tasks = await store.find(TASKS, ListQuery(filter={}))
    expected: dict[str, set[str]] = {user["_id"]: set() for user in users}
    for task in tasks:
        if task["assignedUser"] and not task["completed"]:
            assert task["assignedUser"] in expected, f"task {task['_id']} points at a missing user"
            expected[task["assignedUser"]].add(task["_id"])
    for user in users:
        assert set(user["pendingTasks"]) == expected[user["_id"]], f"pendingTasks out of sync for {user['_id']}"
        assert len(user["pendingTasks"]) == len(set(user["pendingTasks"]))


@pytest.fixture
def assert_consistent() -> Callable[[DocumentStore], Awaitable[None]]:
    return _assert_consistent
