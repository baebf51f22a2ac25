from __future__ import annotations

from datetime import datetime, timezone

import pytest

from taskhub.core.errors import InvalidReference, NotFound, ReferenceNotFound, ValidationFailed
from taskhub.schemas.tasks import TaskPayload
from taskhub.schemas.users import UserPayload
from taskhub.store.base import TASKS, USERS, DuplicateKeyError
from taskhub.store.memory import InMemoryDocumentStore
from taskhub.sync.mutator import TransactionalMutator

DEADLINE = datetime(2030, 1, 1, tzinfo=timezone.utc)
MISSING_ID = "f" * 24


def _task(name: str, *, assignee: str = "", completed: bool = False) -> TaskPayload:
    return TaskPayload(name=name, deadline=DEADLINE, assignedUser=assignee, completed=completed)


def _user(name: str, email: str, pending: list[str] | None = None) -> UserPayload:
    return UserPayload(name=name, email=email, pendingTasks=pending or [])


@pytest.fixture
def mutator(store: InMemoryDocumentStore) -> TransactionalMutator:
    return TransactionalMutator(store)


@pytest.mark.asyncio
async def test_created_assigned_task_appears_in_pending(store, mutator, assert_consistent) -> None:
    user = await mutator.create_user(_user("Ada", "ada@example.com"))
    task = await mutator.create_task(_task("Report", assignee=user["_id"]))

    assert task["assignedUser"] == user["_id"]
    assert task["assignedUserName"] == "Ada"
    assert task["__v"] == 0
    stored = await store.get(USERS, user["_id"])
    assert stored["pendingTasks"] == [task["_id"]]
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_completing_task_keeps_assignee_but_clears_pending(store, mutator, assert_consistent) -> None:
    user = await mutator.create_user(_user("Ada", "ada@example.com"))
    task = await mutator.create_task(_task("Report", assignee=user["_id"]))

    replaced = await mutator.replace_task(task["_id"], _task("Report", assignee=user["_id"], completed=True))

    assert replaced["assignedUser"] == user["_id"]
    assert replaced["__v"] == 1
    assert (await store.get(USERS, user["_id"]))["pendingTasks"] == []
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_reassignment_moves_task(store, mutator, assert_consistent) -> None:
    first = await mutator.create_user(_user("Ada", "ada@example.com"))
    second = await mutator.create_user(_user("Grace", "grace@example.com"))
    task = await mutator.create_task(_task("Report", assignee=first["_id"]))

    replaced = await mutator.replace_task(task["_id"], _task("Report", assignee=second["_id"]))

    assert replaced["assignedUserName"] == "Grace"
    assert (await store.get(USERS, first["_id"]))["pendingTasks"] == []
    assert (await store.get(USERS, second["_id"]))["pendingTasks"] == [task["_id"]]
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_deleting_user_unassigns_every_task(store, mutator, assert_consistent) -> None:
    user = await mutator.create_user(_user("Ada", "ada@example.com"))
    tasks = [await mutator.create_task(_task(f"Task {index}", assignee=user["_id"])) for index in range(3)]

    await mutator.delete_user(user["_id"])

    for task in tasks:
        stored = await store.get(TASKS, task["_id"])
        assert stored["assignedUser"] == ""
        assert stored["assignedUserName"] == "unassigned"
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_deleting_task_removes_it_from_assignee(store, mutator, assert_consistent) -> None:
    user = await mutator.create_user(_user("Grace", "grace@example.com"))
    keep = await mutator.create_task(_task("Keep", assignee=user["_id"]))
    drop = await mutator.create_task(_task("Drop", assignee=user["_id"]))

    await mutator.delete_task(drop["_id"])

    assert (await store.get(USERS, user["_id"]))["pendingTasks"] == [keep["_id"]]
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_deleting_twice_is_not_found(store, mutator) -> None:
    task = await mutator.create_task(_task("Once"))
    await mutator.delete_task(task["_id"])

    with pytest.raises(NotFound):
        await mutator.delete_task(task["_id"])


@pytest.mark.asyncio
async def test_nonexistent_assignee_creates_nothing(store, mutator) -> None:
    with pytest.raises(ReferenceNotFound):
        await mutator.create_task(_task("Orphan", assignee=MISSING_ID))

    assert await store.count(TASKS, {}) == 0


@pytest.mark.asyncio
async def test_malformed_assignee_is_invalid_reference(mutator) -> None:
    with pytest.raises(InvalidReference):
        await mutator.create_task(_task("Orphan", assignee="not-an-id"))


@pytest.mark.asyncio
async def test_user_replace_claims_and_releases(store, mutator, assert_consistent) -> None:
    ada = await mutator.create_user(_user("Ada", "ada@example.com"))
    grace = await mutator.create_user(_user("Grace", "grace@example.com"))
    released = await mutator.create_task(_task("Released", assignee=ada["_id"]))
    stolen = await mutator.create_task(_task("Stolen", assignee=grace["_id"]))
    free = await mutator.create_task(_task("Free"))

    replaced = await mutator.replace_user(
        ada["_id"],
        _user("Ada L.", "ada@example.com", [stolen["_id"], free["_id"]]),
    )

    assert replaced["pendingTasks"] == [stolen["_id"], free["_id"]]
    assert replaced["__v"] == 1
    assert (await store.get(TASKS, released["_id"]))["assignedUserName"] == "unassigned"
    assert (await store.get(TASKS, stolen["_id"]))["assignedUser"] == ada["_id"]
    assert (await store.get(TASKS, free["_id"]))["assignedUserName"] == "Ada L."
    assert (await store.get(USERS, grace["_id"]))["pendingTasks"] == []
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_user_create_with_pending_tasks_claims_them(store, mutator, assert_consistent) -> None:
    task = await mutator.create_task(_task("Free"))

    user = await mutator.create_user(_user("Ada", "ada@example.com", [task["_id"].upper()]))

    assert user["pendingTasks"] == [task["_id"]]
    assert (await store.get(TASKS, task["_id"]))["assignedUser"] == user["_id"]
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_claiming_completed_task_is_rejected_atomically(store, mutator, assert_consistent) -> None:
    ada = await mutator.create_user(_user("Ada", "ada@example.com"))
    done = await mutator.create_task(_task("Done", completed=True))

    with pytest.raises(ValidationFailed):
        await mutator.replace_user(ada["_id"], _user("Renamed", "ada@example.com", [done["_id"]]))

    stored = await store.get(USERS, ada["_id"])
    assert stored["name"] == "Ada"
    assert stored["__v"] == 0
    await assert_consistent(store)


@pytest.mark.asyncio
async def test_claiming_unknown_task_is_reference_not_found(mutator) -> None:
    ada = await mutator.create_user(_user("Ada", "ada@example.com"))
    with pytest.raises(ReferenceNotFound):
        await mutator.replace_user(ada["_id"], _user("Ada", "ada@example.com", [MISSING_ID]))


@pytest.mark.asyncio
async def test_duplicate_email_aborts(store, mutator) -> None:
    await mutator.create_user(_user("Ada", "ada@example.com"))
    with pytest.raises(DuplicateKeyError):
        await mutator.create_user(_user("Imposter", "ada@example.com"))
    assert await store.count(USERS, {}) == 1


@pytest.mark.asyncio
async def test_replace_with_malformed_id_is_not_found(mutator) -> None:
    with pytest.raises(NotFound):
        await mutator.replace_task("bad-id", _task("Whatever"))
