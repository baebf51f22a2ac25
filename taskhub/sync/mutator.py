from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Mapping

from ..core import metrics
from ..core.errors import NotFound, ValidationFailed
from ..core.logging import get_logger
from ..schemas.tasks import TaskPayload
from ..schemas.users import UserPayload
from ..store.base import (
    ID_FIELD,
    TASKS,
    USERS,
    VERSION_FIELD,
    Document,
    DocumentStore,
    StoreSession,
    new_object_id,
    normalize_object_id,
)
from .coordinator import (
    PendingAction,
    SyncPlan,
    TaskState,
    plan_task_created,
    plan_task_deleted,
    plan_task_replaced,
    plan_user_deleted,
    plan_user_replaced,
)
from .references import ReferenceValidator

logger = get_logger(name=__name__)

PENDING_FIELD = "pendingTasks"


def task_state(document: Mapping[str, Any]) -> TaskState:
    return TaskState(
        task_id=document[ID_FIELD],
        assignee=normalize_object_id(document.get("assignedUser")),
        completed=bool(document.get("completed", False)),
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionalMutator:
    """Runs every create, replace and delete as one store transaction.

    The primary write and the writes derived by the coordinator commit
    together or not at all.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # Tasks ---------------------------------------------------------------

    async def create_task(self, payload: TaskPayload) -> Document:
        async with self._transaction(TASKS, "create") as session:
            assignee = await ReferenceValidator(session).resolve_assignee(payload.assignedUser)
            document: Document = {
                ID_FIELD: new_object_id(),
                "name": payload.name,
                "description": payload.description,
                "deadline": payload.deadline,
                "completed": payload.completed,
                "assignedUser": assignee.user_id or "",
                "assignedUserName": assignee.name,
                "dateCreated": _utcnow(),
                VERSION_FIELD: 0,
            }
            created = await session.insert(TASKS, document)
            await self._apply(session, plan_task_created(task_state(created)))
        logger.info("task_created", task_id=created[ID_FIELD], assigned_user=created["assignedUser"] or None)
        return created

    async def replace_task(self, task_id: str, payload: TaskPayload) -> Document:
        async with self._transaction(TASKS, "replace") as session:
            current = await self._require(session, TASKS, task_id)
            assignee = await ReferenceValidator(session).resolve_assignee(payload.assignedUser)
            document: Document = {
                ID_FIELD: current[ID_FIELD],
                "name": payload.name,
                "description": payload.description,
                "deadline": payload.deadline,
                "completed": payload.completed,
                "assignedUser": assignee.user_id or "",
                "assignedUserName": assignee.name,
                "dateCreated": current["dateCreated"],
                VERSION_FIELD: int(current.get(VERSION_FIELD) or 0) + 1,
            }
            replaced = await session.replace(TASKS, document)
            if replaced is None:
                raise NotFound.for_collection(TASKS)
            await self._apply(session, plan_task_replaced(task_state(current), task_state(replaced)))
        logger.info(
            "task_replaced",
            task_id=replaced[ID_FIELD],
            previous_assignee=current.get("assignedUser") or None,
            assigned_user=replaced["assignedUser"] or None,
            completed=replaced["completed"],
        )
        return replaced

    async def delete_task(self, task_id: str) -> Document:
        async with self._transaction(TASKS, "delete") as session:
            current = await self._require(session, TASKS, task_id)
            if not await session.delete(TASKS, current[ID_FIELD]):
                raise NotFound.for_collection(TASKS)
            await self._apply(session, plan_task_deleted(task_state(current)))
        logger.info("task_deleted", task_id=current[ID_FIELD])
        return current

    # Users ---------------------------------------------------------------

    async def create_user(self, payload: UserPayload) -> Document:
        async with self._transaction(USERS, "create") as session:
            document: Document = {
                ID_FIELD: new_object_id(),
                "name": payload.name,
                "email": payload.email,
                PENDING_FIELD: [],
                "dateCreated": _utcnow(),
                VERSION_FIELD: 0,
            }
            created = await session.insert(USERS, document)
            if payload.pendingTasks:
                plan, claimed = await self._plan_claims(session, created, payload.pendingTasks)
                created = await self._write_user(session, {**created, PENDING_FIELD: claimed})
                await self._apply(session, plan)
        logger.info("user_created", user_id=created[ID_FIELD], pending=len(created[PENDING_FIELD]))
        return created

    async def replace_user(self, user_id: str, payload: UserPayload) -> Document:
        async with self._transaction(USERS, "replace") as session:
            current = await self._require(session, USERS, user_id)
            proposed = {
                **current,
                "name": payload.name,
                "email": payload.email,
                VERSION_FIELD: int(current.get(VERSION_FIELD) or 0) + 1,
            }
            plan, claimed = await self._plan_claims(session, proposed, payload.pendingTasks)
            replaced = await self._write_user(session, {**proposed, PENDING_FIELD: claimed})
            await self._apply(session, plan)
        logger.info(
            "user_replaced",
            user_id=replaced[ID_FIELD],
            released=len(set(current.get(PENDING_FIELD) or ()) - set(claimed)),
            claimed=len(set(claimed) - set(current.get(PENDING_FIELD) or ())),
        )
        return replaced

    async def delete_user(self, user_id: str) -> Document:
        async with self._transaction(USERS, "delete") as session:
            current = await self._require(session, USERS, user_id)
            assigned = await session.find(TASKS, {"assignedUser": {"$eq": current[ID_FIELD]}})
            if not await session.delete(USERS, current[ID_FIELD]):
                raise NotFound.for_collection(USERS)
            await self._apply(session, plan_user_deleted(current[ID_FIELD], [task_state(task) for task in assigned]))
        logger.info("user_deleted", user_id=current[ID_FIELD], unassigned=len(assigned))
        return current

    # Internals -----------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self, collection: str, operation: str) -> AsyncIterator[StoreSession]:
        started = time.perf_counter()
        try:
            async with self._store.transaction() as session:
                yield session
        except Exception:
            metrics.record_mutation(
                collection=collection,
                operation=operation,
                outcome="aborted",
                latency=time.perf_counter() - started,
            )
            logger.info("transaction_rolled_back", collection=collection, operation=operation)
            raise
        metrics.record_mutation(
            collection=collection,
            operation=operation,
            outcome="committed",
            latency=time.perf_counter() - started,
        )

    async def _require(self, session: StoreSession, collection: str, raw_id: str) -> Document:
        doc_id = normalize_object_id(raw_id)
        if doc_id is None:
            raise NotFound.for_collection(collection)
        document = await session.get(collection, doc_id)
        if document is None:
            raise NotFound.for_collection(collection)
        return document

    async def _plan_claims(
        self,
        session: StoreSession,
        user: Mapping[str, Any],
        requested: list[str],
    ) -> tuple[SyncPlan, list[str]]:
        validator = ReferenceValidator(session)
        claimed = await validator.resolve_tasks(requested)
        completed = [task_id for task_id, task in claimed.items() if task.get("completed")]
        if completed:
            raise ValidationFailed(
                data={"errors": [{"loc": [PENDING_FIELD], "msg": "completed tasks cannot be pending", "ids": completed}]}
            )

        previous = [task_id for task_id in (user.get(PENDING_FIELD) or ()) if task_id not in claimed]
        states = {task_id: task_state(task) for task_id, task in claimed.items()}
        for task_id in previous:
            task = await session.get(TASKS, task_id)
            if task is not None:
                states[task_id] = task_state(task)

        plan = plan_user_replaced(
            user[ID_FIELD],
            user["name"],
            user.get(PENDING_FIELD) or (),
            claimed.keys(),
            states,
        )
        return plan, list(claimed)

    async def _write_user(self, session: StoreSession, document: Mapping[str, Any]) -> Document:
        written = await session.replace(USERS, document)
        if written is None:
            raise NotFound.for_collection(USERS)
        return written

    async def _apply(self, session: StoreSession, plan: SyncPlan) -> None:
        if not plan:
            return
        for write in plan.pending:
            if write.action is PendingAction.ADD:
                await session.add_to_set(USERS, write.user_id, PENDING_FIELD, write.task_id)
            else:
                await session.pull(USERS, write.user_id, PENDING_FIELD, write.task_id)
        for assignment in plan.assignments:
            await session.update_fields(
                TASKS,
                assignment.task_id,
                {"assignedUser": assignment.assigned_user, "assignedUserName": assignment.user_name},
            )
        metrics.increment_sync_writes(kind="pending_tasks", count=len(plan.pending))
        metrics.increment_sync_writes(kind="assignment", count=len(plan.assignments))
        logger.debug("sync_plan_applied", pending=len(plan.pending), assignments=len(plan.assignments))


__all__ = ["PENDING_FIELD", "TransactionalMutator", "task_state"]
