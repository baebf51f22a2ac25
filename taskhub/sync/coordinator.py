"""Derive the secondary writes that keep tasks and users consistent.

Every function here is pure: it receives the state before and after a
mutation and returns a :class:`SyncPlan` describing the writes the mutator
must apply next to the primary one. Nothing in this module touches a store.

The relation being maintained::

    task.assignedUser == user._id and not task.completed
        <=> task._id in user.pendingTasks
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping

from ..schemas.tasks import UNASSIGNED_NAME


class PendingAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(slots=True, frozen=True)
class TaskState:
    task_id: str
    assignee: str | None
    completed: bool

    @property
    def pending_for(self) -> str | None:
        """The user whose ``pendingTasks`` must hold this task, if any."""
        if self.assignee is None or self.completed:
            return None
        return self.assignee


@dataclass(slots=True, frozen=True)
class PendingTasksWrite:
    action: PendingAction
    user_id: str
    task_id: str


@dataclass(slots=True, frozen=True)
class AssignmentWrite:
    task_id: str
    user_id: str | None
    user_name: str

    @property
    def assigned_user(self) -> str:
        return self.user_id or ""


@dataclass(slots=True)
class SyncPlan:
    pending: list[PendingTasksWrite] = field(default_factory=list)
    assignments: list[AssignmentWrite] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.pending or self.assignments)


def plan_task_created(task: TaskState) -> SyncPlan:
    plan = SyncPlan()
    if task.pending_for is not None:
        plan.pending.append(PendingTasksWrite(PendingAction.ADD, task.pending_for, task.task_id))
    return plan


def plan_task_replaced(previous: TaskState, proposed: TaskState) -> SyncPlan:
    writes: list[PendingTasksWrite] = []
    task_id = proposed.task_id
    if previous.assignee != proposed.assignee and previous.assignee is not None:
        writes.append(PendingTasksWrite(PendingAction.REMOVE, previous.assignee, task_id))
    if proposed.assignee is not None and not proposed.completed:
        writes.append(PendingTasksWrite(PendingAction.ADD, proposed.assignee, task_id))
    if (
        previous.assignee == proposed.assignee
        and proposed.assignee is not None
        and previous.completed != proposed.completed
    ):
        action = PendingAction.REMOVE if proposed.completed else PendingAction.ADD
        writes.append(PendingTasksWrite(action, proposed.assignee, task_id))
    return SyncPlan(pending=_collapse(writes))


def plan_task_deleted(task: TaskState) -> SyncPlan:
    plan = SyncPlan()
    if task.pending_for is not None:
        plan.pending.append(PendingTasksWrite(PendingAction.REMOVE, task.pending_for, task.task_id))
    return plan


def plan_user_replaced(
    user_id: str,
    user_name: str,
    previous: Iterable[str],
    proposed: Iterable[str],
    tasks: Mapping[str, TaskState],
) -> SyncPlan:
    """Plan the task side of a ``pendingTasks`` replacement.

    ``tasks`` must hold the current state of every task in the symmetric
    difference of ``previous`` and ``proposed``. Released tasks are
    unassigned only when they still point at this user. Claimed tasks are
    assigned to this user unconditionally, and a claim that takes a pending
    task away from another user also pulls it from that user's set.
    """

    before = list(dict.fromkeys(previous))
    after = list(dict.fromkeys(proposed))
    after_set = set(after)
    before_set = set(before)

    plan = SyncPlan()
    for task_id in before:
        if task_id in after_set:
            continue
        task = tasks.get(task_id)
        if task is not None and task.assignee == user_id:
            plan.assignments.append(AssignmentWrite(task_id, None, UNASSIGNED_NAME))
    for task_id in after:
        if task_id in before_set:
            continue
        plan.assignments.append(AssignmentWrite(task_id, user_id, user_name))
        task = tasks.get(task_id)
        if task is not None and task.pending_for not in (None, user_id):
            plan.pending.append(PendingTasksWrite(PendingAction.REMOVE, task.pending_for, task_id))
    return plan


def plan_user_deleted(user_id: str, assigned: Iterable[TaskState]) -> SyncPlan:
    plan = SyncPlan()
    for task in assigned:
        if task.assignee == user_id:
            plan.assignments.append(AssignmentWrite(task.task_id, None, UNASSIGNED_NAME))
    return plan


def _collapse(writes: Iterable[PendingTasksWrite]) -> list[PendingTasksWrite]:
    # Set semantics: the last operation on a (user, task) pair decides the outcome.
    net: dict[tuple[str, str], PendingTasksWrite] = {}
    for write in writes:
        key = (write.user_id, write.task_id)
        net.pop(key, None)
        net[key] = write
    return list(net.values())


__all__ = [
    "AssignmentWrite",
    "PendingAction",
    "PendingTasksWrite",
    "SyncPlan",
    "TaskState",
    "plan_task_created",
    "plan_task_deleted",
    "plan_task_replaced",
    "plan_user_deleted",
    "plan_user_replaced",
]
