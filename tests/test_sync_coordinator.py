from __future__ import annotations

from taskhub.sync.coordinator import (
    AssignmentWrite,
    PendingAction,
    PendingTasksWrite,
    TaskState,
    plan_task_created,
    plan_task_deleted,
    plan_task_replaced,
    plan_user_deleted,
    plan_user_replaced,
)

T1 = "1" * 24
T2 = "2" * 24
T3 = "3" * 24
U1 = "a" * 24
U2 = "b" * 24

ADD = PendingAction.ADD
REMOVE = PendingAction.REMOVE


def test_created_task_with_assignee_is_added_to_pending() -> None:
    plan = plan_task_created(TaskState(T1, U1, completed=False))
    assert plan.pending == [PendingTasksWrite(ADD, U1, T1)]
    assert plan.assignments == []


def test_created_task_completed_or_unassigned_needs_no_sync() -> None:
    assert not plan_task_created(TaskState(T1, U1, completed=True))
    assert not plan_task_created(TaskState(T1, None, completed=False))


def test_reassignment_moves_task_between_users() -> None:
    plan = plan_task_replaced(TaskState(T1, U1, False), TaskState(T1, U2, False))
    assert plan.pending == [PendingTasksWrite(REMOVE, U1, T1), PendingTasksWrite(ADD, U2, T1)]


def test_completing_task_removes_it_from_assignee() -> None:
    plan = plan_task_replaced(TaskState(T1, U1, False), TaskState(T1, U1, True))
    assert plan.pending == [PendingTasksWrite(REMOVE, U1, T1)]


def test_reopening_task_collapses_to_single_add() -> None:
    plan = plan_task_replaced(TaskState(T1, U1, True), TaskState(T1, U1, False))
    assert plan.pending == [PendingTasksWrite(ADD, U1, T1)]


def test_unassigning_task_removes_it() -> None:
    plan = plan_task_replaced(TaskState(T1, U1, False), TaskState(T1, None, False))
    assert plan.pending == [PendingTasksWrite(REMOVE, U1, T1)]


def test_reassigning_completed_task_only_releases_previous_user() -> None:
    plan = plan_task_replaced(TaskState(T1, U1, False), TaskState(T1, U2, True))
    assert plan.pending == [PendingTasksWrite(REMOVE, U1, T1)]


def test_unchanged_task_is_idempotent_add() -> None:
    plan = plan_task_replaced(TaskState(T1, U1, False), TaskState(T1, U1, False))
    assert plan.pending == [PendingTasksWrite(ADD, U1, T1)]


def test_deleting_pending_task_removes_it() -> None:
    assert plan_task_deleted(TaskState(T1, U1, False)).pending == [PendingTasksWrite(REMOVE, U1, T1)]
    assert not plan_task_deleted(TaskState(T1, U1, True))
    assert not plan_task_deleted(TaskState(T1, None, False))


def test_user_replace_releases_and_claims() -> None:
    tasks = {
        T1: TaskState(T1, U1, False),
        T2: TaskState(T2, None, False),
        T3: TaskState(T3, U2, False),
    }

    plan = plan_user_replaced(U1, "Ada", previous=[T1], proposed=[T2, T3], tasks=tasks)

    assert plan.assignments == [
        AssignmentWrite(T1, None, "unassigned"),
        AssignmentWrite(T2, U1, "Ada"),
        AssignmentWrite(T3, U1, "Ada"),
    ]
    assert plan.pending == [PendingTasksWrite(REMOVE, U2, T3)]


def test_user_replace_does_not_unassign_task_owned_by_someone_else() -> None:
    tasks = {T1: TaskState(T1, U2, False)}
    plan = plan_user_replaced(U1, "Ada", previous=[T1], proposed=[], tasks=tasks)
    assert not plan


def test_user_replace_with_same_set_is_a_no_op() -> None:
    tasks = {T1: TaskState(T1, U1, False)}
    assert not plan_user_replaced(U1, "Ada", previous=[T1], proposed=[T1], tasks=tasks)


def test_user_delete_unassigns_all_tasks_regardless_of_completion() -> None:
    plan = plan_user_deleted(U1, [TaskState(T1, U1, False), TaskState(T2, U1, True), TaskState(T3, U2, False)])
    assert plan.assignments == [AssignmentWrite(T1, None, "unassigned"), AssignmentWrite(T2, None, "unassigned")]
    assert plan.pending == []
