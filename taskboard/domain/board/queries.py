# -*- coding: utf-8 -*-
"""
Read-only projections over a list of tasks (normally EntityStore.tasks())
and per-user views over the store. Nothing here mutates the store or
touches the network.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from taskboard.domain.board.models import Department, EntityKind, Subtask, Task, TaskPriority, TaskStatus
from taskboard.domain.board.store import EntityStore


class BoardFilter(str, Enum):
    ALL = "all"
    COMPLETED = "completed"
    # tasks needing attention = critical priority
    ATTENTION = "attention"


def filter_by_status(tasks: Iterable[Task], status: Union[TaskStatus, str]) -> List[Task]:
    status = TaskStatus(status)
    return [t for t in tasks if t.status is status]


def filter_by_priority(tasks: Iterable[Task], priority: Union[TaskPriority, str]) -> List[Task]:
    priority = TaskPriority(priority)
    return [t for t in tasks if t.priority is priority]


def filter_by_department(tasks: Iterable[Task], department: Union[Department, str]) -> List[Task]:
    department = Department(department)
    return [t for t in tasks if t.department is department]


def matches_query(task: Task, query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    if needle in task.title.lower():
        return True
    return bool(task.description) and needle in task.description.lower()


def search_tasks(tasks: Iterable[Task], query: str) -> List[Task]:
    """Case-insensitive substring match on title or description. Blank query returns everything."""
    return [t for t in tasks if matches_query(t, query)]


def apply_board_filter(tasks: Iterable[Task], board_filter: Union[BoardFilter, str]) -> List[Task]:
    board_filter = BoardFilter(board_filter)
    if board_filter is BoardFilter.COMPLETED:
        return filter_by_status(tasks, TaskStatus.COMPLETED)
    if board_filter is BoardFilter.ATTENTION:
        return filter_by_priority(tasks, TaskPriority.CRITICAL)
    return list(tasks)


def apply_filters(
    tasks: Iterable[Task],
    query: str = "",
    status: Optional[Union[TaskStatus, str]] = None,
    priority: Optional[Union[TaskPriority, str]] = None,
    department: Optional[Union[Department, str]] = None,
    board_filter: Union[BoardFilter, str] = BoardFilter.ALL,
) -> List[Task]:
    """Every active criterion must hold (logical AND); search never overrides a filter."""
    out = search_tasks(tasks, query)
    if status is not None:
        out = filter_by_status(out, status)
    if priority is not None:
        out = filter_by_priority(out, priority)
    if department is not None:
        out = filter_by_department(out, department)
    return apply_board_filter(out, board_filter)


def group_by_status(tasks: Iterable[Task]) -> Dict[TaskStatus, List[Task]]:
    """Kanban columns: every status is present, possibly empty."""
    columns: Dict[TaskStatus, List[Task]] = {s: [] for s in TaskStatus}
    for t in tasks:
        columns[t.status].append(t)
    return columns


def tasks_for_user(store: EntityStore, user_id: str) -> List[Task]:
    """My tasks: every task with an assignment edge for the user."""
    return [t for t in store.tasks() if user_id in store.assignee_ids(EntityKind.TASK, t.id)]


def subtasks_for_user(store: EntityStore, user_id: str, include_inherited: bool = True) -> List[Subtask]:
    """
    Subtasks the user works on, in task order then order_index.

    With include_inherited, a subtask without explicit assignees counts
    when its parent task is assigned to the user.
    """
    out: List[Subtask] = []
    for task in store.tasks():
        for st in store.subtasks_for_task(task.id):
            if include_inherited:
                assignees = store.effective_subtask_assignees(st.id).ids
            else:
                assignees = tuple(store.assignee_ids(EntityKind.SUBTASK, st.id))
            if user_id in assignees:
                out.append(st)
    return out
