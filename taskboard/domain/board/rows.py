# -*- coding: utf-8 -*-
"""
Remote row <-> entity conversion.

Rows coming back from the store or the change stream are untyped dicts;
they are turned into frozen entities here and nowhere else.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from taskboard.constants import (
    DEFAULT_ROLE,
    TABLE_COMMENTS,
    TABLE_SUBTASK_ASSIGNMENTS,
    TABLE_SUBTASKS,
    TABLE_TASK_ASSIGNMENTS,
    TABLE_TASKS,
)
from taskboard.domain.board.models import (
    Assignment,
    Comment,
    Department,
    Entity,
    EntityKind,
    Subtask,
    Task,
    TaskPriority,
    TaskStatus,
)
from taskboard.domain.common.time import from_iso_opt, parse_ymd, to_iso, to_ymd


class RowFormatError(ValueError):
    """A remote row is missing a column or carries a value we cannot read."""


ASSIGNMENT_TABLE_BY_KIND = {
    EntityKind.TASK: TABLE_TASK_ASSIGNMENTS,
    EntityKind.SUBTASK: TABLE_SUBTASK_ASSIGNMENTS,
}
KIND_BY_ASSIGNMENT_TABLE = {table: kind for kind, table in ASSIGNMENT_TABLE_BY_KIND.items()}
# column holding the assigned entity's id in each assignment table
ASSIGNMENT_FK = {
    EntityKind.TASK: "task_id",
    EntityKind.SUBTASK: "subtask_id",
}


def _req(row: Mapping[str, Any], key: str) -> Any:
    value = row.get(key)
    if value is None:
        raise RowFormatError(f"row is missing {key!r}")
    return value


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _iso_opt(dt: Optional[datetime]) -> Optional[str]:
    return to_iso(dt) if dt is not None else None


def _guard(fn: Callable[[Mapping[str, Any]], Any]) -> Callable[[Mapping[str, Any]], Any]:
    def wrapper(row: Mapping[str, Any]) -> Any:
        try:
            return fn(row)
        except RowFormatError:
            raise
        except (TypeError, ValueError) as e:
            raise RowFormatError(f"{fn.__name__}: {e}") from e

    wrapper.__name__ = fn.__name__
    wrapper.__doc__ = fn.__doc__
    return wrapper


# ----- tasks -----


@_guard
def task_from_row(row: Mapping[str, Any]) -> Task:
    department = row.get("department")
    return Task(
        id=str(_req(row, "id")),
        title=str(_req(row, "title")),
        created_by=str(_req(row, "created_by")),
        description=_opt_str(row.get("description")),
        status=TaskStatus(row.get("status") or TaskStatus.TODO.value),
        priority=TaskPriority(row.get("priority") or TaskPriority.MEDIUM.value),
        start_date=parse_ymd(row.get("start_date")),
        due_date=parse_ymd(row.get("due_date")),
        department=Department(department) if department else None,
        created_at=from_iso_opt(row.get("created_at")),
        updated_at=from_iso_opt(row.get("updated_at")),
    )


def task_to_row(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.value,
        "start_date": to_ymd(task.start_date),
        "due_date": to_ymd(task.due_date),
        "department": task.department.value if task.department else None,
        "created_by": task.created_by,
        "created_at": _iso_opt(task.created_at),
        "updated_at": _iso_opt(task.updated_at),
    }


# ----- subtasks -----


@_guard
def subtask_from_row(row: Mapping[str, Any]) -> Subtask:
    return Subtask(
        id=str(_req(row, "id")),
        task_id=str(_req(row, "task_id")),
        title=str(_req(row, "title")),
        order_index=int(row.get("order_index") or 0),
        completed=bool(row.get("completed") or False),
        description=_opt_str(row.get("description")),
        start_date=parse_ymd(row.get("start_date")),
        end_date=parse_ymd(row.get("end_date")),
        created_at=from_iso_opt(row.get("created_at")),
        updated_at=from_iso_opt(row.get("updated_at")),
    )


def subtask_to_row(subtask: Subtask) -> Dict[str, Any]:
    return {
        "id": subtask.id,
        "task_id": subtask.task_id,
        "title": subtask.title,
        "description": subtask.description,
        "completed": subtask.completed,
        "order_index": subtask.order_index,
        "start_date": to_ymd(subtask.start_date),
        "end_date": to_ymd(subtask.end_date),
        "created_at": _iso_opt(subtask.created_at),
        "updated_at": _iso_opt(subtask.updated_at),
    }


# ----- comments -----


@_guard
def comment_from_row(row: Mapping[str, Any]) -> Comment:
    return Comment(
        id=str(_req(row, "id")),
        author_id=str(_req(row, "author_id")),
        content=str(_req(row, "content")),
        task_id=_opt_str(row.get("task_id")),
        subtask_id=_opt_str(row.get("subtask_id")),
        is_internal=bool(row.get("is_internal") or False),
        created_at=from_iso_opt(row.get("created_at")),
        edited_at=from_iso_opt(row.get("edited_at")),
    )


def comment_to_row(comment: Comment) -> Dict[str, Any]:
    return {
        "id": comment.id,
        "task_id": comment.task_id,
        "subtask_id": comment.subtask_id,
        "author_id": comment.author_id,
        "content": comment.content,
        "is_internal": comment.is_internal,
        "created_at": _iso_opt(comment.created_at),
        "edited_at": _iso_opt(comment.edited_at),
    }


# ----- assignments -----


def assignment_from_row(row: Mapping[str, Any], kind: EntityKind) -> Assignment:
    try:
        return Assignment(
            entity_kind=kind,
            entity_id=str(_req(row, ASSIGNMENT_FK[kind])),
            user_id=str(_req(row, "user_id")),
            role=str(row.get("role") or DEFAULT_ROLE),
            assigned_at=from_iso_opt(row.get("assigned_at")),
            assigned_by=_opt_str(row.get("assigned_by")),
            id=_opt_str(row.get("id")),
        )
    except RowFormatError:
        raise
    except (TypeError, ValueError) as e:
        raise RowFormatError(f"assignment_from_row: {e}") from e


def assignment_to_row(edge: Assignment) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        ASSIGNMENT_FK[edge.entity_kind]: edge.entity_id,
        "user_id": edge.user_id,
        "role": edge.role,
        "assigned_at": _iso_opt(edge.assigned_at),
        "assigned_by": edge.assigned_by,
    }
    if edge.id is not None:
        row["id"] = edge.id
    return row


# ----- patches -----


_PATCH_ENCODERS: Dict[str, Callable[[Any], Any]] = {
    "status": lambda v: v.value,
    "priority": lambda v: v.value,
    "department": lambda v: v.value if v is not None else None,
    "start_date": to_ymd,
    "due_date": to_ymd,
    "end_date": to_ymd,
    "updated_at": _iso_opt,
    "edited_at": _iso_opt,
}


def patch_to_row(changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Typed field changes -> column values."""
    out: Dict[str, Any] = {}
    for name, value in changes.items():
        encode = _PATCH_ENCODERS.get(name)
        out[name] = encode(value) if encode else value
    return out


_ENTITY_DECODERS: Dict[str, Callable[[Mapping[str, Any]], Entity]] = {
    TABLE_TASKS: task_from_row,
    TABLE_SUBTASKS: subtask_from_row,
    TABLE_COMMENTS: comment_from_row,
}


def entity_from_row(table: str, row: Mapping[str, Any]) -> Entity:
    decode = _ENTITY_DECODERS.get(table)
    if decode is None:
        raise RowFormatError(f"no entity decoder for table {table!r}")
    return decode(row)


def row_id(row: Mapping[str, Any]) -> Optional[str]:
    value = row.get("id")
    return str(value) if value is not None else None


def assignment_parent(table: str, row: Mapping[str, Any]) -> Tuple[EntityKind, Optional[str]]:
    kind = KIND_BY_ASSIGNMENT_TABLE[table]
    return kind, _opt_str(row.get(ASSIGNMENT_FK[kind]))
