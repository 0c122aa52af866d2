from __future__ import annotations

from dataclasses import replace
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from taskboard.domain.board.models import (
    Department,
    Subtask,
    TaskDraft,
    TaskPriority,
    TaskStatus,
)
from taskboard.domain.common.errors import ValidationError
from taskboard.domain.common.time import parse_ymd

MAX_TITLE_LEN = 200
MAX_COMMENT_LEN = 5000

TASK_REQUIRED_FIELDS = ("title", "department")

E = TypeVar("E", bound=Enum)


def missing_fields(values: Mapping[str, Any], required: Sequence[str]) -> list[str]:
    out = []
    for name in required:
        value = values.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            out.append(name)
    return out


def validate_title(title: Any, field: str = "title") -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title is required.", field=field)
    title = title.strip()
    if len(title) > MAX_TITLE_LEN:
        raise ValidationError(f"Title is too long (max {MAX_TITLE_LEN} chars).", field=field)
    return title


def parse_enum(enum_cls: Type[E], raw: Any, field: str) -> E:
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Unknown {field} {raw!r} (expected one of: {allowed}).", field=field) from None


def parse_date_field(raw: Any, field: str) -> Optional[date]:
    try:
        return parse_ymd(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a calendar date (YYYY-MM-DD).", field=field) from None


def normalize_description(value: Any) -> Optional[str]:
    """Blank means no description."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Description must be text.", field="description")
    return value.strip() or None


def validate_date_order(start: Optional[date], end: Optional[date], end_field: str) -> None:
    if start is not None and end is not None and end < start:
        raise ValidationError("End date cannot be before start date.", field=end_field)


def normalize_assignee_ids(ids: Iterable[str]) -> Tuple[str, ...]:
    """Drop blanks and duplicates, keep first-seen order."""
    seen: Dict[str, None] = {}
    for raw in ids:
        if not isinstance(raw, str) or not raw.strip():
            raise ValidationError("Assignee ids must be non-empty strings.", field="assignee_ids")
        seen.setdefault(raw.strip(), None)
    return tuple(seen)


def normalize_task_draft(draft: TaskDraft) -> TaskDraft:
    """
    Validate a new task and return it with typed fields.
    Raises ValidationError on the first offending field.
    """
    missing = missing_fields(
        {"title": draft.title, "department": draft.department}, TASK_REQUIRED_FIELDS
    )
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    title = validate_title(draft.title)
    department = parse_enum(Department, draft.department, "department")
    status = parse_enum(TaskStatus, draft.status, "status")
    priority = parse_enum(TaskPriority, draft.priority, "priority")
    start_date = parse_date_field(draft.start_date, "start_date")
    due_date = parse_date_field(draft.due_date, "due_date")
    validate_date_order(start_date, due_date, "due_date")

    return replace(
        draft,
        title=title,
        description=normalize_description(draft.description),
        department=department,
        status=status,
        priority=priority,
        start_date=start_date,
        due_date=due_date,
        assignee_ids=normalize_assignee_ids(draft.assignee_ids),
    )


def normalize_task_changes(changes: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name, value in changes.items():
        if name == "title":
            out[name] = validate_title(value)
        elif name == "department":
            # department is required on a task, it can be changed but not cleared
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError("Department is required.", field="department")
            out[name] = parse_enum(Department, value, "department")
        elif name == "status":
            out[name] = parse_enum(TaskStatus, value, "status")
        elif name == "priority":
            out[name] = parse_enum(TaskPriority, value, "priority")
        elif name in ("start_date", "due_date"):
            out[name] = parse_date_field(value, name)
        elif name == "description":
            out[name] = normalize_description(value)
        else:
            raise ValidationError(f"Field {name} cannot be updated.", field=name)
    return out


def normalize_subtask_changes(changes: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name, value in changes.items():
        if name == "title":
            out[name] = validate_title(value)
        elif name == "completed":
            if not isinstance(value, bool):
                raise ValidationError("completed must be true or false.", field="completed")
            out[name] = value
        elif name == "order_index":
            out[name] = validate_order_index(value)
        elif name in ("start_date", "end_date"):
            out[name] = parse_date_field(value, name)
        elif name == "description":
            out[name] = normalize_description(value)
        else:
            raise ValidationError(f"Field {name} cannot be updated.", field=name)
    return out


def validate_order_index(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("order_index must be a non-negative integer.", field="order_index")
    return value


def ensure_free_order_index(siblings: Iterable[Subtask], order_index: int, own_id: Optional[str] = None) -> None:
    for st in siblings:
        if st.order_index == order_index and st.id != own_id:
            raise ValidationError(
                f"Another subtask already sits at position {order_index}.", field="order_index"
            )


def next_order_index(siblings: Iterable[Subtask]) -> int:
    indexes = [st.order_index for st in siblings]
    return max(indexes) + 1 if indexes else 0


def validate_comment_content(content: Any) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Comment cannot be empty.", field="content")
    content = content.strip()
    if len(content) > MAX_COMMENT_LEN:
        raise ValidationError(f"Comment is too long (max {MAX_COMMENT_LEN} chars).", field="content")
    return content


def validate_comment_parent(task_id: Optional[str], subtask_id: Optional[str]) -> None:
    if (task_id is None) == (subtask_id is None):
        raise ValidationError("A comment belongs to exactly one task or subtask.", field="parent")
