from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from taskboard.constants import DEFAULT_ROLE
from taskboard.domain.common.errors import DomainError


class TaskStatus(str, Enum):
    TODO = "Todo"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class TaskPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class Department(str, Enum):
    PRODUCTION = "Production"
    QUALITY = "Quality"
    MAINTENANCE = "Maintenance"
    SAFETY = "Safety"
    ENGINEERING = "Engineering"
    MANAGEMENT = "Management"


class EntityKind(str, Enum):
    TASK = "task"
    SUBTASK = "subtask"


class AssigneeSource(str, Enum):
    EXPLICIT = "explicit"
    INHERITED = "inherited"


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    created_by: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    department: Optional[Department] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Subtask:
    id: str
    task_id: str
    title: str
    order_index: int
    completed: bool = False
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Comment:
    id: str
    author_id: str
    content: str
    task_id: Optional[str] = None
    subtask_id: Optional[str] = None
    is_internal: bool = False
    created_at: Optional[datetime] = None
    edited_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if (self.task_id is None) == (self.subtask_id is None):
            raise ValueError("comment needs exactly one parent (task_id or subtask_id)")

    @property
    def parent_id(self) -> str:
        return self.task_id if self.task_id is not None else self.subtask_id  # type: ignore[return-value]


@dataclass(frozen=True)
class Assignment:
    """One (entity, user) edge. The pair is unique; `id` is the remote row id."""

    entity_kind: EntityKind
    entity_id: str
    user_id: str
    role: str = DEFAULT_ROLE
    assigned_at: Optional[datetime] = None
    assigned_by: Optional[str] = None
    id: Optional[str] = None

    @property
    def key(self) -> Tuple[EntityKind, str, str]:
        return (self.entity_kind, self.entity_id, self.user_id)


Entity = Union[Task, Subtask, Comment]


@dataclass(frozen=True)
class AssigneeSet:
    """
    Assignees of one entity, tagged with where they came from.
    Inherited sets are display-only; only explicit edges can be written.
    """

    kind: AssigneeSource
    ids: Tuple[str, ...]

    @property
    def is_writable(self) -> bool:
        return self.kind is AssigneeSource.EXPLICIT


class _Unset:
    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class TaskDraft:
    title: str
    department: Union[Department, str, None] = None
    description: Optional[str] = None
    status: Union[TaskStatus, str] = TaskStatus.TODO
    priority: Union[TaskPriority, str] = TaskPriority.MEDIUM
    start_date: Union[date, str, None] = None
    due_date: Union[date, str, None] = None
    assignee_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TaskPatch:
    """Fields left as UNSET are not touched. `None` clears an optional field."""

    title: Any = UNSET
    description: Any = UNSET
    status: Any = UNSET
    priority: Any = UNSET
    start_date: Any = UNSET
    due_date: Any = UNSET
    department: Any = UNSET
    assignee_ids: Any = UNSET

    def changes(self) -> Dict[str, Any]:
        return _set_fields(self, exclude=("assignee_ids",))


@dataclass(frozen=True)
class SubtaskPatch:
    title: Any = UNSET
    description: Any = UNSET
    completed: Any = UNSET
    order_index: Any = UNSET
    start_date: Any = UNSET
    end_date: Any = UNSET
    assignee_ids: Any = UNSET

    def changes(self) -> Dict[str, Any]:
        return _set_fields(self, exclude=("assignee_ids",))


def _set_fields(patch: Any, exclude: Tuple[str, ...]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in patch.__dataclass_fields__:
        if name in exclude:
            continue
        value = getattr(patch, name)
        if value is not UNSET:
            out[name] = value
    return out


class WriteStatus(str, Enum):
    COMMITTED = "committed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class WriteResult:
    """
    Outcome of a public write.

    - committed: everything landed
    - partial: the entity landed, an auxiliary relation (assignments) did not
    - failed: nothing new is visible locally; `error` says why
    """

    status: WriteStatus
    entity: Any = None
    error: Optional[DomainError] = None
    warnings: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status is WriteStatus.COMMITTED

    @property
    def entity_committed(self) -> bool:
        return self.status is not WriteStatus.FAILED

    @classmethod
    def committed(cls, entity: Any = None) -> "WriteResult":
        return cls(WriteStatus.COMMITTED, entity=entity)

    @classmethod
    def partial(cls, entity: Any, error: DomainError) -> "WriteResult":
        return cls(WriteStatus.PARTIAL, entity=entity, error=error, warnings=(error.message,))

    @classmethod
    def failed(cls, error: DomainError) -> "WriteResult":
        return cls(WriteStatus.FAILED, error=error)


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """One push notification. For deletes `row` is the old row (at least its id)."""

    type: ChangeType
    table: str
    row: Mapping[str, Any] = field(default_factory=dict)
