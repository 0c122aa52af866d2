from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple

from taskboard.domain.board.models import (
    AssigneeSet,
    AssigneeSource,
    Assignment,
    Comment,
    Entity,
    EntityKind,
    Subtask,
    Task,
    TaskStatus,
)
from taskboard.domain.common.errors import NotFoundError

logger = logging.getLogger(__name__)

EdgeKey = Tuple[EntityKind, str]


@dataclass(frozen=True)
class Checkpoint:
    """Saved local value of one entity (and its explicit edges) for rollback."""

    entity_id: str
    entity: Optional[Entity]
    edges: Tuple[Assignment, ...]


class EntityStore:
    """
    Best-known local state of the board.

    - upserts replace by id (last write wins on the local timeline)
    - removals cascade to children and assignment edges
    - no I/O: every method is synchronous
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, Task] = {}
        self._subtasks: Dict[str, Subtask] = {}
        self._comments: Dict[str, Comment] = {}
        # (kind, entity id) -> user id -> edge; dict order is insertion order
        self._edges: Dict[EdgeKey, Dict[str, Assignment]] = {}

    # ---- lifecycle ----

    def init(
        self,
        tasks: Iterable[Task] = (),
        subtasks: Iterable[Subtask] = (),
        comments: Iterable[Comment] = (),
        assignments: Iterable[Assignment] = (),
    ) -> None:
        """Replace everything with a fresh snapshot (session start / re-fetch)."""
        self.clear()
        for task in tasks:
            self.upsert_task(task)
        for items, upsert in ((subtasks, self.upsert_subtask), (comments, self.upsert_comment),
                              (assignments, self.upsert_assignment)):
            for item in items:
                try:
                    upsert(item)
                except NotFoundError as e:
                    logger.warning("Snapshot row skipped: %s", e)
        logger.debug(
            "EntityStore init tasks=%s subtasks=%s comments=%s edges=%s",
            len(self._tasks), len(self._subtasks), len(self._comments), self.edge_count(),
        )

    def clear(self) -> None:
        self._tasks.clear()
        self._subtasks.clear()
        self._comments.clear()
        self._edges.clear()

    # ---- reads ----

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def get_subtask(self, subtask_id: str) -> Optional[Subtask]:
        return self._subtasks.get(subtask_id)

    def get_comment(self, comment_id: str) -> Optional[Comment]:
        return self._comments.get(comment_id)

    def get(self, entity_id: str) -> Optional[Entity]:
        return (
            self._tasks.get(entity_id)
            or self._subtasks.get(entity_id)
            or self._comments.get(entity_id)
        )

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._tasks or entity_id in self._subtasks or entity_id in self._comments

    def tasks(self) -> List[Task]:
        return list(self._tasks.values())

    def tasks_by_status(self, status: TaskStatus) -> List[Task]:
        return [t for t in self._tasks.values() if t.status is status]

    def subtasks_for_task(self, task_id: str) -> List[Subtask]:
        out = [st for st in self._subtasks.values() if st.task_id == task_id]
        out.sort(key=lambda st: st.order_index)
        return out

    def comments_for_task(self, task_id: str) -> List[Comment]:
        return [c for c in self._comments.values() if c.task_id == task_id]

    def comments_for_subtask(self, subtask_id: str) -> List[Comment]:
        return [c for c in self._comments.values() if c.subtask_id == subtask_id]

    def assignments(self, kind: EntityKind, entity_id: str) -> List[Assignment]:
        return list(self._edges.get((kind, entity_id), {}).values())

    def assignee_ids(self, kind: EntityKind, entity_id: str) -> List[str]:
        return list(self._edges.get((kind, entity_id), {}))

    def find_assignment(self, row_id: str) -> Optional[Assignment]:
        for edges in self._edges.values():
            for edge in edges.values():
                if edge.id == row_id:
                    return edge
        return None

    def effective_subtask_assignees(self, subtask_id: str) -> AssigneeSet:
        """
        Explicit edges if the subtask has any, otherwise the parent task's
        assignees tagged as inherited.
        """
        explicit = self.assignee_ids(EntityKind.SUBTASK, subtask_id)
        if explicit:
            return AssigneeSet(AssigneeSource.EXPLICIT, tuple(explicit))
        subtask = self._subtasks.get(subtask_id)
        if subtask is None:
            raise NotFoundError(f"Subtask {subtask_id} not found")
        inherited = self.assignee_ids(EntityKind.TASK, subtask.task_id)
        return AssigneeSet(AssigneeSource.INHERITED, tuple(inherited))

    def edge_count(self) -> int:
        return sum(len(e) for e in self._edges.values())

    # ---- mutators ----

    def upsert(self, entity: Entity) -> None:
        if isinstance(entity, Task):
            self.upsert_task(entity)
        elif isinstance(entity, Subtask):
            self.upsert_subtask(entity)
        elif isinstance(entity, Comment):
            self.upsert_comment(entity)
        else:
            raise TypeError(f"not a board entity: {entity!r}")

    def upsert_task(self, task: Task) -> None:
        existing = self._tasks.get(task.id)
        if existing is not None and existing.created_by != task.created_by:
            # ownership never changes after creation
            task = replace(task, created_by=existing.created_by)
        self._tasks[task.id] = task

    def upsert_subtask(self, subtask: Subtask) -> None:
        existing = self._subtasks.get(subtask.id)
        if existing is not None:
            if existing.task_id != subtask.task_id:
                subtask = replace(subtask, task_id=existing.task_id)
        elif subtask.task_id not in self._tasks:
            raise NotFoundError(f"Task {subtask.task_id} not found for subtask {subtask.id}")
        self._subtasks[subtask.id] = subtask

    def upsert_comment(self, comment: Comment) -> None:
        if comment.id not in self._comments:
            if comment.task_id is not None and comment.task_id not in self._tasks:
                raise NotFoundError(f"Task {comment.task_id} not found for comment {comment.id}")
            if comment.subtask_id is not None and comment.subtask_id not in self._subtasks:
                raise NotFoundError(f"Subtask {comment.subtask_id} not found for comment {comment.id}")
        self._comments[comment.id] = comment

    def upsert_assignment(self, edge: Assignment) -> None:
        """At most one edge per (entity, user): a second one replaces the first in place."""
        self._require_entity(edge.entity_kind, edge.entity_id)
        self._edges.setdefault((edge.entity_kind, edge.entity_id), {})[edge.user_id] = edge

    def replace_assignments(self, kind: EntityKind, entity_id: str, edges: Iterable[Assignment]) -> None:
        self._require_entity(kind, entity_id)
        fresh: Dict[str, Assignment] = {}
        for edge in edges:
            fresh[edge.user_id] = edge
        if fresh:
            self._edges[(kind, entity_id)] = fresh
        else:
            self._edges.pop((kind, entity_id), None)

    def remove_assignments(self, kind: EntityKind, entity_id: str, user_ids: Iterable[str]) -> int:
        edges = self._edges.get((kind, entity_id))
        if not edges:
            return 0
        removed = 0
        for user_id in user_ids:
            if edges.pop(user_id, None) is not None:
                removed += 1
        if not edges:
            del self._edges[(kind, entity_id)]
        return removed

    def remove_assignment_row(self, row_id: str) -> bool:
        edge = self.find_assignment(row_id)
        if edge is None:
            return False
        return self.remove_assignments(edge.entity_kind, edge.entity_id, [edge.user_id]) == 1

    def remove_cascade(self, entity_id: str) -> bool:
        """
        Remove an entity and everything referencing it:
        task -> its subtasks, comments on both, all their edges;
        subtask -> its comments and edges; comment -> itself.
        Unknown ids are a no-op (returns False).
        """
        if entity_id in self._tasks:
            for st in self.subtasks_for_task(entity_id):
                self._remove_subtask(st.id)
            for c in self.comments_for_task(entity_id):
                del self._comments[c.id]
            self._edges.pop((EntityKind.TASK, entity_id), None)
            del self._tasks[entity_id]
            return True
        if entity_id in self._subtasks:
            self._remove_subtask(entity_id)
            return True
        if entity_id in self._comments:
            del self._comments[entity_id]
            return True
        return False

    def _remove_subtask(self, subtask_id: str) -> None:
        for c in self.comments_for_subtask(subtask_id):
            del self._comments[c.id]
        self._edges.pop((EntityKind.SUBTASK, subtask_id), None)
        del self._subtasks[subtask_id]

    def _require_entity(self, kind: EntityKind, entity_id: str) -> None:
        known = self._tasks if kind is EntityKind.TASK else self._subtasks
        if entity_id not in known:
            raise NotFoundError(f"{kind.value.capitalize()} {entity_id} not found")

    # ---- rollback ----

    def checkpoint(self, entity_id: str) -> Checkpoint:
        entity = self.get(entity_id)
        edges: Tuple[Assignment, ...] = ()
        if isinstance(entity, Task):
            edges = tuple(self.assignments(EntityKind.TASK, entity_id))
        elif isinstance(entity, Subtask):
            edges = tuple(self.assignments(EntityKind.SUBTASK, entity_id))
        return Checkpoint(entity_id=entity_id, entity=entity, edges=edges)

    def restore(self, cp: Checkpoint) -> None:
        """Put an entity back to its checkpointed value (or remove it if it did not exist)."""
        if cp.entity is None:
            self.remove_cascade(cp.entity_id)
            return
        self.upsert(cp.entity)
        if isinstance(cp.entity, Task):
            self.replace_assignments(EntityKind.TASK, cp.entity_id, cp.edges)
        elif isinstance(cp.entity, Subtask):
            self.replace_assignments(EntityKind.SUBTASK, cp.entity_id, cp.edges)
