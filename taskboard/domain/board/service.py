from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Tuple

from taskboard.constants import (
    TABLE_COMMENTS,
    TABLE_SUBTASK_ASSIGNMENTS,
    TABLE_SUBTASKS,
    TABLE_TASK_ASSIGNMENTS,
    TABLE_TASKS,
)
from taskboard.domain.board.models import (
    UNSET,
    Comment,
    Entity,
    EntityKind,
    Subtask,
    SubtaskPatch,
    Task,
    TaskDraft,
    TaskPatch,
    WriteResult,
)
from taskboard.domain.board.ports import Clock, IdentityProvider, IdGenerator, RemoteStore
from taskboard.domain.board.reconciler import (
    AssignmentReconciler,
    ReconcileResult,
    ReconcileStatus,
    same_assignees,
)
from taskboard.domain.board.rows import (
    RowFormatError,
    assignment_from_row,
    comment_from_row,
    comment_to_row,
    patch_to_row,
    subtask_from_row,
    subtask_to_row,
    task_from_row,
    task_to_row,
)
from taskboard.domain.board.rules import (
    ensure_free_order_index,
    next_order_index,
    normalize_assignee_ids,
    normalize_description,
    normalize_subtask_changes,
    normalize_task_changes,
    normalize_task_draft,
    parse_date_field,
    validate_comment_content,
    validate_comment_parent,
    validate_date_order,
    validate_order_index,
    validate_title,
)
from taskboard.domain.board.store import Checkpoint, EntityStore
from taskboard.domain.board.write_tracker import PendingWrite, WriteTracker
from taskboard.domain.common.errors import (
    REMOTE_FAILURES,
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFoundError,
    PartialFailure,
    TransportError,
    ValidationError,
    map_remote_error,
)

logger = logging.getLogger(__name__)


class BoardService:
    """
    Board write logic. No sqlite, no UI.

    The only place that starts remote writes for tasks, subtasks, comments
    and assignments. Public methods never raise remote failures: they return
    a WriteResult (committed / partial / failed).

    Entity writes are applied to the store optimistically and rolled back
    when the remote rejects them. Deletes touch the store only after the
    remote confirmed. Writes are serialized per entity id via WriteTracker.
    """

    def __init__(
        self,
        store: EntityStore,
        remote: RemoteStore,
        identity: IdentityProvider,
        clock: Clock,
        ids: IdGenerator,
        writes: Optional[WriteTracker] = None,
        reconciler: Optional[AssignmentReconciler] = None,
    ) -> None:
        self._store = store
        self._remote = remote
        self._identity = identity
        self._clock = clock
        self._ids = ids
        self._writes = writes if writes is not None else WriteTracker()
        self._reconciler = reconciler or AssignmentReconciler(remote, clock)

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def writes(self) -> WriteTracker:
        return self._writes

    # ---- session ----

    async def load(self) -> Optional[DomainError]:
        """
        Re-fetch the whole board and replace the local mirror.
        Returns None on success, the error otherwise (the store is left as it was).
        """
        if not self._identity.is_authenticated():
            self._store.clear()
            logger.info("Not signed in, board cleared")
            return AuthorizationError("You must be logged in to view tasks")

        try:
            task_rows = await self._remote.query(TABLE_TASKS, order_by="created_at")
            subtask_rows = await self._remote.query(TABLE_SUBTASKS, order_by="order_index")
            comment_rows = await self._remote.query(TABLE_COMMENTS, order_by="created_at")
            task_edge_rows = await self._remote.query(TABLE_TASK_ASSIGNMENTS, order_by="assigned_at")
            subtask_edge_rows = await self._remote.query(TABLE_SUBTASK_ASSIGNMENTS, order_by="assigned_at")
        except REMOTE_FAILURES as e:
            error = map_remote_error(e, entity="board")
            logger.warning("Board load failed: %s", e)
            return error

        edges = _decode_all(task_edge_rows, lambda r: assignment_from_row(r, EntityKind.TASK), "task assignment")
        edges += _decode_all(
            subtask_edge_rows, lambda r: assignment_from_row(r, EntityKind.SUBTASK), "subtask assignment"
        )
        self._store.init(
            tasks=_decode_all(task_rows, task_from_row, "task"),
            subtasks=_decode_all(subtask_rows, subtask_from_row, "subtask"),
            comments=_decode_all(comment_rows, comment_from_row, "comment"),
            assignments=edges,
        )
        logger.info(
            "Board loaded: %s tasks, %s subtasks, %s comments",
            len(task_rows), len(subtask_rows), len(comment_rows),
        )
        return None

    def sign_out(self) -> None:
        self._store.clear()
        self._writes.reset()
        logger.info("Board cleared on sign-out")

    # ---- tasks ----

    async def create_task(self, draft: TaskDraft) -> WriteResult:
        """
        Validate, insert the task, then (if asked) create its assignment edges.

        A failed assignment step does not undo the task: the result is
        PARTIAL with the task committed and no assignees.
        """
        user_id, denied = self._require_user()
        if denied:
            return WriteResult.failed(denied)
        try:
            draft = normalize_task_draft(draft)
        except ValidationError as e:
            logger.info("Task rejected (%s): %s", e.field, e.message)
            return WriteResult.failed(e)

        now = self._clock.now()
        task = Task(
            id=self._ids.new_id(),
            title=draft.title,
            created_by=user_id,
            description=draft.description,
            status=draft.status,
            priority=draft.priority,
            start_date=draft.start_date,
            due_date=draft.due_date,
            department=draft.department,
            created_at=now,
            updated_at=now,
        )

        async with self._writes.track(task.id) as write:
            cp = self._store.checkpoint(task.id)
            self._store.upsert_task(task)
            committed, error = await self._commit_row(
                write,
                cp,
                lambda: self._remote.insert(TABLE_TASKS, task_to_row(task)),
                task_from_row,
                self._store.upsert_task,
                "task",
            )
            if error is not None:
                return WriteResult.failed(error)
            logger.info("Task created id=%s title=%r", committed.id, committed.title)

            if not draft.assignee_ids:
                return WriteResult.committed(committed)

            result = await self._reconciler.reconcile(
                EntityKind.TASK, committed.id, (), draft.assignee_ids, assigned_by=user_id
            )
            conflict = self._apply_reconcile(result)
            if conflict is not None:
                return self._fail(write, conflict)
            return self._assignment_outcome(write, result, committed, True, "Task created")

    async def update_task(self, task_id: str, patch: TaskPatch) -> WriteResult:
        """
        Field changes go out as one update. An assignee list, if given, is
        reconciled afterwards and only when it differs (as a set) from the
        last known one.
        """
        user_id, denied = self._require_user()
        if denied:
            return WriteResult.failed(denied)
        try:
            changes = normalize_task_changes(patch.changes())
            desired = _desired_assignees(patch.assignee_ids)
        except ValidationError as e:
            return WriteResult.failed(e)
        if self._store.get_task(task_id) is None:
            return WriteResult.failed(NotFoundError(f"Task {task_id} not found"))

        async with self._writes.track(task_id) as write:
            current = self._store.get_task(task_id)
            if current is None:
                return self._fail(write, ConflictError(f"Task {task_id} was deleted"))

            committed = current
            if changes:
                now = self._clock.now()
                optimistic = replace(current, updated_at=now, **changes)
                try:
                    validate_date_order(optimistic.start_date, optimistic.due_date, "due_date")
                except ValidationError as e:
                    return self._fail(write, e)

                cp = self._store.checkpoint(task_id)
                self._store.upsert_task(optimistic)
                row_patch = patch_to_row({**changes, "updated_at": now})
                committed, error = await self._commit_row(
                    write,
                    cp,
                    lambda: self._remote.update(TABLE_TASKS, task_id, row_patch),
                    task_from_row,
                    self._store.upsert_task,
                    "task",
                )
                if error is not None:
                    return WriteResult.failed(error)
                logger.info("Task updated id=%s fields=%s", task_id, sorted(changes))

            if desired is None:
                return WriteResult.committed(committed)

            known = self._store.assignee_ids(EntityKind.TASK, task_id)
            if same_assignees(known, desired):
                logger.debug("Assignees of task %s unchanged, no reconcile", task_id)
                return WriteResult.committed(committed)

            result = await self._reconciler.reconcile(
                EntityKind.TASK, task_id, known, desired, assigned_by=user_id
            )
            conflict = self._apply_reconcile(result)
            if conflict is not None:
                return self._fail(write, conflict)
            return self._assignment_outcome(write, result, committed, bool(changes), "Task updated")

    async def delete_task(self, task_id: str) -> WriteResult:
        return await self._delete(TABLE_TASKS, task_id, self._store.get_task, "task")

    # ---- assignments ----

    async def set_task_assignees(self, task_id: str, user_ids: Iterable[str]) -> WriteResult:
        return await self._set_assignees(EntityKind.TASK, task_id, user_ids, from_remote=False)

    async def set_subtask_assignees(self, subtask_id: str, user_ids: Iterable[str]) -> WriteResult:
        """Writes explicit edges. An empty list makes the subtask inherit again."""
        return await self._set_assignees(EntityKind.SUBTASK, subtask_id, user_ids, from_remote=False)

    async def retry_assignees(self, kind: EntityKind, entity_id: str, user_ids: Iterable[str]) -> WriteResult:
        """
        Recovery after a PARTIAL/failed assignment: re-read the remote edges
        and apply only what is still missing.
        """
        return await self._set_assignees(kind, entity_id, user_ids, from_remote=True)

    async def bulk_assign_subtasks(self, subtask_ids: Iterable[str], user_id: str) -> WriteResult:
        """
        Add one user to several subtasks. Each subtask keeps its other explicit
        assignees and is written on its own, so one failure does not stop the rest.
        """
        _, denied = self._require_user()
        if denied:
            return WriteResult.failed(denied)
        try:
            (user_id,) = normalize_assignee_ids([user_id])
        except ValidationError as e:
            return WriteResult.failed(e)
        results = []
        for subtask_id in dict.fromkeys(subtask_ids):
            results.append(
                await self._set_assignees(
                    EntityKind.SUBTASK, subtask_id, [user_id], from_remote=False, keep_existing=True
                )
            )
        return _combine(results, "subtasks")

    async def sync_subtask_assignees(self, task_id: str) -> WriteResult:
        """Copy the task's current assignees onto each of its subtasks as explicit edges."""
        _, denied = self._require_user()
        if denied:
            return WriteResult.failed(denied)
        if self._store.get_task(task_id) is None:
            return WriteResult.failed(NotFoundError(f"Task {task_id} not found"))
        desired = self._store.assignee_ids(EntityKind.TASK, task_id)
        results = []
        for subtask in self._store.subtasks_for_task(task_id):
            results.append(
                await self._set_assignees(EntityKind.SUBTASK, subtask.id, desired, from_remote=False)
            )
        logger.info("Synced assignees of %s subtasks with task %s", len(results), task_id)
        return _combine(results, "subtasks")

    async def _set_assignees(
        self,
        kind: EntityKind,
        entity_id: str,
        user_ids: Iterable[str],
        from_remote: bool,
        keep_existing: bool = False,
    ) -> WriteResult:
        user_id, denied = self._require_user()
        if denied:
            return WriteResult.failed(denied)
        try:
            desired = normalize_assignee_ids(user_ids)
        except ValidationError as e:
            return WriteResult.failed(e)
        lookup = self._store.get_task if kind is EntityKind.TASK else self._store.get_subtask
        if lookup(entity_id) is None:
            return WriteResult.failed(NotFoundError(f"{kind.value.capitalize()} {entity_id} not found"))

        async with self._writes.track(entity_id) as write:
            entity = lookup(entity_id)
            if entity is None:
                return self._fail(write, ConflictError(f"{kind.value.capitalize()} {entity_id} was deleted"))

            if from_remote:
                result = await self._reconciler.reconcile_from_remote(
                    kind, entity_id, desired, assigned_by=user_id
                )
            else:
                known = self._store.assignee_ids(kind, entity_id)
                if keep_existing:
                    desired = normalize_assignee_ids([*known, *desired])
                if same_assignees(known, desired):
                    return WriteResult.committed(entity)
                result = await self._reconciler.reconcile(kind, entity_id, known, desired, assigned_by=user_id)
            conflict = self._apply_reconcile(result)
            if conflict is not None:
                return self._fail(write, conflict)
            return self._assignment_outcome(write, result, entity, False, "Assignees changed")

    # ---- subtasks ----

    async def add_subtask(
        self,
        task_id: str,
        title: str,
        order_index: Optional[int] = None,
        description: Optional[str] = None,
        start_date: Any = None,
        end_date: Any = None,
        assignee_ids: Iterable[str] = (),
    ) -> WriteResult:
        user_id, denied = self._require_user()
        if denied:
            return WriteResult.failed(denied)
        if self._store.get_task(task_id) is None:
            return WriteResult.failed(NotFoundError(f"Task {task_id} not found"))
        try:
            title = validate_title(title)
            description = normalize_description(description)
            start = parse_date_field(start_date, "start_date")
            end = parse_date_field(end_date, "end_date")
            validate_date_order(start, end, "end_date")
            assignees = normalize_assignee_ids(assignee_ids)
            siblings = self._store.subtasks_for_task(task_id)
            if order_index is None:
                order_index = next_order_index(siblings)
            else:
                ensure_free_order_index(siblings, validate_order_index(order_index))
        except ValidationError as e:
            return WriteResult.failed(e)

        now = self._clock.now()
        subtask = Subtask(
            id=self._ids.new_id(),
            task_id=task_id,
            title=title,
            order_index=order_index,
            description=description,
            start_date=start,
            end_date=end,
            created_at=now,
            updated_at=now,
        )

        async with self._writes.track(subtask.id) as write:
            if self._store.get_task(task_id) is None:
                return self._fail(write, ConflictError(f"Task {task_id} was deleted"))
            cp = self._store.checkpoint(subtask.id)
            self._store.upsert_subtask(subtask)
            committed, error = await self._commit_row(
                write,
                cp,
                lambda: self._remote.insert(TABLE_SUBTASKS, subtask_to_row(subtask)),
                subtask_from_row,
                self._store.upsert_subtask,
                "subtask",
            )
            if error is not None:
                return WriteResult.failed(error)
            logger.info("Subtask created id=%s task=%s", committed.id, task_id)

            if not assignees:
                return WriteResult.committed(committed)
            result = await self._reconciler.reconcile(
                EntityKind.SUBTASK, committed.id, (), assignees, assigned_by=user_id
            )
            conflict = self._apply_reconcile(result)
            if conflict is not None:
                return self._fail(write, conflict)
            return self._assignment_outcome(write, result, committed, True, "Subtask created")

    async def update_subtask(self, subtask_id: str, patch: SubtaskPatch) -> WriteResult:
        user_id, denied = self._require_user()
        if denied:
            return WriteResult.failed(denied)
        try:
            changes = normalize_subtask_changes(patch.changes())
            desired = _desired_assignees(patch.assignee_ids)
        except ValidationError as e:
            return WriteResult.failed(e)
        if self._store.get_subtask(subtask_id) is None:
            return WriteResult.failed(NotFoundError(f"Subtask {subtask_id} not found"))

        async with self._writes.track(subtask_id) as write:
            current = self._store.get_subtask(subtask_id)
            if current is None:
                return self._fail(write, ConflictError(f"Subtask {subtask_id} was deleted"))

            committed = current
            if changes:
                now = self._clock.now()
                optimistic = replace(current, updated_at=now, **changes)
                try:
                    validate_date_order(optimistic.start_date, optimistic.end_date, "end_date")
                    if "order_index" in changes:
                        ensure_free_order_index(
                            self._store.subtasks_for_task(current.task_id), changes["order_index"], subtask_id
                        )
                except ValidationError as e:
                    return self._fail(write, e)

                cp = self._store.checkpoint(subtask_id)
                self._store.upsert_subtask(optimistic)
                row_patch = patch_to_row({**changes, "updated_at": now})
                committed, error = await self._commit_row(
                    write,
                    cp,
                    lambda: self._remote.update(TABLE_SUBTASKS, subtask_id, row_patch),
                    subtask_from_row,
                    self._store.upsert_subtask,
                    "subtask",
                )
                if error is not None:
                    return WriteResult.failed(error)

            if desired is None:
                return WriteResult.committed(committed)
            known = self._store.assignee_ids(EntityKind.SUBTASK, subtask_id)
            if same_assignees(known, desired):
                return WriteResult.committed(committed)
            result = await self._reconciler.reconcile(
                EntityKind.SUBTASK, subtask_id, known, desired, assigned_by=user_id
            )
            conflict = self._apply_reconcile(result)
            if conflict is not None:
                return self._fail(write, conflict)
            return self._assignment_outcome(write, result, committed, bool(changes), "Subtask updated")

    async def toggle_subtask(self, subtask_id: str) -> WriteResult:
        subtask = self._store.get_subtask(subtask_id)
        if subtask is None:
            return WriteResult.failed(NotFoundError(f"Subtask {subtask_id} not found"))
        return await self.update_subtask(subtask_id, SubtaskPatch(completed=not subtask.completed))

    async def delete_subtask(self, subtask_id: str) -> WriteResult:
        return await self._delete(TABLE_SUBTASKS, subtask_id, self._store.get_subtask, "subtask")

    # ---- comments ----

    async def add_comment(
        self,
        content: str,
        task_id: Optional[str] = None,
        subtask_id: Optional[str] = None,
        is_internal: bool = False,
    ) -> WriteResult:
        user_id, denied = self._require_user()
        if denied:
            return WriteResult.failed(denied)
        try:
            validate_comment_parent(task_id, subtask_id)
            content = validate_comment_content(content)
        except ValidationError as e:
            return WriteResult.failed(e)
        if task_id is not None and self._store.get_task(task_id) is None:
            return WriteResult.failed(NotFoundError(f"Task {task_id} not found"))
        if subtask_id is not None and self._store.get_subtask(subtask_id) is None:
            return WriteResult.failed(NotFoundError(f"Subtask {subtask_id} not found"))

        comment = Comment(
            id=self._ids.new_id(),
            author_id=user_id,
            content=content,
            task_id=task_id,
            subtask_id=subtask_id,
            is_internal=is_internal,
            created_at=self._clock.now(),
        )
        async with self._writes.track(comment.id) as write:
            cp = self._store.checkpoint(comment.id)
            try:
                self._store.upsert_comment(comment)
            except NotFoundError as e:
                return self._fail(write, ConflictError(e.message))
            committed, error = await self._commit_row(
                write,
                cp,
                lambda: self._remote.insert(TABLE_COMMENTS, comment_to_row(comment)),
                comment_from_row,
                self._store.upsert_comment,
                "comment",
            )
            if error is not None:
                return WriteResult.failed(error)
            return WriteResult.committed(committed)

    async def edit_comment(self, comment_id: str, content: str) -> WriteResult:
        user_id, denied = self._require_user()
        if denied:
            return WriteResult.failed(denied)
        try:
            content = validate_comment_content(content)
        except ValidationError as e:
            return WriteResult.failed(e)
        if self._store.get_comment(comment_id) is None:
            return WriteResult.failed(NotFoundError(f"Comment {comment_id} not found"))

        async with self._writes.track(comment_id) as write:
            current = self._store.get_comment(comment_id)
            if current is None:
                return self._fail(write, ConflictError(f"Comment {comment_id} was deleted"))
            now = self._clock.now()
            cp = self._store.checkpoint(comment_id)
            self._store.upsert_comment(replace(current, content=content, edited_at=now))
            row_patch = patch_to_row({"content": content, "edited_at": now})
            committed, error = await self._commit_row(
                write,
                cp,
                lambda: self._remote.update(TABLE_COMMENTS, comment_id, row_patch),
                comment_from_row,
                self._store.upsert_comment,
                "comment",
            )
            if error is not None:
                return WriteResult.failed(error)
            return WriteResult.committed(committed)

    async def delete_comment(self, comment_id: str) -> WriteResult:
        return await self._delete(TABLE_COMMENTS, comment_id, self._store.get_comment, "comment")

    # ---- internals ----

    def _require_user(self) -> Tuple[str, Optional[AuthorizationError]]:
        user_id = self._identity.current_user_id()
        if not self._identity.is_authenticated() or not user_id:
            logger.warning("Write refused: no authenticated user")
            return "", AuthorizationError("You must be logged in to change tasks")
        return user_id, None

    async def _delete(
        self,
        table: str,
        entity_id: str,
        lookup: Callable[[str], Optional[Entity]],
        label: str,
    ) -> WriteResult:
        """Remote delete first; local cascade only once the remote confirmed."""
        _, denied = self._require_user()
        if denied:
            return WriteResult.failed(denied)
        if lookup(entity_id) is None:
            return WriteResult.failed(NotFoundError(f"{label.capitalize()} {entity_id} not found"))

        async with self._writes.track(entity_id) as write:
            entity = lookup(entity_id)
            if entity is None:
                return self._fail(write, ConflictError(f"{label.capitalize()} {entity_id} was already deleted"))
            try:
                await self._remote.delete(table, entity_id)
            except REMOTE_FAILURES as e:
                error = map_remote_error(e, entity=label)
                logger.warning("Deleting %s %s failed: %s", label, entity_id, e)
                return self._fail(write, error)
            self._store.remove_cascade(entity_id)
            logger.info("%s deleted id=%s", label.capitalize(), entity_id)
            return WriteResult.committed(entity)

    async def _commit_row(
        self,
        write: PendingWrite,
        cp: Checkpoint,
        call: Callable[[], Awaitable[Mapping[str, Any]]],
        decode: Callable[[Mapping[str, Any]], Any],
        apply: Callable[[Any], None],
        label: str,
    ) -> Tuple[Any, Optional[DomainError]]:
        """
        Run one remote write and put the returned row into the store.
        On failure restore the checkpoint and mark the write failed.

        The parent of a subtask or comment can be cascade-removed while the
        remote call is in flight; that ends the write as a ConflictError.
        """
        try:
            committed = decode(await call())
        except RowFormatError as e:
            error: DomainError = TransportError(f"Unreadable {label} row from remote: {e}")
        except REMOTE_FAILURES as e:
            error = map_remote_error(e, entity=label)
        else:
            try:
                apply(committed)
                return committed, None
            except NotFoundError as e:
                error = ConflictError(f"{label.capitalize()} {cp.entity_id} lost its parent: {e.message}")
        self._restore(cp)
        write.fail(error)
        logger.warning("Remote write for %s %s failed, rolled back: %s", label, cp.entity_id, error.message)
        return None, error

    def _restore(self, cp: Checkpoint) -> None:
        try:
            self._store.restore(cp)
        except NotFoundError:
            # parent is gone, so the entity is gone too
            self._store.remove_cascade(cp.entity_id)
            logger.info("Rollback of %s skipped, its parent was removed", cp.entity_id)

    def _apply_reconcile(self, result: ReconcileResult) -> Optional[ConflictError]:
        kind, entity_id = result.entity_kind, result.entity_id
        try:
            if result.baseline is not None:
                self._store.replace_assignments(kind, entity_id, result.baseline)
            if result.removed:
                self._store.remove_assignments(kind, entity_id, result.removed)
            for edge in result.added:
                self._store.upsert_assignment(edge)
        except NotFoundError:
            logger.warning("Assignees of %s %s not applied, it was removed meanwhile", kind.value, entity_id)
            return ConflictError(f"{kind.value.capitalize()} {entity_id} was deleted while its assignees were saved")
        return None

    def _assignment_outcome(
        self,
        write: PendingWrite,
        result: ReconcileResult,
        entity: Any,
        entity_written: bool,
        what: str,
    ) -> WriteResult:
        if result.ok:
            return WriteResult.committed(entity)
        if entity_written or result.status is ReconcileStatus.PARTIAL:
            message = f"{what} but user assignment failed"
            if not entity_written:
                message = "Old assignees were removed but new ones could not be added"
            return WriteResult.partial(entity, PartialFailure(message, cause=result.error))
        return self._fail(write, result.error or TransportError("Assignment update failed"))

    @staticmethod
    def _fail(write: PendingWrite, error: DomainError) -> WriteResult:
        write.fail(error)
        return WriteResult.failed(error)


def _combine(results: List[WriteResult], what: str) -> WriteResult:
    """One result for a batch of independent writes; entity is the tuple of entities that landed."""
    landed = tuple(r.entity for r in results if r.ok)
    errors = [r.error for r in results if not r.ok and r.error is not None]
    if not errors:
        return WriteResult.committed(landed)
    if not landed:
        return WriteResult.failed(errors[0])
    message = f"{len(errors)} of {len(results)} {what} could not be updated"
    return WriteResult.partial(landed, PartialFailure(message, cause=errors[0]))


def _desired_assignees(raw: Any) -> Optional[Tuple[str, ...]]:
    if raw is UNSET:
        return None
    return normalize_assignee_ids(raw or ())


def _decode_all(rows: Iterable[Mapping[str, Any]], decode: Callable[[Mapping[str, Any]], Any], label: str) -> List[Any]:
    out: List[Any] = []
    for row in rows:
        try:
            out.append(decode(row))
        except RowFormatError as e:
            logger.warning("Skipping malformed %s row id=%s: %s", label, row.get("id"), e)
    return out
