from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from taskboard.constants import DEFAULT_ROLE
from taskboard.domain.board.models import Assignment, EntityKind
from taskboard.domain.board.ports import Clock, RemoteStore
from taskboard.domain.board.rows import (
    ASSIGNMENT_FK,
    ASSIGNMENT_TABLE_BY_KIND,
    RowFormatError,
    assignment_from_row,
    assignment_to_row,
)
from taskboard.domain.common.errors import REMOTE_FAILURES, DomainError, TransportError, map_remote_error

logger = logging.getLogger(__name__)


def _unique(ids: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(ids))


@dataclass(frozen=True)
class AssignmentDiff:
    to_add: Tuple[str, ...]
    to_remove: Tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def diff_assignees(current: Iterable[str], desired: Iterable[str]) -> AssignmentDiff:
    """
    Set difference both ways. The two sides are disjoint by construction and
    current + to_add - to_remove == desired (as sets). Order follows the inputs.
    """
    cur = _unique(current)
    want = _unique(desired)
    cur_set = set(cur)
    want_set = set(want)
    return AssignmentDiff(
        to_add=tuple(u for u in want if u not in cur_set),
        to_remove=tuple(u for u in cur if u not in want_set),
    )


def same_assignees(a: Iterable[str], b: Iterable[str]) -> bool:
    return set(a) == set(b)


class ReconcileStatus(str, Enum):
    OK = "ok"
    # removal batch committed, insert batch failed
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class ReconcileResult:
    entity_kind: EntityKind
    entity_id: str
    diff: AssignmentDiff
    status: ReconcileStatus
    removed: Tuple[str, ...] = ()
    added: Tuple[Assignment, ...] = ()
    error: Optional[DomainError] = None
    # edges read from the remote before diffing (reconcile_from_remote only)
    baseline: Optional[Tuple[Assignment, ...]] = None

    @property
    def ok(self) -> bool:
        return self.status is ReconcileStatus.OK

    @property
    def remote_writes(self) -> int:
        return int(bool(self.diff.to_remove)) + int(bool(self.diff.to_add))


class AssignmentReconciler:
    """
    Moves the explicit assignees of one entity from `current` to `desired`
    with at most two remote calls: one bulk delete, then one bulk insert.

    The pair is not atomic. If the delete lands and the insert fails the
    result is PARTIAL and the delete stays. Recovery is to call
    reconcile_from_remote() with the same desired list, which re-reads the
    remote edges and applies whatever is still missing.
    """

    def __init__(self, remote: RemoteStore, clock: Clock, default_role: str = DEFAULT_ROLE) -> None:
        self._remote = remote
        self._clock = clock
        self._default_role = default_role

    async def reconcile(
        self,
        kind: EntityKind,
        entity_id: str,
        current: Iterable[str],
        desired: Iterable[str],
        assigned_by: Optional[str],
        role: Optional[str] = None,
    ) -> ReconcileResult:
        diff = diff_assignees(current, desired)
        if diff.is_empty:
            return ReconcileResult(kind, entity_id, diff, ReconcileStatus.OK)

        table = ASSIGNMENT_TABLE_BY_KIND[kind]
        removed: Tuple[str, ...] = ()

        if diff.to_remove:
            try:
                await self._remote.delete_where(
                    table,
                    {ASSIGNMENT_FK[kind]: entity_id},
                    any_of={"user_id": list(diff.to_remove)},
                )
            except REMOTE_FAILURES as e:
                error = map_remote_error(e, entity="assignment")
                logger.warning("Removing assignees %s from %s %s failed: %s", diff.to_remove, kind.value, entity_id, e)
                return ReconcileResult(kind, entity_id, diff, ReconcileStatus.FAILED, error=error)
            removed = diff.to_remove

        added: Tuple[Assignment, ...] = ()
        if diff.to_add:
            now = self._clock.now()
            rows = [
                assignment_to_row(
                    Assignment(
                        entity_kind=kind,
                        entity_id=entity_id,
                        user_id=user_id,
                        role=role or self._default_role,
                        assigned_at=now,
                        assigned_by=assigned_by,
                    )
                )
                for user_id in diff.to_add
            ]
            try:
                inserted = await self._remote.insert_many(table, rows)
                added = tuple(assignment_from_row(r, kind) for r in inserted)
            except (*REMOTE_FAILURES, RowFormatError) as e:
                if isinstance(e, RowFormatError):
                    error = TransportError(f"Unreadable assignment rows from remote: {e}")
                else:
                    error = map_remote_error(e, entity="assignment")
                status = ReconcileStatus.PARTIAL if removed else ReconcileStatus.FAILED
                logger.warning(
                    "Adding assignees %s to %s %s failed (%s): %s",
                    diff.to_add, kind.value, entity_id, status.value, e,
                )
                return ReconcileResult(kind, entity_id, diff, status, removed=removed, error=error)

        logger.debug(
            "Reconciled %s %s: +%s -%s", kind.value, entity_id, list(diff.to_add), list(diff.to_remove)
        )
        return ReconcileResult(kind, entity_id, diff, ReconcileStatus.OK, removed=removed, added=added)

    async def reconcile_from_remote(
        self,
        kind: EntityKind,
        entity_id: str,
        desired: Iterable[str],
        assigned_by: Optional[str],
        role: Optional[str] = None,
    ) -> ReconcileResult:
        """Re-read the current edges, then reconcile the residual diff."""
        table = ASSIGNMENT_TABLE_BY_KIND[kind]
        desired = _unique(desired)
        try:
            rows = await self._remote.query(table, {ASSIGNMENT_FK[kind]: entity_id})
            baseline = tuple(assignment_from_row(r, kind) for r in rows)
        except (*REMOTE_FAILURES, RowFormatError) as e:
            error = map_remote_error(e, entity="assignment")
            logger.warning("Reading assignees of %s %s failed: %s", kind.value, entity_id, e)
            return ReconcileResult(
                kind, entity_id, diff_assignees((), desired), ReconcileStatus.FAILED, error=error
            )

        result = await self.reconcile(
            kind, entity_id, [b.user_id for b in baseline], desired, assigned_by, role=role
        )
        return ReconcileResult(
            result.entity_kind,
            result.entity_id,
            result.diff,
            result.status,
            removed=result.removed,
            added=result.added,
            error=result.error,
            baseline=baseline,
        )
