from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import AsyncIterator, Deque, Dict, List, Optional, Sequence

from taskboard.constants import ASSIGNMENT_TABLES, ENTITY_TABLES, WATCHED_TABLES
from taskboard.domain.board.models import ChangeEvent, ChangeType
from taskboard.domain.board.ports import ChangeStream
from taskboard.domain.board.rows import (
    RowFormatError,
    assignment_from_row,
    assignment_parent,
    entity_from_row,
    row_id,
)
from taskboard.domain.board.store import EntityStore
from taskboard.domain.board.write_tracker import WriteState, WriteTracker
from taskboard.domain.common.errors import NotFoundError

logger = logging.getLogger(__name__)


class MergeOutcome(str, Enum):
    APPLIED = "applied"
    DEFERRED = "deferred"
    SKIPPED = "skipped"


class PushMerger:
    """
    Folds change events from the remote into the EntityStore.

    Remote wins, with one exception: while this client has a Pending write
    for an id, events for that id are held back (in receipt order) and
    applied once the write resolves. Assignment events are keyed on the
    task/subtask they belong to, so they wait behind that entity's write.
    """

    def __init__(
        self,
        store: EntityStore,
        stream: ChangeStream,
        writes: WriteTracker,
        tables: Sequence[str] = WATCHED_TABLES,
    ) -> None:
        self._store = store
        self._stream = stream
        self._writes = writes
        self._tables = tuple(tables)
        self._deferred: Dict[str, Deque[ChangeEvent]] = {}
        self._consumers: List[asyncio.Task] = []
        writes.add_listener(self._on_write_resolved)

    # ---- lifecycle ----

    def start(self) -> None:
        """Subscribe to every watched table. Needs a running event loop."""
        if self._consumers:
            return
        for table in self._tables:
            events = self._stream.subscribe(table)
            self._consumers.append(asyncio.create_task(self._consume(table, events), name=f"push:{table}"))
        logger.info("Push merge started for %s", ", ".join(self._tables))

    async def stop(self) -> None:
        consumers, self._consumers = self._consumers, []
        for task in consumers:
            task.cancel()
        await asyncio.gather(*consumers, return_exceptions=True)

    def reset(self) -> None:
        """Drop held-back events (sign-out)."""
        self._deferred.clear()

    def deferred_count(self, entity_id: Optional[str] = None) -> int:
        if entity_id is not None:
            return len(self._deferred.get(entity_id, ()))
        return sum(len(q) for q in self._deferred.values())

    async def _consume(self, table: str, events: AsyncIterator[ChangeEvent]) -> None:
        async for event in events:
            try:
                self.handle(event)
            except Exception:
                # one bad event must not stop the subscription, but log it
                logger.exception("Push event on %s could not be merged: %r", table, event)

    # ---- merge ----

    def handle(self, event: ChangeEvent) -> MergeOutcome:
        key = self._guard_key(event)
        if key is None:
            logger.warning("Push event on %s without usable id skipped: %r", event.table, dict(event.row))
            return MergeOutcome.SKIPPED

        if self._writes.is_pending(key):
            self._deferred.setdefault(key, deque()).append(event)
            logger.debug("Push %s on %s for %s held back behind pending write", event.type.value, event.table, key)
            return MergeOutcome.DEFERRED

        # anything still queued for this id goes first
        self._flush(key)
        return self._apply(event)

    def _on_write_resolved(self, entity_id: str, state: WriteState) -> None:
        self._flush(entity_id)

    def _flush(self, entity_id: str) -> None:
        queue = self._deferred.pop(entity_id, None)
        if not queue:
            return
        logger.debug("Applying %s held-back event(s) for %s", len(queue), entity_id)
        while queue:
            self._apply(queue.popleft())

    def _guard_key(self, event: ChangeEvent) -> Optional[str]:
        """Id of the entity whose pending write this event must wait for."""
        if event.table in ENTITY_TABLES:
            return row_id(event.row)
        if event.table in ASSIGNMENT_TABLES:
            _, parent = assignment_parent(event.table, event.row)
            if parent is not None:
                return parent
            rid = row_id(event.row)
            if rid is None:
                return None
            edge = self._store.find_assignment(rid)
            # unknown edge: nothing local to guard, key on the row itself
            return edge.entity_id if edge is not None else rid
        return None

    def _apply(self, event: ChangeEvent) -> MergeOutcome:
        if event.table in ASSIGNMENT_TABLES:
            return self._apply_assignment(event)
        if event.table not in ENTITY_TABLES:
            logger.debug("Push event for unwatched table %s ignored", event.table)
            return MergeOutcome.SKIPPED

        if event.type is ChangeType.DELETE:
            rid = row_id(event.row)
            if rid is not None and self._store.remove_cascade(rid):
                logger.debug("Push delete %s/%s applied", event.table, rid)
            return MergeOutcome.APPLIED

        try:
            entity = entity_from_row(event.table, event.row)
            self._store.upsert(entity)
        except RowFormatError as e:
            logger.warning("Malformed %s row from push skipped: %s", event.table, e)
            return MergeOutcome.SKIPPED
        except NotFoundError as e:
            # parent not known locally (cross-table reordering); next load() picks it up
            logger.warning("Push %s on %s skipped: %s", event.type.value, event.table, e)
            return MergeOutcome.SKIPPED
        return MergeOutcome.APPLIED

    def _apply_assignment(self, event: ChangeEvent) -> MergeOutcome:
        kind, parent = assignment_parent(event.table, event.row)
        if event.type is ChangeType.DELETE:
            user_id = event.row.get("user_id")
            if parent is not None and user_id is not None:
                self._store.remove_assignments(kind, parent, [str(user_id)])
            else:
                rid = row_id(event.row)
                if rid is not None:
                    self._store.remove_assignment_row(rid)
            return MergeOutcome.APPLIED

        try:
            edge = assignment_from_row(event.row, kind)
            self._store.upsert_assignment(edge)
        except RowFormatError as e:
            logger.warning("Malformed %s row from push skipped: %s", event.table, e)
            return MergeOutcome.SKIPPED
        except NotFoundError as e:
            logger.warning("Push %s on %s skipped: %s", event.type.value, event.table, e)
            return MergeOutcome.SKIPPED
        return MergeOutcome.APPLIED
