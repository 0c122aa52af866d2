from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Callable, Dict, List, Optional

from taskboard.domain.common.errors import DomainError

logger = logging.getLogger(__name__)


class WriteState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"


ResolvedListener = Callable[[str, WriteState], None]


class PendingWrite:
    """Handle for one in-flight write. Call fail() to end it in FAILED."""

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        self.error: Optional[DomainError] = None

    def fail(self, error: DomainError) -> None:
        self.error = error


class WriteTracker:
    """
    Per-entity write state: Idle -> Pending -> {Committed | Failed}.

    A write to an id that is already Pending waits its turn (FIFO) instead of
    running concurrently; writes to other ids are not affected. Listeners are
    told synchronously when a write leaves Pending, before the next queued
    write for the same id starts.

    Committed is only kept while more writes for the id are queued; after
    that the id reads as Idle again. Failed stays until a later write commits or reset().
    """

    def __init__(self) -> None:
        self._states: Dict[str, WriteState] = {}
        self._errors: Dict[str, DomainError] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}
        self._listeners: List[ResolvedListener] = []

    def add_listener(self, fn: ResolvedListener) -> None:
        self._listeners.append(fn)

    def state(self, entity_id: str) -> WriteState:
        return self._states.get(entity_id, WriteState.IDLE)

    def is_pending(self, entity_id: str) -> bool:
        return self.state(entity_id) is WriteState.PENDING

    def last_error(self, entity_id: str) -> Optional[DomainError]:
        return self._errors.get(entity_id)

    def queued(self, entity_id: str) -> int:
        """Writes holding or waiting for this id."""
        return self._users.get(entity_id, 0)

    def __len__(self) -> int:
        """Ids with a remembered state (pending, committed with writers queued, or failed)."""
        return len(self._states)

    def reset(self) -> None:
        """Forget finished states (sign-out). In-flight writes keep their locks."""
        for entity_id, state in list(self._states.items()):
            if state is not WriteState.PENDING:
                del self._states[entity_id]
        self._errors.clear()

    @asynccontextmanager
    async def track(self, entity_id: str) -> AsyncIterator[PendingWrite]:
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = self._locks[entity_id] = asyncio.Lock()
        self._users[entity_id] = self._users.get(entity_id, 0) + 1
        try:
            if lock.locked():
                logger.debug("Write to %s queued behind a pending write", entity_id)
            async with lock:
                handle = PendingWrite(entity_id)
                self._states[entity_id] = WriteState.PENDING
                try:
                    yield handle
                except BaseException as e:
                    if handle.error is None:
                        handle.fail(DomainError(f"Write aborted: {e!r}"))
                    raise
                finally:
                    self._resolve(handle)
        finally:
            self._users[entity_id] -= 1
            if self._users[entity_id] == 0:
                del self._users[entity_id]
                self._locks.pop(entity_id, None)
                # a committed id with nobody queued is back to Idle; failures stay for last_error
                if self._states.get(entity_id) is WriteState.COMMITTED:
                    del self._states[entity_id]

    def _resolve(self, handle: PendingWrite) -> None:
        entity_id = handle.entity_id
        if handle.error is None:
            state = WriteState.COMMITTED
            self._errors.pop(entity_id, None)
        else:
            state = WriteState.FAILED
            self._errors[entity_id] = handle.error
        self._states[entity_id] = state
        for fn in list(self._listeners):
            try:
                fn(entity_id, state)
            except Exception:
                logger.exception("Write listener failed for %s", entity_id)
