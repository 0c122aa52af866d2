from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional

from taskboard.domain.board.models import ChangeEvent
from taskboard.domain.board.ports import ChangeStream

logger = logging.getLogger(__name__)


class ChangeFeed(ChangeStream):
    """
    In-process fan-out of change events, one asyncio.Queue per subscriber.
    Events reach each subscriber in publish order.
    """

    def __init__(self) -> None:
        self._queues: Dict[str, List["asyncio.Queue[Optional[ChangeEvent]]"]] = {}
        self._closed = False

    def subscribe(self, table: str) -> AsyncIterator[ChangeEvent]:
        queue: "asyncio.Queue[Optional[ChangeEvent]]" = asyncio.Queue()
        if self._closed:
            queue.put_nowait(None)
        else:
            self._queues.setdefault(table, []).append(queue)
        return self._drain(table, queue)

    def publish(self, event: ChangeEvent) -> int:
        """Queue the event for every subscriber of its table. Returns how many got it."""
        queues = self._queues.get(event.table, [])
        for queue in queues:
            queue.put_nowait(event)
        logger.debug("Published %s on %s to %s subscriber(s)", event.type.value, event.table, len(queues))
        return len(queues)

    def subscriber_count(self, table: str) -> int:
        return len(self._queues.get(table, []))

    def close(self) -> None:
        """End every subscription once its pending events are consumed."""
        self._closed = True
        for queues in self._queues.values():
            for queue in queues:
                queue.put_nowait(None)

    async def _drain(self, table: str, queue: "asyncio.Queue[Optional[ChangeEvent]]") -> AsyncIterator[ChangeEvent]:
        try:
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            queues = self._queues.get(table, [])
            if queue in queues:
                queues.remove(queue)
