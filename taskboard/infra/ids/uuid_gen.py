from __future__ import annotations

import uuid

from taskboard.domain.board.ports import IdGenerator


class UuidGenerator(IdGenerator):
    """Client-side ids, so a new entity can be tracked before the remote answers."""

    def new_id(self) -> str:
        return str(uuid.uuid4())
