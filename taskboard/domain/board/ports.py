from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from taskboard.domain.board.models import ChangeEvent


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime: ...


class IdGenerator(ABC):
    @abstractmethod
    def new_id(self) -> str: ...


class IdentityProvider(ABC):
    @abstractmethod
    def current_user_id(self) -> Optional[str]: ...

    @abstractmethod
    def is_authenticated(self) -> bool: ...


class RemoteStore(ABC):
    """
    Relational store the board mirrors. Every method may raise RemoteStoreError
    (or OSError / asyncio.TimeoutError on transport trouble).
    Rows are plain dicts keyed by column name.
    """

    @abstractmethod
    async def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def update(self, table: str, row_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def delete(self, table: str, row_id: str) -> None: ...

    @abstractmethod
    async def delete_where(
        self,
        table: str,
        match: Mapping[str, Any],
        any_of: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> int: ...

    @abstractmethod
    async def query(
        self,
        table: str,
        match: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]: ...


class ChangeStream(ABC):
    @abstractmethod
    def subscribe(self, table: str) -> AsyncIterator[ChangeEvent]:
        """Start receiving events for `table` right away; iterate to consume them."""
