from __future__ import annotations

import aiosqlite
from typing import Any, Iterable, List, Optional, Sequence, Tuple


class Database:
    """
    Async SQLite helper:
    - opens a new connection per operation
    - sets row_factory to aiosqlite.Row
    - enables WAL + foreign keys
    - a failed operation is never committed (the connection closes without commit)
    """

    def __init__(self, path: str) -> None:
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    async def _connect(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(self._path)
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON;")
        return db

    async def executescript(self, sql: str) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute("PRAGMA foreign_keys=ON;")
            await db.executescript(sql)
            await db.commit()

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        db = await self._connect()
        try:
            await db.execute(sql, params)
            await db.commit()
        finally:
            await db.close()

    async def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        db = await self._connect()
        try:
            cur = await db.execute(sql, params)
            return await cur.fetchone()
        finally:
            await db.close()

    async def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        db = await self._connect()
        try:
            cur = await db.execute(sql, params)
            return list(await cur.fetchall())
        finally:
            await db.close()

    async def write_returning(self, sql: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        """Run one INSERT/UPDATE/DELETE ... RETURNING and commit."""
        db = await self._connect()
        try:
            cur = await db.execute(sql, params)
            rows = list(await cur.fetchall())
            await db.commit()
            return rows
        finally:
            await db.close()

    async def write_batch_returning(self, statements: Iterable[Tuple[str, Sequence[Any]]]) -> List[aiosqlite.Row]:
        """Run (sql, params) pairs in order, all in one transaction."""
        db = await self._connect()
        try:
            rows: List[aiosqlite.Row] = []
            for sql, params in statements:
                cur = await db.execute(sql, params)
                rows.extend(await cur.fetchall())
            await db.commit()
            return rows
        finally:
            await db.close()
