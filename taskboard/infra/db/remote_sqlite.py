from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from taskboard.constants import (
    ASSIGNMENT_TABLES,
    ERROR_CHECK_VIOLATION,
    ERROR_FOREIGN_KEY_VIOLATION,
    ERROR_NO_ROWS,
    ERROR_NOT_NULL_VIOLATION,
    ERROR_TRANSPORT,
    ERROR_UNDEFINED_COLUMN,
    ERROR_UNDEFINED_TABLE,
    ERROR_UNIQUE_VIOLATION,
    TABLE_COMMENTS,
    TABLE_SUBTASK_ASSIGNMENTS,
    TABLE_SUBTASKS,
    TABLE_TASK_ASSIGNMENTS,
    TABLE_TASKS,
)
from taskboard.domain.board.models import ChangeEvent, ChangeType
from taskboard.domain.board.ports import IdGenerator, RemoteStore
from taskboard.domain.common.errors import RemoteStoreError
from taskboard.infra.db.connection import Database
from taskboard.infra.realtime.change_feed import ChangeFeed

logger = logging.getLogger(__name__)

# Column whitelist per table; identifiers are only ever taken from here.
COLUMNS: Dict[str, Sequence[str]] = {
    TABLE_TASKS: (
        "id", "title", "description", "status", "priority", "start_date", "due_date",
        "department", "created_by", "created_at", "updated_at",
    ),
    TABLE_SUBTASKS: (
        "id", "task_id", "title", "description", "completed", "order_index",
        "start_date", "end_date", "created_at", "updated_at",
    ),
    TABLE_COMMENTS: (
        "id", "task_id", "subtask_id", "author_id", "content", "is_internal", "created_at", "edited_at",
    ),
    TABLE_TASK_ASSIGNMENTS: ("id", "task_id", "user_id", "role", "assigned_at", "assigned_by"),
    TABLE_SUBTASK_ASSIGNMENTS: ("id", "subtask_id", "user_id", "role", "assigned_at", "assigned_by"),
}

_BOOL_COLUMNS = {"completed", "is_internal"}

# sqlite integrity messages -> stable remote codes
_INTEGRITY_CODES = (
    ("UNIQUE constraint failed", ERROR_UNIQUE_VIOLATION),
    ("FOREIGN KEY constraint failed", ERROR_FOREIGN_KEY_VIOLATION),
    ("NOT NULL constraint failed", ERROR_NOT_NULL_VIOLATION),
    ("CHECK constraint failed", ERROR_CHECK_VIOLATION),
)


def to_remote_error(exc: sqlite3.Error) -> RemoteStoreError:
    message = str(exc)
    if isinstance(exc, sqlite3.IntegrityError):
        for marker, code in _INTEGRITY_CODES:
            if marker in message:
                return RemoteStoreError(code, message)
    return RemoteStoreError(ERROR_TRANSPORT, message)


class SqliteRemoteStore(RemoteStore):
    """
    RemoteStore on a local sqlite file.

    Every committed write is published to the ChangeFeed, the same way a
    hosted store would push it to subscribed clients.
    """

    def __init__(self, db: Database, feed: Optional[ChangeFeed], ids: IdGenerator) -> None:
        self._db = db
        self._feed = feed
        self._ids = ids

    async def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        inserted = await self.insert_many(table, [row])
        return inserted[0]

    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        # each row names only its own columns so omitted ones take their defaults
        statements = []
        for values in (self._prepare_insert(table, r) for r in rows):
            sql = (
                f"INSERT INTO {table} ({', '.join(values)}) "
                f"VALUES ({', '.join('?' for _ in values)}) RETURNING *;"
            )
            statements.append((sql, list(values.values())))
        out = await self._write_batch(statements)
        logger.debug("Inserted %s row(s) into %s", len(out), table)
        self._publish(ChangeType.INSERT, table, out)
        return out

    async def update(self, table: str, row_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        values = self._check_columns(table, {k: v for k, v in patch.items() if k != "id"})
        if not values:
            raise RemoteStoreError(ERROR_UNDEFINED_COLUMN, f"empty update for {table}")

        assignments = ", ".join(f"{c} = ?" for c in values)
        sql = f"UPDATE {table} SET {assignments} WHERE id = ? RETURNING *;"
        out = await self._write(sql, [*values.values(), row_id])
        if not out:
            raise RemoteStoreError(ERROR_NO_ROWS, f"{table} row {row_id} not found")
        self._publish(ChangeType.UPDATE, table, out)
        return out[0]

    async def delete(self, table: str, row_id: str) -> None:
        self._check_table(table)
        out = await self._write(f"DELETE FROM {table} WHERE id = ? RETURNING *;", [row_id])
        if not out:
            logger.debug("Delete of %s/%s matched nothing", table, row_id)
        self._publish(ChangeType.DELETE, table, out)

    async def delete_where(
        self,
        table: str,
        match: Mapping[str, Any],
        any_of: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> int:
        where, params = self._where(table, match, any_of)
        if not where:
            raise RemoteStoreError(ERROR_UNDEFINED_COLUMN, f"refusing unfiltered delete on {table}")
        out = await self._write(f"DELETE FROM {table} WHERE {where} RETURNING *;", params)
        self._publish(ChangeType.DELETE, table, out)
        return len(out)

    async def query(
        self,
        table: str,
        match: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        where, params = self._where(table, match or {}, None)
        sql = f"SELECT * FROM {table}"
        if where:
            sql += f" WHERE {where}"
        if order_by is not None:
            self._check_columns(table, {order_by: None})
            sql += f" ORDER BY {order_by}"
        try:
            rows = await self._db.fetchall(sql + ";", params)
        except sqlite3.Error as e:
            raise to_remote_error(e) from e
        return [self._decode(r) for r in rows]

    # ---- helpers ----

    def _check_table(self, table: str) -> Sequence[str]:
        columns = COLUMNS.get(table)
        if columns is None:
            raise RemoteStoreError(ERROR_UNDEFINED_TABLE, f"relation {table!r} does not exist")
        return columns

    def _check_columns(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        allowed = self._check_table(table)
        unknown = [c for c in values if c not in allowed]
        if unknown:
            raise RemoteStoreError(ERROR_UNDEFINED_COLUMN, f"column(s) {unknown} do not exist on {table}")
        return {c: self._encode(c, v) for c, v in values.items()}

    def _prepare_insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        values = dict(row)
        if values.get("id") is None:
            if table not in ASSIGNMENT_TABLES:
                raise RemoteStoreError(ERROR_NOT_NULL_VIOLATION, f"{table}.id is required")
            values["id"] = self._ids.new_id()
        # drop explicit NULLs so column defaults apply
        values = {k: v for k, v in values.items() if v is not None}
        return self._check_columns(table, values)

    def _where(self, table: str, match: Mapping[str, Any], any_of: Optional[Mapping[str, Sequence[Any]]]):
        self._check_columns(table, match)
        clauses: List[str] = []
        params: List[Any] = []
        for column, value in match.items():
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(self._encode(column, value))
        for column, values in (any_of or {}).items():
            self._check_columns(table, {column: None})
            values = list(values)
            if not values:
                # IN () matches nothing
                clauses.append("0")
                continue
            clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        return " AND ".join(clauses), params

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if column in _BOOL_COLUMNS and value is not None:
            return 1 if value else 0
        return value

    @staticmethod
    def _decode(row: Any) -> Dict[str, Any]:
        out = dict(row)
        for column in _BOOL_COLUMNS:
            if column in out and out[column] is not None:
                out[column] = bool(out[column])
        return out

    async def _write(self, sql: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
        try:
            rows = await self._db.write_returning(sql, params)
        except sqlite3.Error as e:
            raise to_remote_error(e) from e
        return [self._decode(r) for r in rows]

    async def _write_batch(self, statements: Sequence[Tuple[str, Sequence[Any]]]) -> List[Dict[str, Any]]:
        try:
            rows = await self._db.write_batch_returning(statements)
        except sqlite3.Error as e:
            raise to_remote_error(e) from e
        return [self._decode(r) for r in rows]

    def _publish(self, change: ChangeType, table: str, rows: Sequence[Mapping[str, Any]]) -> None:
        if self._feed is None:
            return
        for row in rows:
            self._feed.publish(ChangeEvent(change, table, dict(row)))
