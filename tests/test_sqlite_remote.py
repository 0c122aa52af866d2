"""
Integration tests: BoardService and PushMerger against the sqlite-backed remote.

Run with: python -m pytest tests/test_sqlite_remote.py -v
"""
from __future__ import annotations

import asyncio
import os
import tempfile

import pytest

from taskboard.constants import (
    ERROR_CHECK_VIOLATION,
    ERROR_FOREIGN_KEY_VIOLATION,
    ERROR_NO_ROWS,
    ERROR_UNDEFINED_COLUMN,
    ERROR_UNDEFINED_TABLE,
    ERROR_UNIQUE_VIOLATION,
    TABLE_COMMENTS,
    TABLE_SUBTASKS,
    TABLE_TASK_ASSIGNMENTS,
    TABLE_TASKS,
)
from taskboard.domain.board.models import EntityKind, TaskDraft, TaskPatch
from taskboard.domain.board.push_merge import PushMerger
from taskboard.domain.board.service import BoardService
from taskboard.domain.board.store import EntityStore
from taskboard.domain.board.write_tracker import WriteTracker
from taskboard.domain.common.errors import RemoteStoreError
from taskboard.infra.db.connection import Database
from taskboard.infra.db.remote_sqlite import SqliteRemoteStore
from taskboard.infra.db.schema_version import MIGRATIONS_DIR, apply_migrations
from taskboard.infra.identity.static_identity import StaticIdentity
from taskboard.infra.realtime.change_feed import ChangeFeed
from tests.fakes import FixedClock, SeqIds

NOW_ISO = "2024-03-01T08:00:00+00:00"


def _temp_db_path() -> str:
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        return f.name


def _cleanup(path: str) -> None:
    for p in (path, path + "-wal", path + "-shm"):
        if os.path.exists(p):
            os.unlink(p)


async def _remote(path: str, feed=None) -> SqliteRemoteStore:
    db = Database(path)
    await apply_migrations(db, str(MIGRATIONS_DIR), NOW_ISO)
    return SqliteRemoteStore(db, feed, SeqIds("row"))


def _task_row(task_id="t1", title="Fix Pump"):
    return {"id": task_id, "title": title, "department": "Maintenance", "created_by": "u0"}


def test_migrations_apply_once():
    async def run():
        path = _temp_db_path()
        try:
            db = Database(path)
            assert await apply_migrations(db, str(MIGRATIONS_DIR), NOW_ISO) == 1
            assert await apply_migrations(db, str(MIGRATIONS_DIR), NOW_ISO) == 0
            row = await db.fetchone("SELECT name FROM sqlite_master WHERE name = 'subtask_assignments';")
            assert row is not None
        finally:
            _cleanup(path)

    asyncio.run(run())


def test_service_round_trip_with_reassignment():
    """Create 'Inspect Line 3' for u1 and move it to u2; the rows in sqlite follow."""
    async def run():
        path = _temp_db_path()
        try:
            remote = await _remote(path)
            store = EntityStore()
            svc = BoardService(store, remote, StaticIdentity("u0"), FixedClock(), SeqIds("e"))

            created = await svc.create_task(
                TaskDraft(title="Inspect Line 3", department="Quality", assignee_ids=("u1",))
            )
            assert created.ok
            task_id = created.entity.id

            assert (await svc.update_task(task_id, TaskPatch(assignee_ids=["u2"]))).ok
            rows = await remote.query(TABLE_TASK_ASSIGNMENTS, {"task_id": task_id})
            assert [r["user_id"] for r in rows] == ["u2"]
            assert store.assignee_ids(EntityKind.TASK, task_id) == ["u2"]

            # a fresh client sees the same board
            other = EntityStore()
            other_svc = BoardService(other, remote, StaticIdentity("u5"), FixedClock(), SeqIds("x"))
            assert await other_svc.load() is None
            assert other.get_task(task_id).title == "Inspect Line 3"
            assert other.assignee_ids(EntityKind.TASK, task_id) == ["u2"]
        finally:
            _cleanup(path)

    asyncio.run(run())


def test_sqlite_constraints_map_to_stable_codes():
    async def run():
        path = _temp_db_path()
        try:
            remote = await _remote(path)
            await remote.insert(TABLE_TASKS, _task_row())
            await remote.insert(TABLE_SUBTASKS, {"id": "s1", "task_id": "t1", "title": "a", "order_index": 0})

            cases = [
                (TABLE_SUBTASKS, {"id": "s2", "task_id": "t1", "title": "b", "order_index": 0},
                 ERROR_UNIQUE_VIOLATION),
                (TABLE_SUBTASKS, {"id": "s3", "task_id": "ghost", "title": "c", "order_index": 0},
                 ERROR_FOREIGN_KEY_VIOLATION),
                (TABLE_COMMENTS, {"id": "c1", "task_id": "t1", "subtask_id": "s1", "author_id": "u0",
                                  "content": "two parents"}, ERROR_CHECK_VIOLATION),
                ("nope", {"id": "x"}, ERROR_UNDEFINED_TABLE),
                (TABLE_TASKS, {"id": "t2", "titel": "typo"}, ERROR_UNDEFINED_COLUMN),
            ]
            for table, row, code in cases:
                with pytest.raises(RemoteStoreError) as exc:
                    await remote.insert(table, row)
                assert exc.value.code == code, (table, row)

            with pytest.raises(RemoteStoreError) as exc:
                await remote.update(TABLE_TASKS, "ghost", {"title": "x"})
            assert exc.value.code == ERROR_NO_ROWS
        finally:
            _cleanup(path)

    asyncio.run(run())


def test_failed_bulk_insert_writes_nothing():
    async def run():
        path = _temp_db_path()
        try:
            remote = await _remote(path)
            await remote.insert(TABLE_TASKS, _task_row())
            await remote.insert(TABLE_TASK_ASSIGNMENTS, {"task_id": "t1", "user_id": "u1"})

            with pytest.raises(RemoteStoreError):
                await remote.insert_many(
                    TABLE_TASK_ASSIGNMENTS,
                    [{"task_id": "t1", "user_id": "u2"}, {"task_id": "t1", "user_id": "u1"}],
                )
            rows = await remote.query(TABLE_TASK_ASSIGNMENTS, {"task_id": "t1"})
            assert [r["user_id"] for r in rows] == ["u1"]
        finally:
            _cleanup(path)

    asyncio.run(run())


def test_delete_where_and_cascade():
    async def run():
        path = _temp_db_path()
        try:
            remote = await _remote(path)
            await remote.insert(TABLE_TASKS, _task_row())
            await remote.insert(TABLE_SUBTASKS, {"id": "s1", "task_id": "t1", "title": "a", "order_index": 0})
            await remote.insert_many(
                TABLE_TASK_ASSIGNMENTS,
                [{"task_id": "t1", "user_id": u} for u in ("u1", "u2", "u3")],
            )

            removed = await remote.delete_where(
                TABLE_TASK_ASSIGNMENTS, {"task_id": "t1"}, any_of={"user_id": ["u1", "u3"]}
            )
            assert removed == 2

            await remote.delete(TABLE_TASKS, "t1")
            assert await remote.query(TABLE_SUBTASKS) == []
            assert await remote.query(TABLE_TASK_ASSIGNMENTS) == []
        finally:
            _cleanup(path)

    asyncio.run(run())


def test_second_client_receives_pushed_changes():
    async def run():
        path = _temp_db_path()
        try:
            feed = ChangeFeed()
            remote = await _remote(path, feed)

            writer = BoardService(EntityStore(), remote, StaticIdentity("u0"), FixedClock(), SeqIds("e"))
            watcher_store = EntityStore()
            watcher = PushMerger(watcher_store, feed, WriteTracker())
            watcher.start()

            created = await writer.create_task(
                TaskDraft(title="Fix Pump", department="Maintenance", assignee_ids=("u1",))
            )
            sub = await writer.add_subtask(created.entity.id, "Drain line")
            await asyncio.sleep(0.05)

            assert watcher_store.get_task(created.entity.id).title == "Fix Pump"
            assert watcher_store.get_subtask(sub.entity.id) is not None
            assert watcher_store.assignee_ids(EntityKind.TASK, created.entity.id) == ["u1"]

            await writer.delete_task(created.entity.id)
            await asyncio.sleep(0.05)
            assert watcher_store.get_task(created.entity.id) is None
            assert watcher_store.get_subtask(sub.entity.id) is None

            feed.close()
            await watcher.stop()
        finally:
            _cleanup(path)

    asyncio.run(run())


def test_bulk_insert_of_rows_with_different_columns_keeps_defaults():
    async def run():
        path = _temp_db_path()
        try:
            remote = await _remote(path)
            rows = await remote.insert_many(
                TABLE_TASKS,
                [
                    {**_task_row("t1"), "status": "In Progress"},
                    {**_task_row("t2", title="Clean Valve"), "description": "north side"},
                ],
            )

            assert [r["status"] for r in rows] == ["In Progress", "Todo"]
            assert rows[1]["priority"] == "Medium"
            assert rows[0]["description"] is None
        finally:
            _cleanup(path)

    asyncio.run(run())
