"""
Tests for merging pushed change events into the store.
"""
import asyncio

from taskboard.constants import TABLE_SUBTASKS, TABLE_TASK_ASSIGNMENTS, TABLE_TASKS
from taskboard.domain.board.models import ChangeEvent, ChangeType, EntityKind, Task, TaskDraft, TaskPatch
from taskboard.domain.board.push_merge import MergeOutcome, PushMerger
from taskboard.domain.board.service import BoardService
from taskboard.domain.board.store import EntityStore
from taskboard.domain.board.write_tracker import WriteTracker
from taskboard.infra.identity.static_identity import StaticIdentity
from taskboard.infra.realtime.change_feed import ChangeFeed
from tests.fakes import FakeRemoteStore, FixedClock, SeqIds


class CountingStore(EntityStore):
    def __init__(self):
        super().__init__()
        self.task_upserts = []

    def upsert_task(self, task):
        self.task_upserts.append(task.title)
        super().upsert_task(task)


def _task_row(task_id="t1", title="Fix Pump", **extra):
    row = {"id": task_id, "title": title, "created_by": "u0", "status": "Todo",
           "priority": "Medium", "department": "Maintenance"}
    row.update(extra)
    return row


def _setup(store=None):
    store = store or EntityStore()
    remote = FakeRemoteStore()
    writes = WriteTracker()
    svc = BoardService(store, remote, StaticIdentity("u0"), FixedClock(), SeqIds("e"), writes=writes)
    merger = PushMerger(store, ChangeFeed(), writes)
    return svc, remote, store, merger


async def _settle():
    for _ in range(10):
        await asyncio.sleep(0)


def test_event_waits_for_pending_write_then_applies_once():
    """A push update for an id with a pending write is held back and applied exactly once afterwards."""
    async def run():
        svc, remote, store, merger = _setup(CountingStore())
        task = (await svc.create_task(TaskDraft(title="Fix Pump", department="Maintenance"))).entity

        remote.hold("update", TABLE_TASKS)
        local = asyncio.create_task(svc.update_task(task.id, TaskPatch(title="Local")))
        await _settle()

        outcome = merger.handle(ChangeEvent(ChangeType.UPDATE, TABLE_TASKS, _task_row(task.id, "Remote")))

        assert outcome is MergeOutcome.DEFERRED
        assert store.get_task(task.id).title == "Local"
        assert merger.deferred_count(task.id) == 1

        remote.release("update", TABLE_TASKS)
        assert (await local).ok

        assert store.get_task(task.id).title == "Remote"
        assert store.task_upserts.count("Remote") == 1
        assert merger.deferred_count() == 0

    asyncio.run(run())


def test_held_back_event_still_applies_after_a_failed_write():
    async def run():
        svc, remote, store, merger = _setup()
        task = (await svc.create_task(TaskDraft(title="Fix Pump", department="Maintenance"))).entity

        remote.hold("update", TABLE_TASKS)
        remote.fail("update", TABLE_TASKS)
        local = asyncio.create_task(svc.update_task(task.id, TaskPatch(title="Local")))
        await _settle()
        merger.handle(ChangeEvent(ChangeType.UPDATE, TABLE_TASKS, _task_row(task.id, "Remote")))

        remote.release("update", TABLE_TASKS)
        assert not (await local).ok
        assert store.get_task(task.id).title == "Remote"

    asyncio.run(run())


def test_events_without_pending_write_apply_immediately():
    svc, _, store, merger = _setup()

    assert merger.handle(ChangeEvent(ChangeType.INSERT, TABLE_TASKS, _task_row())) is MergeOutcome.APPLIED
    assert store.get_task("t1").title == "Fix Pump"

    merger.handle(ChangeEvent(ChangeType.UPDATE, TABLE_TASKS, _task_row(status="Completed")))
    assert store.get_task("t1").status.value == "Completed"


def test_same_event_twice_is_idempotent():
    _, _, store, merger = _setup()
    event = ChangeEvent(ChangeType.INSERT, TABLE_TASKS, _task_row())

    merger.handle(event)
    once = store.tasks()
    merger.handle(event)

    assert store.tasks() == once


def test_delete_event_cascades():
    _, _, store, merger = _setup()
    merger.handle(ChangeEvent(ChangeType.INSERT, TABLE_TASKS, _task_row()))
    merger.handle(ChangeEvent(ChangeType.INSERT, TABLE_SUBTASKS,
                              {"id": "s1", "task_id": "t1", "title": "Drain", "order_index": 0}))
    merger.handle(ChangeEvent(ChangeType.INSERT, TABLE_TASK_ASSIGNMENTS,
                              {"id": "a1", "task_id": "t1", "user_id": "u1"}))

    merger.handle(ChangeEvent(ChangeType.DELETE, TABLE_TASKS, {"id": "t1"}))

    assert store.get_task("t1") is None
    assert store.get_subtask("s1") is None
    assert store.edge_count() == 0


def test_assignment_events_add_and_remove_edges():
    _, _, store, merger = _setup()
    store.upsert_task(Task(id="t1", title="Fix Pump", created_by="u0"))

    merger.handle(ChangeEvent(ChangeType.INSERT, TABLE_TASK_ASSIGNMENTS,
                              {"id": "a1", "task_id": "t1", "user_id": "u1"}))
    merger.handle(ChangeEvent(ChangeType.INSERT, TABLE_TASK_ASSIGNMENTS,
                              {"id": "a2", "task_id": "t1", "user_id": "u2"}))
    assert store.assignee_ids(EntityKind.TASK, "t1") == ["u1", "u2"]

    # delete carrying only the row id
    merger.handle(ChangeEvent(ChangeType.DELETE, TABLE_TASK_ASSIGNMENTS, {"id": "a1"}))
    assert store.assignee_ids(EntityKind.TASK, "t1") == ["u2"]


def test_assignment_event_waits_behind_its_task_write():
    async def run():
        svc, remote, store, merger = _setup()
        task = (await svc.create_task(TaskDraft(title="Fix Pump", department="Maintenance"))).entity

        remote.hold("update", TABLE_TASKS)
        local = asyncio.create_task(svc.update_task(task.id, TaskPatch(title="Local")))
        await _settle()

        outcome = merger.handle(ChangeEvent(ChangeType.INSERT, TABLE_TASK_ASSIGNMENTS,
                                            {"id": "a1", "task_id": task.id, "user_id": "u9"}))
        assert outcome is MergeOutcome.DEFERRED
        assert store.assignee_ids(EntityKind.TASK, task.id) == []

        remote.release("update", TABLE_TASKS)
        await local
        assert store.assignee_ids(EntityKind.TASK, task.id) == ["u9"]

    asyncio.run(run())


def test_malformed_and_orphan_rows_are_skipped():
    _, _, store, merger = _setup()

    bad = merger.handle(ChangeEvent(ChangeType.INSERT, TABLE_TASKS, {"id": "t1", "title": "no owner"}))
    orphan = merger.handle(ChangeEvent(ChangeType.INSERT, TABLE_SUBTASKS,
                                       {"id": "s1", "task_id": "ghost", "title": "x", "order_index": 0}))

    assert bad is MergeOutcome.SKIPPED
    assert orphan is MergeOutcome.SKIPPED
    assert store.tasks() == []


def test_events_arrive_through_the_change_feed():
    async def run():
        store = EntityStore()
        feed = ChangeFeed()
        merger = PushMerger(store, feed, WriteTracker())
        merger.start()

        feed.publish(ChangeEvent(ChangeType.INSERT, TABLE_TASKS, _task_row()))
        feed.publish(ChangeEvent(ChangeType.UPDATE, TABLE_TASKS, _task_row(title="Fix Pump now")))
        await _settle()

        assert store.get_task("t1").title == "Fix Pump now"

        feed.close()
        await merger.stop()

    asyncio.run(run())
