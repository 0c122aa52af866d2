from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from taskboard.config import Settings, load_settings
from taskboard.domain.board.models import TaskStatus
from taskboard.domain.board.push_merge import PushMerger
from taskboard.domain.board.queries import BoardFilter, apply_board_filter, group_by_status
from taskboard.domain.board.reconciler import AssignmentReconciler
from taskboard.domain.board.service import BoardService
from taskboard.domain.board.store import EntityStore
from taskboard.domain.board.write_tracker import WriteTracker
from taskboard.domain.common.errors import DomainError
from taskboard.domain.common.time import to_iso
from taskboard.infra.clock.system_clock import SystemClock
from taskboard.infra.db.connection import Database
from taskboard.infra.db.remote_sqlite import SqliteRemoteStore
from taskboard.infra.db.schema_version import MIGRATIONS_DIR, apply_migrations
from taskboard.infra.identity.static_identity import StaticIdentity
from taskboard.infra.ids.uuid_gen import UuidGenerator
from taskboard.infra.realtime.change_feed import ChangeFeed

logger = logging.getLogger(__name__)


@dataclass
class BoardSession:
    """Everything one signed-in client needs, wired together."""

    service: BoardService
    merger: PushMerger
    store: EntityStore
    identity: StaticIdentity
    feed: ChangeFeed
    remote: SqliteRemoteStore

    async def start(self) -> Optional[DomainError]:
        # subscribe before the snapshot so nothing committed in between is missed
        self.merger.start()
        return await self.service.load()

    def sign_out(self) -> None:
        self.identity.sign_out()
        self.service.sign_out()
        self.merger.reset()

    async def close(self) -> None:
        self.feed.close()
        await self.merger.stop()


async def build_board(settings: Settings, base_dir: Optional[Path] = None) -> BoardSession:
    """Database -> migrations -> remote + feed -> store -> service + push merge."""
    db_path = settings.db_path
    if not db_path.is_absolute():
        db_path = (base_dir or Path.cwd()) / db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("DB_PATH: %s", db_path)

    db = Database(str(db_path))
    clock = SystemClock(settings.timezone)
    ids = UuidGenerator()

    await apply_migrations(db=db, migrations_dir=str(MIGRATIONS_DIR), now_iso=to_iso(clock.now()))

    feed = ChangeFeed()
    remote = SqliteRemoteStore(db, feed, ids)
    store = EntityStore()
    writes = WriteTracker()
    identity = StaticIdentity(settings.user_id)
    service = BoardService(
        store=store,
        remote=remote,
        identity=identity,
        clock=clock,
        ids=ids,
        writes=writes,
        reconciler=AssignmentReconciler(remote, clock, default_role=settings.default_role),
    )
    merger = PushMerger(store, feed, writes)
    return BoardSession(service=service, merger=merger, store=store, identity=identity, feed=feed, remote=remote)


def log_board_summary(store: EntityStore) -> None:
    tasks = store.tasks()
    columns = group_by_status(tasks)
    logger.info(
        "Board: %s tasks (%s todo, %s in progress, %s completed), %s need attention",
        len(tasks),
        len(columns[TaskStatus.TODO]),
        len(columns[TaskStatus.IN_PROGRESS]),
        len(columns[TaskStatus.COMPLETED]),
        len(apply_board_filter(tasks, BoardFilter.ATTENTION)),
    )


async def main() -> None:
    settings = load_settings()

    logging.basicConfig(
        level=settings.log_level_value,
        format='%(asctime)s - %(name)s - %(levelname)s - [PID:%(process)d] - %(message)s'
    )
    pid = os.getpid()
    logger.info("Task board starting - PID: %s", pid)

    session: Optional[BoardSession] = None
    try:
        session = await build_board(settings)
        error = await session.start()
        if error is not None:
            logger.warning("Board not loaded: %s", error)
        else:
            log_board_summary(session.store)
    except KeyboardInterrupt:
        logger.info("Task board stopped by user - PID: %s", pid)
    except Exception:
        logger.error("Task board crashed - PID: %s", pid, exc_info=True)
        raise
    finally:
        if session is not None:
            await session.close()
        logger.info("Task board shutdown complete - PID: %s", pid)


if __name__ == "__main__":
    asyncio.run(main())
