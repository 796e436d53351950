"""
Telegent — Retention Sweeper Tests
"""
import asyncio
import os
import sys
import tempfile
from datetime import timedelta

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from telegent.core.errors import StorageError
from telegent.core.maintenance import RetentionSweeper
from telegent.core.types import MessageRole
from telegent.storage.context_store import ConversationContextStore
from telegent.storage.database import Database
from telegent.storage.message_log import MessageLog

DIMS = 8
T0 = 1_700_000_000.0
DAY = 86_400


class FakeClock:
    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def _make_stores(clock):
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    return db, db_path, MessageLog(db, dimensions=DIMS, clock=clock), ConversationContextStore(db, clock=clock)


def _safe_cleanup(db, db_path):
    db.close()
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(db_path + suffix)
        except OSError:
            pass


class FailingLog:
    async def purge(self, older_than):
        raise StorageError("disk unplugged")


@pytest.mark.asyncio
async def test_run_once_purges_and_evicts():
    clock = FakeClock()
    db, db_path, log, store = _make_stores(clock)
    try:
        await log.append(1, MessageRole.USER, "ancient", [1.0] + [0.0] * (DIMS - 1))
        await store.add_fact(1, "old fact")
        clock.now = T0 + 31 * DAY
        await log.append(2, MessageRole.USER, "recent", [1.0] + [0.0] * (DIMS - 1))
        await store.add_fact(2, "new fact")

        sweeper = RetentionSweeper(
            log, store,
            message_retention=timedelta(days=30),
            context_retention=timedelta(days=3),
        )
        result = await sweeper.run_once()
        assert result == {"messages_purged": 1, "contexts_evicted": 1, "errors": []}
        assert sweeper.last_result == result
        assert await log.count() == 1
        assert await store.get(1) is None
        assert (await store.get(2)).facts == ["new fact"]
        print("  PASS: run_once_purges_and_evicts")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_run_once_isolates_failures():
    clock = FakeClock()
    db, db_path, _, store = _make_stores(clock)
    try:
        await store.add_fact("idle", "forgotten")
        clock.now = T0 + 10 * DAY
        sweeper = RetentionSweeper(FailingLog(), store)
        result = await sweeper.run_once()
        assert result["messages_purged"] == 0
        assert result["contexts_evicted"] == 1
        assert result["errors"] == ["messages: disk unplugged"]
        print("  PASS: run_once_isolates_failures")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_start_and_stop_background_task():
    clock = FakeClock()
    db, db_path, log, store = _make_stores(clock)
    sweeper = RetentionSweeper(log, store, interval=0.01)
    try:
        assert not sweeper.is_running
        sweeper.start()
        assert sweeper.is_running
        await asyncio.sleep(0.1)
        assert sweeper.last_result is not None
        await sweeper.stop()
        assert not sweeper.is_running
        # stop() twice is harmless
        await sweeper.stop()
        print("  PASS: start_and_stop_background_task")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_first_sweep_waits_one_interval():
    clock = FakeClock()
    db, db_path, log, store = _make_stores(clock)
    sweeper = RetentionSweeper(log, store, interval=60)
    try:
        sweeper.start()
        await asyncio.sleep(0.05)
        assert sweeper.last_result is None
        await sweeper.stop()
        print("  PASS: first_sweep_waits_one_interval")
    finally:
        _safe_cleanup(db, db_path)


def test_invalid_interval_rejected():
    with pytest.raises(ValueError):
        RetentionSweeper(None, None, interval=0)
    print("  PASS: invalid_interval_rejected")
