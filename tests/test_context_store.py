"""
Telegent — Conversation Context Store Tests

Write-through caching, append-only facts, per-conversation serialization,
summary rendering, and eviction.
"""
import asyncio
import os
import sys
import tempfile
from datetime import timedelta

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from telegent.storage.context_store import ConversationContextStore
from telegent.storage.database import Database

T0 = 1_700_000_000.0
DAY = 86_400


class FakeClock:
    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def _make_db():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    return Database(db_path), db_path


def _safe_cleanup(db, db_path):
    db.close()
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(db_path + suffix)
        except OSError:
            pass


@pytest.mark.asyncio
async def test_get_or_create_persists_new_context():
    db, db_path = _make_db()
    store = ConversationContextStore(db)
    try:
        ctx = await store.get_or_create(5, owner_user_id=1001, display_name="alice")
        assert ctx.conversation_id == "5"
        assert ctx.owner_user_id == "1001"
        assert ctx.facts == [] and ctx.preferences == {}

        # A fresh store on the same file sees the durable record
        other = ConversationContextStore(db)
        loaded = await other.get(5)
        assert loaded is not None
        assert loaded.display_name == "alice"
        assert await store.count() == 1
        print("  PASS: get_or_create_persists_new_context")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_concurrent_get_or_create_creates_once():
    db, db_path = _make_db()
    store = ConversationContextStore(db)
    try:
        results = await asyncio.gather(*[store.get_or_create("dup") for _ in range(10)])
        assert {r.conversation_id for r in results} == {"dup"}
        assert await store.count() == 1
        print("  PASS: concurrent_get_or_create_creates_once")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_add_fact_is_monotonic():
    db, db_path = _make_db()
    store = ConversationContextStore(db)
    try:
        before = await store.get_or_create(5)
        after = await store.add_fact(5, "likes tea")
        assert len(after.facts) == len(before.facts) + 1
        assert after.facts[-1] == "likes tea"
        # Duplicates are kept
        again = await store.add_fact(5, "likes tea")
        assert again.facts == ["likes tea", "likes tea"]
        print("  PASS: add_fact_is_monotonic")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_concurrent_add_fact_keeps_both():
    db, db_path = _make_db()
    store = ConversationContextStore(db)
    try:
        await asyncio.gather(store.add_fact(5, "A"), store.add_fact(5, "B"))
        ctx = await store.get(5)
        assert sorted(ctx.facts) == ["A", "B"]

        # Durable record agrees with the cache
        fresh = await ConversationContextStore(db).get(5)
        assert sorted(fresh.facts) == ["A", "B"]
        print("  PASS: concurrent_add_fact_keeps_both")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_concurrent_mixed_mutations_linearize():
    db, db_path = _make_db()
    store = ConversationContextStore(db)
    try:
        await asyncio.gather(
            store.add_fact("m", "fact one"),
            store.set_preference("m", "language", "en"),
            store.add_fact("m", "fact two"),
            store.update("m", locale="en-GB"),
        )
        ctx = await ConversationContextStore(db).get("m")
        assert sorted(ctx.facts) == ["fact one", "fact two"]
        assert ctx.preferences == {"language": "en"}
        assert ctx.locale == "en-GB"
        print("  PASS: concurrent_mixed_mutations_linearize")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_update_merges_and_validates():
    db, db_path = _make_db()
    store = ConversationContextStore(db)
    try:
        await store.get_or_create(8, owner_user_id="u1", display_name="bob")
        await store.add_fact(8, "plays chess")
        updated = await store.update(8, locale="fr", preferences={"tone": "casual"})
        assert updated.display_name == "bob"
        assert updated.owner_user_id == "u1"
        assert updated.facts == ["plays chess"]
        assert updated.locale == "fr"

        with pytest.raises(ValueError):
            await store.update(8, conversation_id="9")
        with pytest.raises(ValueError):
            await store.update(8, favourite_colour="blue")
        with pytest.raises(ValueError):
            await store.update(8, facts=[])
        extended = await store.update(8, facts=["plays chess", "owns a cat"])
        assert extended.facts == ["plays chess", "owns a cat"]
        print("  PASS: update_merges_and_validates")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_returned_context_is_a_copy():
    db, db_path = _make_db()
    store = ConversationContextStore(db)
    try:
        ctx = await store.get_or_create(3)
        ctx.facts.append("sneaky")
        assert (await store.get(3)).facts == []
        print("  PASS: returned_context_is_a_copy")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_render_summary_format():
    db, db_path = _make_db()
    store = ConversationContextStore(db)
    try:
        assert await store.render_summary("missing") == ""
        await store.get_or_create("r")
        assert await store.render_summary("r") == ""

        await store.add_fact("r", "likes tea")
        await store.add_fact("r", "lives in Tokyo")
        await store.set_preference("r", "units", "metric")
        await store.set_preference("r", "tone", "formal")
        assert await store.render_summary("r") == (
            "Important facts from previous conversations:\n"
            "- likes tea\n"
            "- lives in Tokyo\n"
            "\n"
            "User preferences:\n"
            "- units: metric\n"
            "- tone: formal"
        )

        await store.set_preference("p", "units", "imperial")
        assert await store.render_summary("p") == "User preferences:\n- units: imperial"
        print("  PASS: render_summary_format")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_cache_hit_writes_last_active_through():
    db, db_path = _make_db()
    clock = FakeClock()
    store = ConversationContextStore(db, clock=clock)
    try:
        await store.get_or_create(11)
        clock.advance(2 * DAY)
        await store.get_or_create(11)  # cache hit

        durable = await ConversationContextStore(db).get(11)
        assert durable.last_active_at == int(clock.now * 1000)

        # Active conversation survives a 3-day eviction one more day later
        clock.advance(DAY)
        assert await store.evict(timedelta(days=3)) == 0
        print("  PASS: cache_hit_writes_last_active_through")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_evict_removes_stale_rows_and_cache():
    db, db_path = _make_db()
    clock = FakeClock()
    store = ConversationContextStore(db, clock=clock)
    try:
        await store.add_fact("stale", "old news")
        clock.advance(2 * DAY)
        await store.add_fact("fresh", "recent news")
        clock.advance(2 * DAY)

        removed = await store.evict(timedelta(days=3))
        assert removed == 1
        assert "stale" not in store.cached_ids()
        assert "fresh" in store.cached_ids()
        assert await store.get("stale") is None
        assert (await store.get("fresh")).facts == ["recent news"]

        # Re-created from scratch after eviction
        reborn = await store.get_or_create("stale")
        assert reborn.facts == []
        print("  PASS: evict_removes_stale_rows_and_cache")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_durable_hit_refreshes_last_active():
    db, db_path = _make_db()
    clock = FakeClock()
    try:
        first = ConversationContextStore(db, clock=clock)
        await first.add_fact(9, "likes tea")

        # A restarted process loads the context from disk, not from cache
        clock.advance(2.9 * DAY)
        restarted = ConversationContextStore(db, clock=clock)
        ctx = await restarted.get_or_create(9)
        assert ctx.facts == ["likes tea"]
        assert ctx.last_active_at == int(clock.now * 1000)

        durable = await ConversationContextStore(db).get(9)
        assert durable.last_active_at == int(clock.now * 1000)

        # Idle for 0.2 days only: a 3-day eviction keeps it
        clock.advance(0.2 * DAY)
        assert await restarted.evict(timedelta(days=3)) == 0
        assert (await restarted.get(9)).facts == ["likes tea"]
        print("  PASS: durable_hit_refreshes_last_active")
    finally:
        _safe_cleanup(db, db_path)


@pytest.mark.asyncio
async def test_lock_with_waiter_is_not_pruned():
    db, db_path = _make_db()
    store = ConversationContextStore(db)
    try:
        lock = store.lock_for("w")
        await lock.acquire()
        waiter = asyncio.ensure_future(lock.acquire())
        await asyncio.sleep(0)

        # Released but the queued waiter has not resumed yet
        lock.release()
        assert not lock.locked()
        store._prune_locks(["w"])
        assert store.lock_for("w") is lock

        await waiter
        lock.release()
        store._prune_locks(["w"])
        assert store.lock_for("w") is not lock
        print("  PASS: lock_with_waiter_is_not_pruned")
    finally:
        _safe_cleanup(db, db_path)
