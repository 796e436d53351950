"""
Telegent — Conversation Context Store

Per-conversation derived state (facts, preferences, freshness) with an
in-memory cache in front of SQLite.

Write-through: every mutation persists before the cache entry is replaced,
so cache and durable record agree whenever a call returns.

Read-modify-write sequences for one conversation run under that
conversation's asyncio.Lock. Two turns for the same chat that both add a
fact would otherwise interleave at the storage await points and one
append would be lost.
"""
import asyncio
import dataclasses
import sqlite3
import time
from collections import defaultdict
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from ..core.types import (
    ConversationContext, ConversationId, normalize_conversation_id, now_ms,
)
from .database import Database
from .schema import serialize_context, deserialize_context


FACTS_HEADER = "Important facts from previous conversations:"
PREFERENCES_HEADER = "User preferences:"

_MUTABLE_FIELDS = {
    "owner_user_id", "display_name", "locale", "preferences", "facts",
}


class ConversationContextStore:
    """
    Owns ConversationContext records.

    Exactly one context is live per conversation id: creation happens
    inside the per-conversation lock, so concurrent first messages from
    the same chat create it once.
    """

    def __init__(self, db: Database, clock: Callable[[], float] = time.time):
        self.db = db
        self._clock = clock
        self._cache: Dict[str, ConversationContext] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock_for(self, conversation_id: ConversationId) -> asyncio.Lock:
        """The lock guarding one conversation's read-modify-write."""
        return self._locks[normalize_conversation_id(conversation_id)]

    # ─── Reads ────────────────────────────────────────────────────────────

    async def get_or_create(
        self,
        conversation_id: ConversationId,
        owner_user_id: ConversationId = "",
        display_name: Optional[str] = None,
    ) -> ConversationContext:
        key = normalize_conversation_id(conversation_id)
        async with self._locks[key]:
            return await self._get_or_create_locked(key, str(owner_user_id), display_name)

    async def get(self, conversation_id: ConversationId) -> Optional[ConversationContext]:
        """Read-only lookup. Never creates, never touches last_active_at."""
        key = normalize_conversation_id(conversation_id)
        if key in self._cache:
            return _copy(self._cache[key])
        row = await self.db.run(self._select, key)
        return deserialize_context(row) if row else None

    async def render_summary(self, conversation_id: ConversationId) -> str:
        """
        Prompt addendum: facts then preferences, each under a fixed header.
        Empty string when there is nothing to say.
        """
        context = await self.get(conversation_id)
        if context is None:
            return ""
        return render_context(context)

    # ─── Mutations ────────────────────────────────────────────────────────

    async def update(self, conversation_id: ConversationId, **fields: Any) -> ConversationContext:
        """Merge fields over the current context, bump freshness, persist, cache."""
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown context fields: {sorted(unknown)}")
        if "facts" in fields:
            fields["facts"] = list(fields["facts"])
        if "preferences" in fields:
            fields["preferences"] = dict(fields["preferences"])
        key = normalize_conversation_id(conversation_id)
        async with self._locks[key]:
            current = await self._get_or_create_locked(key, str(fields.get("owner_user_id", "")), None)
            if "facts" in fields and fields["facts"][:len(current.facts)] != current.facts:
                raise ValueError("facts are append-only; an update may only extend them")
            return await self._write_locked(dataclasses.replace(current, **fields))

    async def add_fact(self, conversation_id: ConversationId, fact: str) -> ConversationContext:
        """Append one fact. Duplicates are kept: restating a fact is itself a signal."""
        key = normalize_conversation_id(conversation_id)
        async with self._locks[key]:
            current = await self._get_or_create_locked(key, "", None)
            return await self._write_locked(
                dataclasses.replace(current, facts=current.facts + [fact])
            )

    async def set_preference(
        self, conversation_id: ConversationId, name: str, value: Any
    ) -> ConversationContext:
        key = normalize_conversation_id(conversation_id)
        async with self._locks[key]:
            current = await self._get_or_create_locked(key, "", None)
            preferences = dict(current.preferences)
            preferences[name] = value
            return await self._write_locked(
                dataclasses.replace(current, preferences=preferences)
            )

    # ─── Retention ────────────────────────────────────────────────────────

    async def evict(self, older_than: timedelta) -> int:
        """Delete contexts idle since before the cutoff. Returns rows removed."""
        cutoff = now_ms(self._clock) - int(older_than.total_seconds() * 1000)
        removed = await self.db.run(self._delete_before, cutoff)
        evicted = [
            key for key, context in self._cache.items()
            if context.last_active_at < cutoff
        ]
        for key in evicted:
            del self._cache[key]
        self._prune_locks(evicted)
        return removed

    def _prune_locks(self, keys: List[str]) -> None:
        """Drop locks of evicted conversations that nobody holds or awaits."""
        for key in keys:
            lock = self._locks.get(key)
            if lock is None or lock.locked() or getattr(lock, "_waiters", None):
                continue
            del self._locks[key]

    async def count(self) -> int:
        return await self.db.run(self._count)

    def cached_ids(self) -> List[str]:
        return list(self._cache)

    # ─── Internals (caller holds the conversation lock) ───────────────────

    async def _get_or_create_locked(
        self, key: str, owner_user_id: str, display_name: Optional[str]
    ) -> ConversationContext:
        cached = self._cache.get(key)
        if cached is not None:
            refreshed = dataclasses.replace(cached, last_active_at=now_ms(self._clock))
            await self.db.run(self._touch, key, refreshed.last_active_at)
            self._cache[key] = refreshed
            return _copy(refreshed)

        row = await self.db.run(self._select, key)
        if row is not None:
            # Durable hit after a restart or an eviction from cache: the
            # conversation is active again, so its freshness moves forward
            context = dataclasses.replace(
                deserialize_context(row), last_active_at=now_ms(self._clock)
            )
            await self.db.run(self._touch, key, context.last_active_at)
        else:
            context = ConversationContext(
                conversation_id=key,
                owner_user_id=owner_user_id,
                display_name=display_name,
                last_active_at=now_ms(self._clock),
            )
            await self.db.run(self._upsert, serialize_context(context))
        self._cache[key] = context
        return _copy(context)

    async def _write_locked(self, context: ConversationContext) -> ConversationContext:
        context.last_active_at = now_ms(self._clock)
        await self.db.run(self._upsert, serialize_context(context))
        self._cache[context.conversation_id] = context
        return _copy(context)

    @staticmethod
    def _select(conn: sqlite3.Connection, key: str):
        return conn.execute(
            "SELECT * FROM contexts WHERE conversation_id = ?", (key,)
        ).fetchone()

    @staticmethod
    def _upsert(conn: sqlite3.Connection, values: tuple) -> None:
        conn.execute(
            """INSERT OR REPLACE INTO contexts
               (conversation_id, owner_user_id, display_name, locale,
                preferences, last_active_at, facts)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            values
        )

    @staticmethod
    def _touch(conn: sqlite3.Connection, key: str, last_active_at: int) -> None:
        conn.execute(
            "UPDATE contexts SET last_active_at = ? WHERE conversation_id = ?",
            (last_active_at, key)
        )

    @staticmethod
    def _delete_before(conn: sqlite3.Connection, cutoff: int) -> int:
        cur = conn.execute("DELETE FROM contexts WHERE last_active_at < ?", (cutoff,))
        return cur.rowcount

    @staticmethod
    def _count(conn: sqlite3.Connection) -> int:
        row = conn.execute("SELECT COUNT(*) AS cnt FROM contexts").fetchone()
        return row["cnt"] if row else 0


def render_context(context: ConversationContext) -> str:
    """Deterministic text rendering of facts and preferences."""
    text = ""
    if context.facts:
        text += FACTS_HEADER + "\n"
        text += "\n".join(f"- {fact}" for fact in context.facts)
        text += "\n\n"
    if context.preferences:
        text += PREFERENCES_HEADER + "\n"
        for name, value in context.preferences.items():
            text += f"- {name}: {value}\n"
    return text.strip()


def _copy(context: ConversationContext) -> ConversationContext:
    """Hand out copies so callers cannot mutate the cache behind the store's back."""
    return dataclasses.replace(
        context,
        preferences=dict(context.preferences),
        facts=list(context.facts),
    )
