"""
Telegent — Message Log

Append-only per-conversation history with recency and similarity queries.
Rows are independent, so appends need no per-conversation locking.
"""
import sqlite3
import time
from datetime import timedelta
from typing import Callable, List, Optional, Sequence

from ..core.types import (
    Message, MessageRole, ConversationId, normalize_conversation_id, now_ms,
)
from ..indexing.fingerprint import cosine_similarity
from .database import Database
from .schema import serialize_fingerprint, deserialize_message


class MessageLog:
    """
    Persists every message with its fingerprint.

    Responsibilities:
    - Assign strictly increasing per-conversation timestamps
    - Return recent history oldest-first
    - Rank a conversation's messages by fingerprint similarity
    - Purge rows past the retention window
    """

    def __init__(
        self,
        db: Database,
        dimensions: int,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.dimensions = dimensions
        self._clock = clock

    # ─── Writes ───────────────────────────────────────────────────────────

    async def append(
        self,
        conversation_id: ConversationId,
        role: MessageRole,
        content: str,
        fingerprint: Sequence[float],
    ) -> Message:
        """Persist one message. Storage failures propagate as StorageError."""
        if len(fingerprint) != self.dimensions:
            raise ValueError(
                f"Fingerprint has {len(fingerprint)} dimensions, expected {self.dimensions}"
            )
        key = normalize_conversation_id(conversation_id)
        fp = list(fingerprint)
        timestamp = await self.db.run(
            self._insert, key, role.value, content, serialize_fingerprint(fp)
        )
        return Message(
            conversation_id=key,
            timestamp=timestamp,
            role=role,
            content=content,
            fingerprint=fp,
        )

    def _insert(
        self, conn: sqlite3.Connection, key: str, role: str, content: str, blob: bytes
    ) -> int:
        row = conn.execute(
            "SELECT MAX(timestamp) AS latest FROM messages WHERE conversation_id = ?",
            (key,)
        ).fetchone()
        timestamp = now_ms(self._clock)
        if row and row["latest"] is not None and timestamp <= row["latest"]:
            timestamp = row["latest"] + 1
        conn.execute(
            """INSERT INTO messages
               (conversation_id, timestamp, role, content, fingerprint)
               VALUES (?, ?, ?, ?, ?)""",
            (key, timestamp, role, content, blob)
        )
        return timestamp

    # ─── Reads ────────────────────────────────────────────────────────────

    async def recent(self, conversation_id: ConversationId, limit: int = 10) -> List[Message]:
        """Last `limit` messages, oldest first."""
        if limit <= 0:
            return []
        key = normalize_conversation_id(conversation_id)
        rows = await self.db.run(self._select_recent, key, limit)
        # Fetched newest-first; callers always see chronological order
        return [deserialize_message(r) for r in reversed(rows)]

    @staticmethod
    def _select_recent(conn: sqlite3.Connection, key: str, limit: int) -> list:
        return conn.execute(
            """SELECT * FROM messages
               WHERE conversation_id = ?
               ORDER BY timestamp DESC
               LIMIT ?""",
            (key, limit)
        ).fetchall()

    async def similar(
        self,
        conversation_id: ConversationId,
        query_fingerprint: Sequence[float],
        limit: int = 5,
    ) -> List[Message]:
        """
        Full scan of one conversation ranked by cosine similarity.
        Ties go to the more recent message.
        """
        if limit <= 0:
            return []
        key = normalize_conversation_id(conversation_id)
        rows = await self.db.run(self._select_all, key)
        scored = []
        for row in rows:
            msg = deserialize_message(row)
            scored.append((cosine_similarity(query_fingerprint, msg.fingerprint), msg))
        scored.sort(key=lambda x: (x[0], x[1].timestamp), reverse=True)
        return [msg for _, msg in scored[:limit]]

    @staticmethod
    def _select_all(conn: sqlite3.Connection, key: str) -> list:
        return conn.execute(
            "SELECT * FROM messages WHERE conversation_id = ?", (key,)
        ).fetchall()

    async def count(self, conversation_id: Optional[ConversationId] = None) -> int:
        """Number of stored messages, overall or for one conversation."""
        key = None if conversation_id is None else normalize_conversation_id(conversation_id)
        return await self.db.run(self._count, key)

    @staticmethod
    def _count(conn: sqlite3.Connection, key) -> int:
        if key is None:
            row = conn.execute("SELECT COUNT(*) AS cnt FROM messages").fetchone()
        else:
            row = conn.execute(
                "SELECT COUNT(*) AS cnt FROM messages WHERE conversation_id = ?", (key,)
            ).fetchone()
        return row["cnt"] if row else 0

    # ─── Retention ────────────────────────────────────────────────────────

    async def purge(self, older_than: timedelta) -> int:
        """Delete messages strictly older than now - older_than. Returns rows removed."""
        cutoff = now_ms(self._clock) - int(older_than.total_seconds() * 1000)
        return await self.db.run(self._delete_before, cutoff)

    @staticmethod
    def _delete_before(conn: sqlite3.Connection, cutoff: int) -> int:
        cur = conn.execute("DELETE FROM messages WHERE timestamp < ?", (cutoff,))
        return cur.rowcount
