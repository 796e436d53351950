"""
Telegent — Database Schema
SQLite table definitions, initialization, and serialization helpers.
Messages are stored verbatim, one row each, never rewritten.
"""
import sqlite3
import json
import struct
from typing import List
from pathlib import Path
from ..core.types import Message, MessageRole, ConversationContext


# ─── Schema SQL ──────────────────────────────────────────────────────────────

SCHEMA_SQL = """
-- Append-only per-conversation history
CREATE TABLE IF NOT EXISTS messages (
    conversation_id TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    fingerprint BLOB NOT NULL,
    PRIMARY KEY (conversation_id, timestamp)
);
CREATE INDEX IF NOT EXISTS idx_messages_conversation_time
    ON messages(conversation_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_messages_time
    ON messages(timestamp);

-- Derived per-conversation state (facts, preferences, freshness)
CREATE TABLE IF NOT EXISTS contexts (
    conversation_id TEXT PRIMARY KEY,
    owner_user_id TEXT NOT NULL DEFAULT '',
    display_name TEXT,
    locale TEXT,
    preferences TEXT NOT NULL DEFAULT '{}',
    last_active_at INTEGER NOT NULL,
    facts TEXT NOT NULL DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_contexts_last_active
    ON contexts(last_active_at);
"""


# ─── Database Initialization ─────────────────────────────────────────────────

def init_database(db_path: str) -> sqlite3.Connection:
    """
    Create database and tables if they don't exist.
    Returns an open connection usable from worker threads.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")      # Better concurrent read/write
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return conn


# ─── Serialization ───────────────────────────────────────────────────────────

def serialize_fingerprint(fingerprint: List[float]) -> bytes:
    """Pack a float list into binary (float64, so round-trips are exact)."""
    return struct.pack(f"{len(fingerprint)}d", *fingerprint)


def deserialize_fingerprint(blob: bytes) -> List[float]:
    """Unpack binary back to float list."""
    count = len(blob) // 8  # 8 bytes per float64
    return list(struct.unpack(f"{count}d", blob))


def deserialize_message(row: sqlite3.Row) -> Message:
    """Convert a database row back to a Message."""
    return Message(
        conversation_id=row["conversation_id"],
        timestamp=row["timestamp"],
        role=MessageRole(row["role"]),
        content=row["content"],
        fingerprint=deserialize_fingerprint(row["fingerprint"]),
    )


def serialize_context(context: ConversationContext) -> tuple:
    """Convert ConversationContext to a tuple for SQL INSERT."""
    return (
        context.conversation_id,
        context.owner_user_id,
        context.display_name,
        context.locale,
        json.dumps(context.preferences),
        context.last_active_at,
        json.dumps(context.facts),
    )


def deserialize_context(row: sqlite3.Row) -> ConversationContext:
    """Convert a database row back to a ConversationContext."""
    return ConversationContext(
        conversation_id=row["conversation_id"],
        owner_user_id=row["owner_user_id"] or "",
        display_name=row["display_name"],
        locale=row["locale"],
        preferences=json.loads(row["preferences"]) if row["preferences"] else {},
        last_active_at=row["last_active_at"],
        facts=json.loads(row["facts"]) if row["facts"] else [],
    )
