"""Collaborator contracts the engine reads from, plus in-memory and SQLite versions.

The engine never writes intents, chunks or messages; ``append`` exists for the
chat layer (the service, the CLI, tests).
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple

from .types import Bot, ConversationMessage, Intent, KnowledgeChunk, Resolution, UnrecognizedQuery, utcnow


class BotStore(Protocol):
    def find_bot(self, bot_id: str) -> Optional[Bot]: ...

    def find_active_intents(self, bot_id: str) -> List[Intent]: ...

    def find_active_completed_chunks(self, bot_id: str) -> List[KnowledgeChunk]: ...


class ConversationStore(Protocol):
    def load_recent_messages(self, bot_id: str, session_id: str, limit: int) -> List[ConversationMessage]: ...

    def append(self, bot_id: str, session_id: str, message: ConversationMessage) -> None: ...


class UnrecognizedQuerySink(Protocol):
    def record_or_increment(self, bot_id: str, text: str, session_id: Optional[str] = None) -> None: ...


class InMemoryBotStore:
    def __init__(self) -> None:
        self._bots: Dict[str, Bot] = {}
        self._intents: Dict[str, List[Intent]] = defaultdict(list)
        self._chunks: Dict[str, List[KnowledgeChunk]] = defaultdict(list)

    def add_bot(
        self,
        bot: Bot,
        intents: Optional[List[Intent]] = None,
        chunks: Optional[List[KnowledgeChunk]] = None,
    ) -> None:
        self._bots[bot.id] = bot
        self._intents[bot.id] = list(intents or [])
        self._chunks[bot.id] = list(chunks or [])

    def bot_ids(self) -> List[str]:
        return list(self._bots)

    def find_bot(self, bot_id: str) -> Optional[Bot]:
        return self._bots.get(bot_id)

    def find_active_intents(self, bot_id: str) -> List[Intent]:
        return [i for i in self._intents.get(bot_id, []) if i.is_active]

    def find_active_completed_chunks(self, bot_id: str) -> List[KnowledgeChunk]:
        return list(self._chunks.get(bot_id, []))


class InMemoryConversationStore:
    def __init__(self) -> None:
        self._messages: Dict[Tuple[str, str], List[ConversationMessage]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, bot_id: str, session_id: str, message: ConversationMessage) -> None:
        if message.id is None:
            message.id = uuid.uuid4().hex
        with self._lock:
            log = self._messages[(bot_id, session_id)]
            if any(m.id == message.id for m in log):
                return
            log.append(message)

    def load_recent_messages(self, bot_id: str, session_id: str, limit: int) -> List[ConversationMessage]:
        if limit <= 0:
            return []
        with self._lock:
            return list(self._messages.get((bot_id, session_id), [])[-limit:])


class SQLiteConversationStore:
    def __init__(self, db_path: str = "conversations.db") -> None:
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self._lock = threading.Lock()
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                bot_id TEXT NOT NULL,
                session_id TEXT NOT NULL,
                seq INTEGER NOT NULL,
                ts TEXT NOT NULL,
                sender TEXT NOT NULL,
                text TEXT NOT NULL,
                resolution TEXT
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_messages_session ON messages (bot_id, session_id, seq)")
        self.conn.commit()

    def append(self, bot_id: str, session_id: str, message: ConversationMessage) -> None:
        if message.id is None:
            message.id = uuid.uuid4().hex
        resolution = None
        if message.resolution is not None:
            resolution = json.dumps({
                "intent": message.resolution.intent,
                "confidence": message.resolution.confidence,
                "source": message.resolution.source,
            })
        with self._lock:
            self.conn.execute(
                """
                INSERT OR IGNORE INTO messages (id, bot_id, session_id, seq, ts, sender, text, resolution)
                VALUES (?, ?, ?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM messages WHERE bot_id=? AND session_id=?), ?, ?, ?, ?)
                """,
                (message.id, bot_id, session_id, bot_id, session_id,
                 message.timestamp.isoformat(), message.sender, message.text, resolution),
            )
            self.conn.commit()

    def load_recent_messages(self, bot_id: str, session_id: str, limit: int) -> List[ConversationMessage]:
        if limit <= 0:
            return []
        with self._lock:
            cur = self.conn.execute(
                "SELECT id, ts, sender, text, resolution FROM messages "
                "WHERE bot_id=? AND session_id=? ORDER BY seq DESC LIMIT ?",
                (bot_id, session_id, limit),
            )
            rows = cur.fetchall()[::-1]
        messages = []
        for msg_id, ts, sender, text, resolution in rows:
            res = Resolution(**json.loads(resolution)) if resolution else None
            messages.append(
                ConversationMessage(
                    sender=sender, text=text, timestamp=datetime.fromisoformat(ts), resolution=res, id=msg_id
                )
            )
        return messages


class InMemoryUnrecognizedSink:
    def __init__(self) -> None:
        self._queries: List[UnrecognizedQuery] = []
        self._lock = threading.Lock()

    def _find_pending(self, bot_id: str, text: str) -> Optional[UnrecognizedQuery]:
        for query in self._queries:
            if query.bot_id == bot_id and query.text == text and query.status == "pending":
                return query
        return None

    def record_or_increment(self, bot_id: str, text: str, session_id: Optional[str] = None) -> None:
        with self._lock:
            existing = self._find_pending(bot_id, text)
            if existing is not None:
                existing.count += 1
                existing.last_seen_at = utcnow()
                return
            self._queries.append(UnrecognizedQuery(bot_id=bot_id, text=text, session_id=session_id))

    def set_status(self, bot_id: str, text: str, status: str) -> bool:
        """Close the pending entry (``converted`` or ``dismissed``); False when none is pending."""
        with self._lock:
            existing = self._find_pending(bot_id, text)
            if existing is None:
                return False
            existing.status = status
            return True

    def pending(self, bot_id: str) -> List[UnrecognizedQuery]:
        with self._lock:
            rows = [q for q in self._queries if q.bot_id == bot_id and q.status == "pending"]
        rows.sort(key=lambda q: q.last_seen_at, reverse=True)
        rows.sort(key=lambda q: q.count, reverse=True)
        return rows


class SQLiteUnrecognizedSink:
    def __init__(self, db_path: str = "unrecognized.db") -> None:
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self._lock = threading.Lock()
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS unrecognized_queries (
                bot_id TEXT NOT NULL,
                text TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                count INTEGER NOT NULL DEFAULT 1,
                session_id TEXT,
                first_seen_at TEXT NOT NULL,
                last_seen_at TEXT NOT NULL
            )
        """)
        self.conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_unrecognized_pending "
            "ON unrecognized_queries (bot_id, text) WHERE status = 'pending'"
        )
        self.conn.commit()

    def record_or_increment(self, bot_id: str, text: str, session_id: Optional[str] = None) -> None:
        now = utcnow().isoformat()
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO unrecognized_queries (bot_id, text, session_id, first_seen_at, last_seen_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (bot_id, text) WHERE status = 'pending'
                DO UPDATE SET count = count + 1, last_seen_at = excluded.last_seen_at
                """,
                (bot_id, text, session_id, now, now),
            )
            self.conn.commit()

    def set_status(self, bot_id: str, text: str, status: str) -> bool:
        with self._lock:
            cur = self.conn.execute(
                "UPDATE unrecognized_queries SET status=? WHERE bot_id=? AND text=? AND status='pending'",
                (status, bot_id, text),
            )
            self.conn.commit()
        return cur.rowcount > 0

    def pending(self, bot_id: str) -> List[UnrecognizedQuery]:
        with self._lock:
            cur = self.conn.execute(
                "SELECT text, count, session_id, first_seen_at, last_seen_at FROM unrecognized_queries "
                "WHERE bot_id=? AND status='pending' ORDER BY count DESC, last_seen_at DESC",
                (bot_id,),
            )
            rows = cur.fetchall()
        return [
            UnrecognizedQuery(
                bot_id=bot_id,
                text=text,
                count=count,
                session_id=session_id,
                first_seen_at=datetime.fromisoformat(first),
                last_seen_at=datetime.fromisoformat(last),
            )
            for text, count, session_id, first, last in rows
        ]
