"""SQLite storage for memories, chat messages and settings."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import AppSettings
from .models import ChatMessage, Memory, MemoryKind, Sender

MEMORY_COLUMNS = (
    "id, kind, content, created_at, tags, attachment_ref, reminder_at, "
    "linked_memory_ids, is_analyzing, is_pinned"
)


class MemoryNotFoundError(KeyError):
    """Raised when a memory id does not exist."""


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class MemoryStore:
    """Persistent storage using SQLite.

    Memories are the unit of storage; tags and links are kept as JSON
    arrays. Settings live in a single row.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the tables if they don't exist."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS memories (
                id                 TEXT PRIMARY KEY,
                kind               TEXT NOT NULL,
                content            TEXT NOT NULL,
                created_at         TEXT NOT NULL,
                tags               TEXT NOT NULL DEFAULT '[]',
                attachment_ref     TEXT,
                reminder_at        TEXT,
                linked_memory_ids  TEXT NOT NULL DEFAULT '[]',
                is_analyzing       INTEGER NOT NULL DEFAULT 0,
                is_pinned          INTEGER NOT NULL DEFAULT 0
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS chat_messages (
                id                  TEXT PRIMARY KEY,
                sender              TEXT NOT NULL,
                text                TEXT NOT NULL,
                created_at          TEXT NOT NULL,
                related_memory_ids  TEXT NOT NULL DEFAULT '[]'
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                id    INTEGER PRIMARY KEY CHECK (id = 1),
                data  TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_memories_created ON memories(created_at)"
        )
        # No analysis survives a restart
        conn.execute("UPDATE memories SET is_analyzing = 0 WHERE is_analyzing = 1")
        conn.commit()

    # -- memories --

    def create_memory(self, memory: Memory) -> Memory:
        """Insert a new memory.

        Raises:
            sqlite3.IntegrityError: If the id already exists.
        """
        conn = self._get_connection()
        conn.execute(
            f"INSERT INTO memories ({MEMORY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            self._memory_to_row(memory),
        )
        conn.commit()
        return memory

    def get_memory(self, memory_id: str) -> Memory | None:
        """Get a memory by id, None if it doesn't exist."""
        conn = self._get_connection()
        row = conn.execute(
            f"SELECT {MEMORY_COLUMNS} FROM memories WHERE id = ?", (memory_id,)
        ).fetchone()
        return self._row_to_memory(row) if row else None

    def list_memories(
        self,
        kind: MemoryKind | None = None,
        tags: list[str] | None = None,
        pinned_only: bool = False,
        limit: int | None = 50,
        offset: int = 0,
    ) -> list[Memory]:
        """List memories, newest first.

        Args:
            kind: Only memories of this kind.
            tags: Only memories carrying at least one of these tags.
            pinned_only: Only pinned memories.
            limit: Maximum number of results, None for all.
            offset: Number of results to skip.
        """
        clauses: list[str] = []
        params: list[Any] = []
        if kind is not None:
            clauses.append("kind = ?")
            params.append(kind.value)
        if pinned_only:
            clauses.append("is_pinned = 1")

        query = f"SELECT {MEMORY_COLUMNS} FROM memories"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC"

        conn = self._get_connection()
        memories = [self._row_to_memory(row) for row in conn.execute(query, params)]

        # Tags are JSON arrays, so filter them here
        if tags:
            wanted = set(tags)
            memories = [m for m in memories if wanted.intersection(m.tags)]

        end = None if limit is None else offset + limit
        return memories[offset:end]

    def search_memories(self, query: str) -> list[Memory]:
        """Case-insensitive search over content, tags and kind."""
        needle = query.strip().lower()
        memories = self.list_memories(limit=None)
        if not needle:
            return memories
        return [
            m for m in memories
            if needle in m.content.lower()
            or any(needle in tag.lower() for tag in m.tags)
            or needle in m.kind.value.lower()
        ]

    def update_memory(self, memory_id: str, **changes: Any) -> Memory:
        """Apply a partial update to a memory.

        Returns:
            The updated memory.

        Raises:
            MemoryNotFoundError: If the memory doesn't exist.
            ValueError: If an immutable field would change.
        """
        current = self.get_memory(memory_id)
        if current is None:
            raise MemoryNotFoundError(memory_id)

        updated = current.evolve(**changes)
        row = self._memory_to_row(updated)
        conn = self._get_connection()
        conn.execute(
            """
            UPDATE memories SET
                content = ?, tags = ?, attachment_ref = ?, reminder_at = ?,
                linked_memory_ids = ?, is_analyzing = ?, is_pinned = ?
            WHERE id = ?
            """,
            (row[2], *row[4:], memory_id),
        )
        conn.commit()
        return updated

    def delete_memory(self, memory_id: str) -> bool:
        """Delete a memory by its id.

        Returns:
            True if a memory was deleted, False otherwise.
        """
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
        conn.commit()
        return cursor.rowcount > 0

    def clear_memories(self) -> int:
        """Delete all memories. Returns the number deleted."""
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM memories")
        conn.commit()
        return cursor.rowcount

    # -- chat --

    def add_chat_message(self, message: ChatMessage) -> ChatMessage:
        """Store a chat message."""
        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO chat_messages (id, sender, text, created_at, related_memory_ids)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                message.id,
                message.sender.value,
                message.text,
                message.created_at.isoformat(),
                json.dumps(list(message.related_memory_ids)),
            ),
        )
        conn.commit()
        return message

    def list_chat_messages(self, limit: int = 50, offset: int = 0) -> list[ChatMessage]:
        """List the most recent chat messages in conversation order."""
        conn = self._get_connection()
        rows = conn.execute(
            """
            SELECT id, sender, text, created_at, related_memory_ids FROM chat_messages
            ORDER BY created_at DESC LIMIT ? OFFSET ?
            """,
            (limit, offset),
        ).fetchall()
        return [
            ChatMessage(
                id=row["id"],
                sender=Sender(row["sender"]),
                text=row["text"],
                created_at=datetime.fromisoformat(row["created_at"]),
                related_memory_ids=tuple(json.loads(row["related_memory_ids"])),
            )
            for row in reversed(rows)
        ]

    # -- settings --

    def get_settings(self) -> AppSettings | None:
        """Get the saved settings, None if never saved."""
        conn = self._get_connection()
        row = conn.execute("SELECT data FROM settings WHERE id = 1").fetchone()
        if row is None:
            return None
        return AppSettings.from_dict(json.loads(row["data"]))

    def save_settings(self, settings: AppSettings) -> AppSettings:
        """Save the settings, replacing any previous ones."""
        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO settings (id, data) VALUES (1, ?)
            ON CONFLICT(id) DO UPDATE SET data = excluded.data
            """,
            (json.dumps(settings.to_dict()),),
        )
        conn.commit()
        return settings

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _memory_to_row(self, memory: Memory) -> tuple[Any, ...]:
        return (
            memory.id,
            memory.kind.value,
            memory.content,
            memory.created_at.isoformat(),
            json.dumps(list(memory.tags)),
            memory.attachment_ref,
            _iso(memory.reminder_at),
            json.dumps(list(memory.linked_memory_ids)),
            int(memory.is_analyzing),
            int(memory.is_pinned),
        )

    def _row_to_memory(self, row: sqlite3.Row) -> Memory:
        """Convert a database row to a Memory."""
        return Memory(
            id=row["id"],
            kind=MemoryKind(row["kind"]),
            content=row["content"],
            created_at=datetime.fromisoformat(row["created_at"]),
            tags=tuple(json.loads(row["tags"])),
            attachment_ref=row["attachment_ref"],
            reminder_at=(
                datetime.fromisoformat(row["reminder_at"]) if row["reminder_at"] else None
            ),
            linked_memory_ids=tuple(json.loads(row["linked_memory_ids"])),
            is_analyzing=bool(row["is_analyzing"]),
            is_pinned=bool(row["is_pinned"]),
        )
