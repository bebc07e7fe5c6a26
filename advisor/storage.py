"""Conversation persistence."""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from .config import config
from .models import VALID_ROLES, Role, StoredMessage

logger = config.get_logger(__name__)


@dataclass(frozen=True)
class ConversationRecord:
    """A persisted conversation header."""

    guid: str
    created_at: str


class ConversationRepository(Protocol):
    """Ordered message log per conversation."""

    async def get_or_create(self, guid: str) -> ConversationRecord: ...

    async def append_message(
        self, guid: str, role: Role, content: str
    ) -> StoredMessage: ...

    async def list_messages(self, guid: str) -> list[StoredMessage]: ...


def _now() -> str:
    return datetime.now(UTC).isoformat()


class SQLiteConversationStore:
    """Conversation log stored in SQLite.

    Queries run in a worker thread so the event loop is not blocked.
    """

    def __init__(self, db_path: Path = Path("data/conversations.db")) -> None:
        """Initialize the store and ensure the schema exists.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _create_tables(self) -> None:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    guid TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_guid TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    FOREIGN KEY (conversation_guid) REFERENCES conversations (guid)
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_conversation "
                "ON messages(conversation_guid, id)",
            )
            conn.commit()

    def _get_or_create(self, guid: str) -> ConversationRecord:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT OR IGNORE INTO conversations (guid, created_at) VALUES (?, ?)",
                (guid, _now()),
            )
            if cursor.rowcount:
                logger.info("Created conversation %s", guid)
            cursor.execute(
                "SELECT guid, created_at FROM conversations WHERE guid = ?", (guid,)
            )
            row = cursor.fetchone()
            conn.commit()
        return ConversationRecord(guid=row[0], created_at=row[1])

    def _append_message(self, guid: str, role: Role, content: str) -> StoredMessage:
        if role not in VALID_ROLES:
            msg = f"Unsupported message role: {role!r}"
            raise ValueError(msg)
        self._get_or_create(guid)
        timestamp = _now()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO messages (conversation_guid, role, content, timestamp) "
                "VALUES (?, ?, ?, ?)",
                (guid, role, content, timestamp),
            )
            conn.commit()
        return StoredMessage(
            conversation_id=guid, role=role, content=content, timestamp=timestamp
        )

    def _list_messages(self, guid: str) -> list[StoredMessage]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT role, content, timestamp FROM messages "
                "WHERE conversation_guid = ? ORDER BY id",
                (guid,),
            )
            rows = cursor.fetchall()
        return [
            StoredMessage(
                conversation_id=guid, role=role, content=content, timestamp=timestamp
            )
            for role, content, timestamp in rows
        ]

    async def get_or_create(self, guid: str) -> ConversationRecord:
        """Return the conversation, creating it on first use."""  # noqa: DOC201
        return await asyncio.to_thread(self._get_or_create, guid)

    async def append_message(
        self, guid: str, role: Role, content: str
    ) -> StoredMessage:
        """Append a message to a conversation, creating it if needed.

        Raises:
            ValueError: If ``role`` is not user, assistant or system.

        Returns:
            The stored message with its timestamp.
        """
        return await asyncio.to_thread(self._append_message, guid, role, content)

    async def list_messages(self, guid: str) -> list[StoredMessage]:
        """Return a conversation's messages in insertion order."""  # noqa: DOC201
        return await asyncio.to_thread(self._list_messages, guid)
