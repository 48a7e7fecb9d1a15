"""SQLite-backed chat message log, scoped per conversation."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from linux_helper.paths import messages_db_path

Role = Literal["user", "assistant"]
_ROLES = ("user", "assistant")


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(slots=True)
class ChatMessage:
    role: Role
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class ConversationSummary:
    conversation_id: str
    message_count: int
    last_message_at: str


class MessageStore:
    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or messages_db_path()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_messages_conversation
                ON messages(conversation_id, id)
                """
            )

    def append(self, conversation_id: str, role: Role, content: str) -> int:
        if role not in _ROLES:
            raise ValueError(f"Unsupported message role: {role}")
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO messages (conversation_id, role, content, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (conversation_id, role, content, _utc_now()),
            )
            return int(cursor.lastrowid)

    def read(self, conversation_id: str) -> list[ChatMessage]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT role, content FROM messages WHERE conversation_id = ? ORDER BY id ASC",
                (conversation_id,),
            ).fetchall()

        return [ChatMessage(role=row["role"], content=str(row["content"])) for row in rows]

    def clear(self, conversation_id: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM messages WHERE conversation_id = ?",
                (conversation_id,),
            )
            return int(cursor.rowcount)

    def conversations(self) -> list[ConversationSummary]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT conversation_id, COUNT(*) AS message_count, MAX(created_at) AS last_message_at
                FROM messages
                GROUP BY conversation_id
                ORDER BY last_message_at DESC
                """
            ).fetchall()

        return [
            ConversationSummary(
                conversation_id=str(row["conversation_id"]),
                message_count=int(row["message_count"]),
                last_message_at=str(row["last_message_at"]),
            )
            for row in rows
        ]

    def conversation(self, conversation_id: str) -> "ConversationLog":
        return ConversationLog(self, conversation_id)


class ConversationLog:
    """A message store bound to a single conversation."""

    def __init__(self, store: MessageStore, conversation_id: str) -> None:
        self.store = store
        self.conversation_id = conversation_id

    def append(self, role: Role, content: str) -> None:
        self.store.append(self.conversation_id, role, content)

    def read(self) -> list[ChatMessage]:
        return self.store.read(self.conversation_id)

    def clear(self) -> int:
        return self.store.clear(self.conversation_id)
