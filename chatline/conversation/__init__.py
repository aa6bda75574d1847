"""Conversation model and SQLite storage."""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from chatline.config import get_config
from chatline.exceptions import ConversationError, ConversationNotFoundError
from chatline.logging import get_logger

log = get_logger(__name__)

DEFAULT_TITLE = "Untitled conversation"


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Message:
    """A stored conversation message."""

    role: Role
    content: str
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_utcnow_iso)
    updated_at: str = field(default_factory=_utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            id=data["id"],
            role=Role(data["role"]),
            content=data.get("content", ""),
            created_at=data.get("created_at", _utcnow_iso()),
            updated_at=data.get("updated_at", _utcnow_iso()),
        )


@dataclass
class Conversation:
    """A titled, ordered exchange between the user and the assistant."""

    id: str = field(default_factory=_new_id)
    title: str = DEFAULT_TITLE
    messages: list[Message] = field(default_factory=list)
    created_at: str = field(default_factory=_utcnow_iso)
    updated_at: str = field(default_factory=_utcnow_iso)

    @classmethod
    def start(cls, content: str, title: str = DEFAULT_TITLE) -> "Conversation":
        """New conversation whose first message is the user's."""
        now = _utcnow_iso()
        conversation = cls(title=title, created_at=now, updated_at=now)
        conversation.messages.append(Message(role=Role.USER, content=content, created_at=now, updated_at=now))
        return conversation

    def add_message(self, role: Role, content: str) -> Message:
        """Append a message and bump the modification time."""
        now = _utcnow_iso()
        message = Message(role=role, content=content, created_at=now, updated_at=now)
        self.messages.append(message)
        self.updated_at = now
        return message

    def touch(self) -> None:
        self.updated_at = _utcnow_iso()

    def to_dict(self, include_messages: bool = True) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if include_messages:
            data["messages"] = [m.to_dict() for m in self.messages]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Conversation":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            title=data.get("title") or DEFAULT_TITLE,
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            created_at=data.get("created_at", _utcnow_iso()),
            updated_at=data.get("updated_at", _utcnow_iso()),
        )


_COLUMNS = "id, title, messages, created_at, updated_at"


def _row_to_conversation(row: Any) -> Conversation:
    return Conversation.from_dict({
        "id": row[0],
        "title": row[1],
        "messages": json.loads(row[2]),
        "created_at": row[3],
        "updated_at": row[4],
    })


class ConversationStore:
    """Durable conversation records in SQLite."""

    def __init__(self, db_path: Path | str | None = None):
        """Initialize the store.

        Args:
            db_path: Optional database path override
        """
        if db_path is None:
            self.db_path = Path(get_config().storage.path).expanduser()
        else:
            self.db_path = Path(db_path).expanduser()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db: aiosqlite.Connection | None = None
        self._init_lock = asyncio.Lock()

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Ensure database is initialized."""
        async with self._init_lock:
            if self._db is None:
                db = await aiosqlite.connect(str(self.db_path))
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS conversations (
                        id TEXT PRIMARY KEY,
                        title TEXT NOT NULL,
                        messages TEXT NOT NULL DEFAULT '[]',
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
                await db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_conversations_created_at ON conversations(created_at)"
                )
                await db.commit()
                self._db = db
        return self._db

    async def create(self, conversation: Conversation) -> None:
        """Insert a new conversation.

        Raises:
            ConversationError if a conversation with the same id exists
        """
        db = await self._ensure_db()
        try:
            await db.execute(
                f"INSERT INTO conversations ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (
                    conversation.id,
                    conversation.title,
                    json.dumps([m.to_dict() for m in conversation.messages]),
                    conversation.created_at,
                    conversation.updated_at,
                ),
            )
        except aiosqlite.IntegrityError as e:
            raise ConversationError(f"Conversation already exists: {conversation.id}") from e
        await db.commit()
        log.info("Created conversation", conversation_id=conversation.id)

    async def update(self, conversation: Conversation) -> None:
        """Replace title, messages and timestamps of an existing conversation.

        Raises:
            ConversationNotFoundError if the conversation was never created
        """
        db = await self._ensure_db()
        cursor = await db.execute(
            "UPDATE conversations SET title = ?, messages = ?, updated_at = ? WHERE id = ?",
            (
                conversation.title,
                json.dumps([m.to_dict() for m in conversation.messages]),
                conversation.updated_at,
                conversation.id,
            ),
        )
        await db.commit()
        if cursor.rowcount == 0:
            raise ConversationNotFoundError(conversation.id)

    async def describe(self, conversation_id: str) -> Conversation | None:
        """Load a conversation by id, or None if it does not exist."""
        db = await self._ensure_db()
        async with db.execute(
            f"SELECT {_COLUMNS} FROM conversations WHERE id = ?",
            (conversation_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_conversation(row) if row else None

    async def list(self, limit: int | None = None) -> list[Conversation]:
        """List conversations, newest first."""
        db = await self._ensure_db()
        query = f"SELECT {_COLUMNS} FROM conversations ORDER BY created_at DESC"
        params: tuple[Any, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        async with db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_conversation(row) for row in rows]

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

