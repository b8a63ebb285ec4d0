"""Chat history for the Sage, stored in ``sage_messages``."""

from __future__ import annotations

import dataclasses
from typing import Optional, Protocol

from sqlalchemy import desc, select

from src.database import AsyncSessionLocal
from src.models import SageMessage
from src.utils.logging_config import get_logger

logger = get_logger("sage.messages")


@dataclasses.dataclass
class StoredMessage:
    role: str  # "user" | "model"
    content: str
    stage: Optional[str] = None
    tool_calls: Optional[list] = None


class MessageStore(Protocol):
    async def append(self, session_id: str, message: StoredMessage) -> None: ...

    async def history(self, session_id: str, limit: int) -> list[StoredMessage]: ...


class SqlMessageStore:
    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory

    async def append(self, session_id: str, message: StoredMessage) -> None:
        async with self._session_factory() as db:
            db.add(SageMessage(
                session_id=session_id,
                role=message.role,
                content=message.content,
                stage=message.stage,
                tool_calls=message.tool_calls,
            ))
            await db.commit()

    async def history(self, session_id: str, limit: int) -> list[StoredMessage]:
        """The last *limit* messages, oldest first."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(SageMessage)
                .where(SageMessage.session_id == session_id)
                .order_by(desc(SageMessage.created_at), desc(SageMessage.id))
                .limit(limit)
            )
            rows = list(result.scalars().all())
        rows.reverse()
        return [StoredMessage(r.role, r.content, r.stage, r.tool_calls) for r in rows]


class InMemoryMessageStore:
    def __init__(self) -> None:
        self.messages: dict[str, list[StoredMessage]] = {}

    async def append(self, session_id: str, message: StoredMessage) -> None:
        self.messages.setdefault(session_id, []).append(message)

    async def history(self, session_id: str, limit: int) -> list[StoredMessage]:
        return list(self.messages.get(session_id, [])[-limit:])
