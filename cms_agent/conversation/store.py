from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from cms_agent.constants import HISTORY_LIMIT
from cms_agent.db.models import ChatMessageRecord
from cms_agent.infra.errors import PersistenceError

logger = structlog.get_logger()

Role = Literal["user", "assistant", "tool"]


@dataclass
class ChatMessage:
    role: Role
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    tool_name: str | None = None


class ConversationStore:
    """Append-only chat history keyed by (site_id, locale, conversation_id).

    Without a database every load is empty and every save is a logged no-op,
    so the agent still works statelessly.
    """

    def __init__(self, db_session_factory: async_sessionmaker | None) -> None:
        self._db = db_session_factory

    @staticmethod
    def create_conversation_id() -> str:
        return f"chat_{uuid.uuid4()}"

    async def load_conversation(
        self,
        site_id: str,
        locale: str,
        conversation_id: str,
        limit: int = HISTORY_LIMIT,
    ) -> list[ChatMessage]:
        """Return the last ``limit`` messages, oldest first."""
        if self._db is None:
            return []

        async with self._db() as db_session:
            stmt = (
                select(ChatMessageRecord)
                .where(
                    ChatMessageRecord.site_id == site_id,
                    ChatMessageRecord.locale == locale,
                    ChatMessageRecord.conversation_id == conversation_id,
                )
                .order_by(ChatMessageRecord.seq.desc())
                .limit(limit)
            )
            result = await db_session.execute(stmt)
            records = list(result.scalars().all())

        records.reverse()
        return [
            ChatMessage(
                id=r.id,
                role=r.role,  # type: ignore[arg-type]
                content=r.content or "",
                created_at=r.created_at,
                tool_name=r.tool_name,
            )
            for r in records
        ]

    async def save_message(
        self,
        site_id: str,
        locale: str,
        conversation_id: str,
        role: Role,
        content: str,
        tool_name: str | None = None,
    ) -> ChatMessage:
        message = ChatMessage(role=role, content=content, tool_name=tool_name)
        if self._db is None:
            logger.debug(
                "chat_message_not_persisted",
                conversation_id=conversation_id,
                role=role,
                reason="no_database",
            )
            return message

        try:
            async with self._db() as db_session:
                db_session.add(
                    ChatMessageRecord(
                        id=message.id,
                        site_id=site_id,
                        locale=locale,
                        conversation_id=conversation_id,
                        role=role,
                        content=content,
                        tool_name=tool_name,
                        created_at=message.created_at,
                    )
                )
                await db_session.commit()
        except Exception as e:
            raise PersistenceError(
                f"Failed to save {role} message for {conversation_id}: {e}"
            ) from e

        logger.debug("chat_message_saved", conversation_id=conversation_id, role=role)
        return message
