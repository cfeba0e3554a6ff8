"""
Chat Store

PostgreSQL-backed persistence for chats and their messages.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AppUser, Chat, ChatMessage, ChatStatus, MessageRole


def empty_chat_metadata(now: datetime) -> dict:
    return {
        "total_messages": 0,
        "last_query_time": now.isoformat(),
        "total_tokens_used": 0,
    }


class ChatStore:
    """
    Async repository for Chat and ChatMessage rows.

    Lookups that take an owner only ever return ``active`` chats.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def commit(self) -> None:
        await self._session.commit()

    # ------------------------------------------------------------------
    # Owners
    # ------------------------------------------------------------------

    async def owner_exists(self, owner_id: int) -> bool:
        result = await self._session.execute(
            select(AppUser.id).where(AppUser.id == owner_id)
        )
        return result.scalar_one_or_none() is not None

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    async def create_chat(
        self,
        owner_id: int,
        title: str,
        now: datetime,
        description: Optional[str] = None,
    ) -> Chat:
        chat = Chat(
            title=title,
            description=description,
            owner_id=owner_id,
            status=ChatStatus.ACTIVE,
            metadata_=empty_chat_metadata(now),
        )
        self._session.add(chat)
        await self._session.flush()
        return chat

    async def get_active_chat(
        self,
        chat_id: uuid.UUID,
        owner_id: int,
    ) -> Optional[Chat]:
        result = await self._session.execute(
            select(Chat).where(
                Chat.id == chat_id,
                Chat.owner_id == owner_id,
                Chat.status == ChatStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    async def list_active_chats(self, owner_id: int) -> List[Chat]:
        result = await self._session.execute(
            select(Chat)
            .where(Chat.owner_id == owner_id, Chat.status == ChatStatus.ACTIVE)
            .order_by(Chat.updated_at.desc())
        )
        return list(result.scalars().all())

    async def update_chat(
        self,
        chat: Chat,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Chat:
        if title is not None:
            chat.title = title
        if description is not None:
            chat.description = description

        await self._session.flush()
        return chat

    async def record_exchange(
        self,
        chat: Chat,
        tokens_used: int,
        now: datetime,
    ) -> Chat:
        """
        Fold one processed query into the chat's aggregate metadata.
        """
        current = dict(chat.metadata_ or {})
        current["total_messages"] = int(current.get("total_messages", 0)) + 2
        current["last_query_time"] = now.isoformat()
        current["total_tokens_used"] = int(current.get("total_tokens_used", 0)) + tokens_used

        # Reassign so SQLAlchemy sees the JSONB change
        chat.metadata_ = current
        chat.updated_at = now
        await self._session.flush()
        return chat

    async def mark_deleted(self, chat: Chat) -> Chat:
        chat.status = ChatStatus.DELETED
        await self._session.flush()
        return chat

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_message(
        self,
        chat_id: uuid.UUID,
        role: MessageRole,
        content: str,
        created_at: datetime,
        metadata: Optional[dict] = None,
    ) -> ChatMessage:
        message = ChatMessage(
            chat_id=chat_id,
            role=role,
            content=content,
            created_at=created_at,
            metadata_=metadata,
        )
        self._session.add(message)
        await self._session.flush()
        return message

    async def recent_messages(
        self,
        chat_id: uuid.UUID,
        limit: int,
    ) -> List[ChatMessage]:
        """
        Return the newest ``limit`` messages, ordered oldest to newest.
        """
        result = await self._session.execute(
            select(ChatMessage)
            .where(ChatMessage.chat_id == chat_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))

    async def all_messages(self, chat_id: uuid.UUID) -> List[ChatMessage]:
        result = await self._session.execute(
            select(ChatMessage)
            .where(ChatMessage.chat_id == chat_id)
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        )
        return list(result.scalars().all())

    async def last_message(self, chat_id: uuid.UUID) -> Optional[ChatMessage]:
        messages = await self.recent_messages(chat_id, limit=1)
        return messages[0] if messages else None

    async def count_messages(self, chat_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(ChatMessage)
            .where(ChatMessage.chat_id == chat_id)
        )
        return result.scalar() or 0

    async def delete_messages(self, chat_id: uuid.UUID) -> int:
        result = await self._session.execute(
            delete(ChatMessage).where(ChatMessage.chat_id == chat_id)
        )
        return result.rowcount

    async def get_owner_stats(self, owner_id: int) -> Tuple[int, int, int]:
        """
        Return ``(total_chats, total_messages, total_tokens_used)`` across the
        owner's active chats.
        """
        chats = await self.list_active_chats(owner_id)

        messages_result = await self._session.execute(
            select(func.count())
            .select_from(ChatMessage)
            .join(Chat, Chat.id == ChatMessage.chat_id)
            .where(Chat.owner_id == owner_id, Chat.status == ChatStatus.ACTIVE)
        )
        total_messages = messages_result.scalar() or 0

        total_tokens = sum(
            int((chat.metadata_ or {}).get("total_tokens_used", 0)) for chat in chats
        )
        return len(chats), total_messages, total_tokens
