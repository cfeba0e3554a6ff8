"""
Chat Orchestrator

Owns the question-answer loop for a chat: load recent history, optionally
ground the question in retrieved document passages, call the completion
model, and persist the exchange.

Persistence rules
-----------------
- Nothing is written before the completion returns, so a gateway failure
  leaves the chat untouched.
- Each successful query appends exactly two messages (user, then
  assistant) and folds the token usage into the chat metadata.
- Only ``active`` chats owned by the caller are visible; deletion is a soft
  delete to ``deleted``.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config import settings
from ..core.errors import ChatNotFound, OwnerNotFound
from ..db.chat_store import ChatStore
from ..db.models import Chat, ChatMessage, MessageRole
from ..llm.client import LLMClient, TokenUsage
from ..retrieval.engine import RetrievalEngine, SearchContext, format_context

logger = logging.getLogger("rag.chat")

PREVIEW_MAX_CHARS = 100

SYSTEM_PROMPT = (
    "You are a helpful AI assistant that answers questions based on provided "
    "context. Use the following context to answer the user's question. If the "
    "context doesn't contain enough information to answer the question, say so "
    "clearly. Be concise but comprehensive.\n\n"
    "Context: {context}"
)


# ---------------------------------------------------------------------
# Result Types
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class QueryResult:
    chat_id: uuid.UUID
    query: str
    answer: str
    token_usage: TokenUsage
    model: str
    processing_time_ms: int
    message_id: int


@dataclass(frozen=True)
class CreateResult:
    chat: Chat
    first_response: QueryResult


@dataclass(frozen=True)
class MessagePreview:
    content: str
    role: MessageRole
    created_at: datetime


@dataclass(frozen=True)
class ChatSummary:
    chat: Chat
    message_count: int
    last_message: Optional[MessagePreview] = None


@dataclass(frozen=True)
class ChatDetail:
    chat: Chat
    messages: List[ChatMessage] = field(default_factory=list)


@dataclass(frozen=True)
class ChatStats:
    total_chats: int
    total_messages: int
    total_tokens_used: int
    average_messages_per_chat: float


def preview(content: str) -> str:
    if len(content) > PREVIEW_MAX_CHARS:
        return content[:PREVIEW_MAX_CHARS] + "..."
    return content


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _search_summary(context: SearchContext) -> List[Dict[str, Any]]:
    return [
        {
            "document_id": result.document_id,
            "document_name": result.document_name,
            "page_number": result.page_number,
            "similarity": round(result.similarity, 4),
        }
        for result in context.results
    ]


# ---------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------

class ChatOrchestrator:
    def __init__(
        self,
        store: ChatStore,
        llm: LLMClient,
        retrieval: Optional[RetrievalEngine] = None,
    ) -> None:
        self._store = store
        self._llm = llm
        self._retrieval = retrieval

    async def create(
        self,
        owner_id: int,
        first_query: str,
        title: Optional[str] = None,
        use_documents: bool = False,
        description: Optional[str] = None,
    ) -> CreateResult:
        """
        Start a new chat and answer its first query.

        Raises
        ------
        OwnerNotFound
            If ``owner_id`` does not reference an existing user.
        CompletionError
            If the first query cannot be answered. The chat row is kept.
        """
        if not await self._store.owner_exists(owner_id):
            raise OwnerNotFound(f"User {owner_id} not found")

        if not title:
            title = await self._llm.generate_title(first_query)

        chat = await self._store.create_chat(
            owner_id=owner_id,
            title=title,
            now=_utcnow(),
            description=description,
        )
        await self._store.commit()
        logger.info("Chat %s created for user %s", chat.id, owner_id)

        result = await self.process_query(
            chat.id,
            owner_id,
            first_query,
            use_documents=use_documents,
        )
        return CreateResult(chat=chat, first_response=result)

    async def process_query(
        self,
        chat_id: uuid.UUID,
        owner_id: int,
        query: str,
        use_documents: bool = False,
    ) -> QueryResult:
        """
        Answer ``query`` inside an existing chat and persist the exchange.

        Raises
        ------
        ChatNotFound
            If the chat does not exist, is not active, or belongs to another
            user. Nothing is persisted.
        CompletionError / EmbeddingError
            If a model call fails. Nothing is persisted.
        """
        started = time.perf_counter()

        chat = await self._store.get_active_chat(chat_id, owner_id)
        if chat is None:
            raise ChatNotFound(f"Chat {chat_id} not found or access denied")

        history = await self._store.recent_messages(
            chat_id, limit=settings.chat_history_window
        )

        context = ""
        search_results: Optional[List[Dict[str, Any]]] = None
        if use_documents and self._retrieval is not None:
            found = await self._retrieval.search(query, owner_id=owner_id)
            context = format_context(found.results)
            search_results = _search_summary(found)

        messages = [{"role": "system", "content": SYSTEM_PROMPT.format(context=context)}]
        messages.extend(
            {"role": message.role.value, "content": message.content}
            for message in history
        )
        messages.append({"role": "user", "content": query})

        completion = await self._llm.complete(messages)

        processing_time_ms = int((time.perf_counter() - started) * 1000)
        now = _utcnow()

        await self._store.add_message(
            chat_id,
            MessageRole.USER,
            query,
            created_at=now,
            metadata={"processing_time": processing_time_ms},
        )

        assistant_metadata: Dict[str, Any] = {
            "tokens_used": completion.usage.total,
            "model": completion.model,
            "processing_time": processing_time_ms,
        }
        if search_results is not None:
            assistant_metadata["search_results"] = search_results

        assistant = await self._store.add_message(
            chat_id,
            MessageRole.ASSISTANT,
            completion.answer,
            created_at=now,
            metadata=assistant_metadata,
        )

        await self._store.record_exchange(chat, completion.usage.total, now)
        await self._store.commit()

        logger.info(
            "Chat %s answered in %d ms (%d tokens)",
            chat_id,
            processing_time_ms,
            completion.usage.total,
        )

        return QueryResult(
            chat_id=chat_id,
            query=query,
            answer=completion.answer,
            token_usage=completion.usage,
            model=completion.model,
            processing_time_ms=processing_time_ms,
            message_id=assistant.id,
        )

    async def update(
        self,
        chat_id: uuid.UUID,
        owner_id: int,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[Chat]:
        chat = await self._store.get_active_chat(chat_id, owner_id)
        if chat is None:
            return None

        await self._store.update_chat(chat, title=title, description=description)
        await self._store.commit()
        return chat

    async def delete(self, chat_id: uuid.UUID, owner_id: int) -> bool:
        """Drop all messages and soft-delete the chat."""
        chat = await self._store.get_active_chat(chat_id, owner_id)
        if chat is None:
            return False

        removed = await self._store.delete_messages(chat_id)
        await self._store.mark_deleted(chat)
        await self._store.commit()

        logger.info("Chat %s deleted (%d messages removed)", chat_id, removed)
        return True

    async def list_chats(
        self,
        owner_id: int,
        include_last_message: bool = False,
    ) -> List[ChatSummary]:
        summaries = []
        for chat in await self._store.list_active_chats(owner_id):
            last = None
            if include_last_message:
                message = await self._store.last_message(chat.id)
                if message is not None:
                    last = MessagePreview(
                        content=preview(message.content),
                        role=message.role,
                        created_at=message.created_at,
                    )
            summaries.append(
                ChatSummary(
                    chat=chat,
                    message_count=await self._store.count_messages(chat.id),
                    last_message=last,
                )
            )
        return summaries

    async def get_chat(
        self,
        chat_id: uuid.UUID,
        owner_id: int,
        include_messages: bool = True,
    ) -> ChatDetail:
        chat = await self._store.get_active_chat(chat_id, owner_id)
        if chat is None:
            raise ChatNotFound(f"Chat {chat_id} not found or access denied")

        messages = await self._store.all_messages(chat_id) if include_messages else []
        return ChatDetail(chat=chat, messages=messages)

    async def stats(self, owner_id: int) -> ChatStats:
        total_chats, total_messages, total_tokens = await self._store.get_owner_stats(
            owner_id
        )
        average = round(total_messages / total_chats, 2) if total_chats else 0.0
        return ChatStats(
            total_chats=total_chats,
            total_messages=total_messages,
            total_tokens_used=total_tokens,
            average_messages_per_chat=average,
        )
