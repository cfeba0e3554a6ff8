"""
Chat Routes: Document-Grounded Conversations

This module exposes the chat orchestrator over HTTP. It provides:
- Chat creation with an automatically generated title
- Follow-up queries answered with the recent chat history
- Optional grounding of answers in the caller's documents
- Listing, inspection, renaming and soft deletion of chats

Security Model
--------------
- Every route requires a valid bearer token.
- A chat is only visible to its owner; other users get 404.
"""

from __future__ import annotations

import uuid
from typing import Annotated, List

from fastapi import APIRouter, Depends, status

from .dependencies import get_chat_orchestrator
from .models import (
    ApiResponse,
    ChatCreatedOut,
    ChatDetailOut,
    ChatMessageOut,
    ChatOut,
    ChatStatsOut,
    ChatSummaryOut,
    CreateChatRequest,
    MessagePreviewOut,
    QueryRequest,
    QueryResultOut,
    TokenUsageOut,
    UpdateChatRequest,
)
from ..auth.models import UserContext
from ..auth.security import verify_jwt
from ..chat.orchestrator import ChatOrchestrator, QueryResult
from ..core.errors import ChatNotFound
from ..db.models import Chat

router = APIRouter(prefix="/chats", tags=["chats"])


# ---------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------

def _chat_fields(chat: Chat) -> dict:
    return dict(
        id=chat.id,
        title=chat.title,
        description=chat.description,
        owner_id=chat.owner_id,
        status=chat.status.value,
        metadata=chat.metadata_ or {},
        created_at=chat.created_at,
        updated_at=chat.updated_at,
    )


def _query_out(result: QueryResult) -> QueryResultOut:
    return QueryResultOut(
        chat_id=result.chat_id,
        query=result.query,
        answer=result.answer,
        token_usage=TokenUsageOut(
            prompt=result.token_usage.prompt,
            completion=result.token_usage.completion,
            total=result.token_usage.total,
        ),
        model=result.model,
        processing_time_ms=result.processing_time_ms,
        message_id=result.message_id,
    )


# ---------------------------------------------------------------------
# Chat Routes
# ---------------------------------------------------------------------

@router.get("", response_model=ApiResponse[List[ChatSummaryOut]])
async def list_chats(
    user: Annotated[UserContext, Depends(verify_jwt)],
    orchestrator: Annotated[ChatOrchestrator, Depends(get_chat_orchestrator)],
    include_last_message: bool = False,
) -> ApiResponse[List[ChatSummaryOut]]:
    summaries = await orchestrator.list_chats(user.user_id, include_last_message)

    chats = []
    for summary in summaries:
        last = None
        if summary.last_message is not None:
            last = MessagePreviewOut(
                content=summary.last_message.content,
                role=summary.last_message.role.value,
                created_at=summary.last_message.created_at,
            )
        chats.append(
            ChatSummaryOut(
                **_chat_fields(summary.chat),
                message_count=summary.message_count,
                last_message=last,
            )
        )

    return ApiResponse(message=f"Retrieved {len(chats)} chats", data=chats)


@router.post(
    "",
    response_model=ApiResponse[ChatCreatedOut],
    status_code=status.HTTP_201_CREATED,
    summary="Start a chat and answer its first query",
)
async def create_chat(
    req: CreateChatRequest,
    user: Annotated[UserContext, Depends(verify_jwt)],
    orchestrator: Annotated[ChatOrchestrator, Depends(get_chat_orchestrator)],
) -> ApiResponse[ChatCreatedOut]:
    created = await orchestrator.create(
        owner_id=user.user_id,
        first_query=req.query,
        title=req.title,
        description=req.description,
        use_documents=req.use_documents,
    )
    return ApiResponse(
        message="Chat created successfully",
        data=ChatCreatedOut(
            chat=ChatOut(**_chat_fields(created.chat)),
            first_response=_query_out(created.first_response),
        ),
    )


@router.get("/stats", response_model=ApiResponse[ChatStatsOut])
async def chat_stats(
    user: Annotated[UserContext, Depends(verify_jwt)],
    orchestrator: Annotated[ChatOrchestrator, Depends(get_chat_orchestrator)],
) -> ApiResponse[ChatStatsOut]:
    stats = await orchestrator.stats(user.user_id)
    return ApiResponse(
        message="Chat statistics retrieved successfully",
        data=ChatStatsOut(
            total_chats=stats.total_chats,
            total_messages=stats.total_messages,
            total_tokens_used=stats.total_tokens_used,
            average_messages_per_chat=stats.average_messages_per_chat,
        ),
    )


@router.post("/{chat_id}/query", response_model=ApiResponse[QueryResultOut])
async def query_chat(
    chat_id: uuid.UUID,
    req: QueryRequest,
    user: Annotated[UserContext, Depends(verify_jwt)],
    orchestrator: Annotated[ChatOrchestrator, Depends(get_chat_orchestrator)],
) -> ApiResponse[QueryResultOut]:
    result = await orchestrator.process_query(
        chat_id,
        user.user_id,
        req.query,
        use_documents=req.use_documents,
    )
    return ApiResponse(message="Query processed successfully", data=_query_out(result))


@router.get("/{chat_id}", response_model=ApiResponse[ChatDetailOut])
async def get_chat(
    chat_id: uuid.UUID,
    user: Annotated[UserContext, Depends(verify_jwt)],
    orchestrator: Annotated[ChatOrchestrator, Depends(get_chat_orchestrator)],
    include_messages: bool = True,
) -> ApiResponse[ChatDetailOut]:
    detail = await orchestrator.get_chat(chat_id, user.user_id, include_messages)
    messages = [
        ChatMessageOut(
            id=message.id,
            role=message.role.value,
            content=message.content,
            metadata=message.metadata_,
            created_at=message.created_at,
        )
        for message in detail.messages
    ]
    return ApiResponse(
        message="Chat retrieved successfully",
        data=ChatDetailOut(**_chat_fields(detail.chat), messages=messages),
    )


@router.put("/{chat_id}", response_model=ApiResponse[ChatOut])
async def update_chat(
    chat_id: uuid.UUID,
    req: UpdateChatRequest,
    user: Annotated[UserContext, Depends(verify_jwt)],
    orchestrator: Annotated[ChatOrchestrator, Depends(get_chat_orchestrator)],
) -> ApiResponse[ChatOut]:
    chat = await orchestrator.update(
        chat_id,
        user.user_id,
        title=req.title,
        description=req.description,
    )
    if chat is None:
        raise ChatNotFound(f"Chat {chat_id} not found or access denied")

    return ApiResponse(message="Chat updated successfully", data=ChatOut(**_chat_fields(chat)))


@router.delete("/{chat_id}", response_model=ApiResponse[None])
async def delete_chat(
    chat_id: uuid.UUID,
    user: Annotated[UserContext, Depends(verify_jwt)],
    orchestrator: Annotated[ChatOrchestrator, Depends(get_chat_orchestrator)],
) -> ApiResponse[None]:
    if not await orchestrator.delete(chat_id, user.user_id):
        raise ChatNotFound(f"Chat {chat_id} not found or access denied")

    return ApiResponse(message="Chat deleted successfully")
