"""
API Models for the RAG Server

This module defines all Pydantic models used for request/response validation
across document, search and chat endpoints.

Every endpoint answers with the same envelope::

    {"success": bool, "message": str, "data": ...}

Failure envelopes are produced by the exception handlers in
``core/errors.py`` and never carry internal detail.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, ConfigDict

from ..retrieval.engine import SearchResult

T = TypeVar("T")


# ---------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------

class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str
    data: Optional[T] = None


# ---------------------------------------------------------------------
# Document Models
# ---------------------------------------------------------------------

class ProcessDocumentRequest(BaseModel):
    """
    Ingest a file that has already been uploaded to object storage.
    """
    storage_key: str = Field(..., min_length=1, max_length=1024)
    name: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., min_length=1, max_length=255)
    file_size: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")


class ProcessDocumentData(BaseModel):
    document_id: int
    name: str
    total_pages: int
    embeddings_created: int
    processing_status: str


class DocumentOut(BaseModel):
    id: int
    name: str
    storage_key: str
    content_type: str
    file_size: Optional[int] = None
    total_pages: int
    processing_status: str
    processing_error: Optional[str] = None
    embedding_count: int = 0
    url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EmbeddingOut(BaseModel):
    id: int
    page_number: int
    token_count: int
    content: str


class DocumentDetailOut(DocumentOut):
    embeddings: List[EmbeddingOut] = Field(default_factory=list)


class DocumentStatusOut(BaseModel):
    id: int
    name: str
    processing_status: str
    processing_error: Optional[str] = None
    total_pages: int
    embedding_count: int


class DocumentDeletedOut(BaseModel):
    deleted_embeddings: int
    storage_deleted: bool


# ---------------------------------------------------------------------
# Search Models
# ---------------------------------------------------------------------

class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    limit: Optional[int] = Field(default=None, ge=1, le=100)
    similarity_threshold: Optional[float] = Field(default=None, ge=-1.0, le=1.0)

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class SearchData(BaseModel):
    query: str
    results: List[SearchResult] = Field(default_factory=list)
    total_results: int = 0
    context: str


# ---------------------------------------------------------------------
# Chat Models
# ---------------------------------------------------------------------

class CreateChatRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    use_documents: bool = False

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    use_documents: bool = False

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class UpdateChatRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class TokenUsageOut(BaseModel):
    prompt: int
    completion: int
    total: int


class QueryResultOut(BaseModel):
    chat_id: uuid.UUID
    query: str
    answer: str
    token_usage: TokenUsageOut
    model: str
    processing_time_ms: int
    message_id: int


class MessagePreviewOut(BaseModel):
    content: str
    role: str
    created_at: Optional[datetime] = None


class ChatOut(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    owner_id: int
    status: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ChatSummaryOut(ChatOut):
    message_count: int = 0
    last_message: Optional[MessagePreviewOut] = None


class ChatMessageOut(BaseModel):
    id: int
    role: str
    content: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class ChatDetailOut(ChatOut):
    messages: List[ChatMessageOut] = Field(default_factory=list)


class ChatCreatedOut(BaseModel):
    chat: ChatOut
    first_response: QueryResultOut


class ChatStatsOut(BaseModel):
    total_chats: int
    total_messages: int
    total_tokens_used: int
    average_messages_per_chat: float
