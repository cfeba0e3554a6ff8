"""
Database Package

Provides SQLAlchemy async session management, model definitions and the
document and chat stores for PostgreSQL with pgvector.
"""

from .session import (
    get_async_session,
    async_engine,
    AsyncSessionLocal,
    dispose_engine,
    ping_database,
)
from .models import (
    Base,
    AppUser,
    Document,
    Embedding,
    Chat,
    ChatMessage,
    ProcessingStatus,
    ChatStatus,
    MessageRole,
)
from .document_store import DocumentStore, StoredEmbedding
from .chat_store import ChatStore

__all__ = [
    "get_async_session",
    "async_engine",
    "AsyncSessionLocal",
    "dispose_engine",
    "ping_database",
    "Base",
    "AppUser",
    "Document",
    "Embedding",
    "Chat",
    "ChatMessage",
    "ProcessingStatus",
    "ChatStatus",
    "MessageRole",
    "DocumentStore",
    "StoredEmbedding",
    "ChatStore",
]
