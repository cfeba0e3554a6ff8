"""
SQLAlchemy Models

Defines the database schema for:
- Ingested documents and their per-page embeddings (pgvector)
- Chats and chat messages
- The read-only user table consulted for chat ownership
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    String,
    Integer,
    Text,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from pgvector.sqlalchemy import Vector

from ..config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class ProcessingStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ChatStatus(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"  # reserved, never set by any operation
    DELETED = "deleted"


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ---------------------------------------------------------------------
# User Model (owned by the account service)
# ---------------------------------------------------------------------

class AppUser(Base):
    """
    Minimal view of a user account.

    Accounts are managed by a separate service; this core only checks that a
    chat owner exists.
    """
    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# ---------------------------------------------------------------------
# Document Model
# ---------------------------------------------------------------------

class Document(Base):
    """
    One ingested file and its processing lifecycle.
    """
    __tablename__ = "document"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    total_pages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_status: Mapped[ProcessingStatus] = mapped_column(
        Enum(
            ProcessingStatus,
            name="processing_status",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=ProcessingStatus.PENDING,
    )
    processing_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    embeddings: Mapped[List["Embedding"]] = relationship(
        "Embedding",
        back_populates="document",
        order_by="Embedding.page_number",
    )


# ---------------------------------------------------------------------
# Embedding Model
# ---------------------------------------------------------------------

class Embedding(Base):
    """
    Vector embedding for one page-aligned chunk of a document.

    ``content`` carries the provenance label followed by the chunk text.
    """
    __tablename__ = "embedding"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("document.id", ondelete="CASCADE"),
        nullable=False,
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False)

    embedding = Column(Vector(settings.embedding_dimensions), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    document: Mapped["Document"] = relationship("Document", back_populates="embeddings")

    __table_args__ = (
        UniqueConstraint("document_id", "page_number", name="uq_embedding_document_page"),
        Index("idx_embedding_document", "document_id"),
    )


# ---------------------------------------------------------------------
# Chat Model
# ---------------------------------------------------------------------

class Chat(Base):
    """
    A conversation thread owned by a user.
    """
    __tablename__ = "chat"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ChatStatus] = mapped_column(
        Enum(ChatStatus, name="chat_status", values_callable=_enum_values),
        nullable=False,
        default=ChatStatus.ACTIVE,
    )
    # total_messages | last_query_time | total_tokens_used
    metadata_: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    messages: Mapped[List["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="chat",
        order_by="ChatMessage.id",
    )

    __table_args__ = (
        Index("idx_chat_owner_status", "owner_id", "status"),
    )


# ---------------------------------------------------------------------
# Chat Message Model
# ---------------------------------------------------------------------

class ChatMessage(Base):
    """
    A single turn within a chat.

    The autoincrement id breaks ties between messages persisted with the
    same timestamp.
    """
    __tablename__ = "chat_message"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chat.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[MessageRole] = mapped_column(
        Enum(MessageRole, name="message_role", values_callable=_enum_values),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    chat: Mapped["Chat"] = relationship("Chat", back_populates="messages")

    __table_args__ = (
        Index("idx_message_chat", "chat_id", "created_at"),
    )
