"""
Document Store

PostgreSQL-backed persistence for Document and Embedding rows, including the
document processing state machine.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import Document, Embedding, ProcessingStatus
from ..core.errors import DuplicateStorageKey, InvalidStatusTransition


_ALLOWED_TRANSITIONS: Dict[ProcessingStatus, FrozenSet[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset(
        {ProcessingStatus.PROCESSING, ProcessingStatus.FAILED}
    ),
    ProcessingStatus.PROCESSING: frozenset(
        {ProcessingStatus.COMPLETED, ProcessingStatus.FAILED}
    ),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.FAILED: frozenset(),
}


def check_transition(current: ProcessingStatus, target: ProcessingStatus) -> None:
    """
    Raise InvalidStatusTransition unless ``current -> target`` moves forward
    along pending -> processing -> {completed | failed}.
    """
    if target not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(
            f"Cannot move document from '{current.value}' to '{target.value}'"
        )


@dataclass(frozen=True)
class StoredEmbedding:
    """One embedding row joined with its document name, as scanned by search."""
    embedding_id: int
    document_id: int
    page_number: int
    content: str
    vector: Sequence[float]
    document_name: Optional[str]


class DocumentStore:
    """
    Async repository for documents and their embeddings.

    All methods operate on the session passed in; only ``commit`` ends the
    transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self, *documents: Document) -> None:
        """
        Discard uncommitted work and reload the given documents, whose
        attributes the rollback expired.
        """
        await self._session.rollback()
        for document in documents:
            await self._session.refresh(document)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(
        self,
        name: str,
        storage_key: str,
        content_type: str,
        file_size: Optional[int] = None,
        owner_id: Optional[int] = None,
    ) -> Document:
        """
        Insert a new Document in ``pending``.

        Raises
        ------
        DuplicateStorageKey
            If a document with the same storage key already exists.
        """
        existing = await self._session.execute(
            select(Document.id).where(Document.storage_key == storage_key)
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateStorageKey(f"Storage key '{storage_key}' already ingested")

        document = Document(
            name=name,
            storage_key=storage_key,
            content_type=content_type,
            file_size=file_size,
            total_pages=0,
            processing_status=ProcessingStatus.PENDING,
            owner_id=owner_id,
        )
        self._session.add(document)

        try:
            await self._session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent ingestion of the same key
            await self._session.rollback()
            raise DuplicateStorageKey(
                f"Storage key '{storage_key}' already ingested"
            ) from exc

        return document

    async def get_document(
        self,
        document_id: int,
        with_embeddings: bool = False,
    ) -> Optional[Document]:
        stmt = select(Document).where(Document.id == document_id)
        if with_embeddings:
            stmt = stmt.options(selectinload(Document.embeddings))

        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_documents(self) -> List[Tuple[Document, int]]:
        """
        Return every document with its embedding count, newest first.
        """
        stmt = (
            select(Document, func.count(Embedding.id))
            .outerjoin(Embedding, Embedding.document_id == Document.id)
            .group_by(Document.id)
            .order_by(Document.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [(row[0], int(row[1])) for row in result.all()]

    async def set_status(
        self,
        document: Document,
        status: ProcessingStatus,
        error: Optional[str] = None,
    ) -> Document:
        """
        Move a document forward in its lifecycle.

        ``error`` is only recorded for the ``failed`` state.
        """
        check_transition(document.processing_status, status)

        document.processing_status = status
        if status is ProcessingStatus.FAILED:
            document.processing_error = error or "Unknown processing error"

        await self._session.flush()
        return document

    async def update_document(
        self,
        document: Document,
        file_size: Optional[int] = None,
        total_pages: Optional[int] = None,
    ) -> Document:
        if file_size is not None:
            document.file_size = file_size
        if total_pages is not None:
            document.total_pages = total_pages

        await self._session.flush()
        return document

    async def delete_document(self, document: Document) -> None:
        await self._session.delete(document)
        await self._session.flush()

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    async def add_embedding(
        self,
        document_id: int,
        page_number: int,
        content: str,
        vector: List[float],
        token_count: int,
    ) -> Embedding:
        record = Embedding(
            document_id=document_id,
            page_number=page_number,
            content=content,
            embedding=vector,
            token_count=token_count,
        )
        self._session.add(record)
        await self._session.flush()
        return record

    async def count_embeddings(self, document_id: int) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(Embedding)
            .where(Embedding.document_id == document_id)
        )
        return result.scalar() or 0

    async def delete_embeddings(self, document_id: int) -> int:
        """
        Remove all embeddings for a document.

        Returns the number of deleted rows.
        """
        result = await self._session.execute(
            delete(Embedding).where(Embedding.document_id == document_id)
        )
        return result.rowcount

    async def load_embeddings(
        self,
        owner_id: Optional[int] = None,
    ) -> List[StoredEmbedding]:
        """
        Load every embedding in storage order, optionally restricted to
        documents owned by ``owner_id``.
        """
        stmt = (
            select(
                Embedding.id,
                Embedding.document_id,
                Embedding.page_number,
                Embedding.content,
                Embedding.embedding,
                Document.name,
            )
            .join(Document, Document.id == Embedding.document_id)
            .order_by(Embedding.id)
        )
        if owner_id is not None:
            stmt = stmt.where(Document.owner_id == owner_id)

        result = await self._session.execute(stmt)
        return [
            StoredEmbedding(
                embedding_id=row.id,
                document_id=row.document_id,
                page_number=row.page_number,
                content=row.content,
                vector=row.embedding,
                document_name=row.name,
            )
            for row in result.all()
        ]

    async def get_stats(self, owner_id: Optional[int] = None) -> Tuple[int, int]:
        """
        Return ``(total_documents, total_embeddings)``.
        """
        docs_stmt = select(func.count()).select_from(Document)
        emb_stmt = (
            select(func.count())
            .select_from(Embedding)
            .join(Document, Document.id == Embedding.document_id)
        )
        if owner_id is not None:
            docs_stmt = docs_stmt.where(Document.owner_id == owner_id)
            emb_stmt = emb_stmt.where(Document.owner_id == owner_id)

        total_documents = (await self._session.execute(docs_stmt)).scalar() or 0
        total_embeddings = (await self._session.execute(emb_stmt)).scalar() or 0
        return total_documents, total_embeddings
