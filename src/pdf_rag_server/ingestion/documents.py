"""
Document lookup and deletion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Tuple

from ..core.errors import DocumentNotFound
from ..db.document_store import DocumentStore
from ..db.models import Document
from ..storage.object_store import ObjectStore

logger = logging.getLogger("rag.ingestion")


@dataclass(frozen=True)
class DeletionResult:
    message: str
    deleted_embeddings: int
    storage_deleted: bool


class DocumentService:
    def __init__(self, store: DocumentStore, objects: ObjectStore) -> None:
        self._store = store
        self._objects = objects

    def url_for(self, document: Document) -> str:
        return self._objects.get_url(document.storage_key)

    async def list_documents(self) -> List[Tuple[Document, int]]:
        return await self._store.list_documents()

    async def get_document(self, document_id: int) -> Document:
        """Return the document with its embeddings loaded."""
        document = await self._store.get_document(document_id, with_embeddings=True)
        if document is None:
            raise DocumentNotFound(f"Document {document_id} not found")
        return document

    async def get_status(self, document_id: int) -> Tuple[Document, int]:
        document = await self._store.get_document(document_id)
        if document is None:
            raise DocumentNotFound(f"Document {document_id} not found")
        return document, await self._store.count_embeddings(document_id)

    async def delete_document(self, document_id: int) -> DeletionResult:
        """
        Delete a document, its embeddings, and (best effort) its stored file.

        Embeddings are deleted explicitly before the document row, and the
        stored file only after both. A failed file deletion is reported
        through ``storage_deleted`` rather than raised.
        """
        document = await self._store.get_document(document_id)
        if document is None:
            raise DocumentNotFound(f"Document {document_id} not found")

        name = document.name
        storage_key = document.storage_key

        deleted_embeddings = await self._store.delete_embeddings(document_id)
        await self._store.delete_document(document)
        await self._store.commit()

        storage_deleted = await self._objects.delete(storage_key)
        if not storage_deleted:
            logger.warning("Records for %s removed but the stored file was not", storage_key)

        return DeletionResult(
            message=f"Document '{name}' deleted successfully",
            deleted_embeddings=deleted_embeddings,
            storage_deleted=storage_deleted,
        )
