"""
Document Ingestion Pipeline

Turns an object already uploaded to storage into a ``completed`` Document
with one Embedding per non-empty page chunk, or into a ``failed`` Document
carrying the error text.

Workflow
--------
1. Reject non-PDF content types before any row exists.
2. Create the Document in ``pending``.
3. Verify the object exists in storage.
4. Move the Document to ``processing``.
5. Refresh the byte size from storage metadata (best effort).
6. Download, extract text, record the page count, chunk.
7. Embed and persist each non-empty chunk, strictly in page order.
8. Move the Document to ``completed``.

Any failure in steps 3-8 marks the Document ``failed`` and is re-raised as
ProcessingFailed. Status changes are committed as they happen so other
requests can observe progress.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .chunker import estimate_tokens, provenance_label, split_into_pages
from .extractor import extract_text
from ..core.errors import ProcessingFailed, SourceNotFound, UnsupportedContentType
from ..db.document_store import DocumentStore
from ..db.models import Document, ProcessingStatus
from ..embeddings.embedder import Embedder
from ..storage.object_store import ObjectStore

logger = logging.getLogger("rag.ingestion")


@dataclass(frozen=True)
class IngestionResult:
    document: Document
    embeddings_created: int
    total_pages: int


def is_pdf_content_type(content_type: str) -> bool:
    return "pdf" in (content_type or "").lower()


class IngestionPipeline:
    def __init__(
        self,
        store: DocumentStore,
        objects: ObjectStore,
        embedder: Embedder,
    ) -> None:
        self._store = store
        self._objects = objects
        self._embedder = embedder

    async def ingest(
        self,
        storage_key: str,
        name: str,
        content_type: str,
        file_size: Optional[int] = None,
        owner_id: Optional[int] = None,
    ) -> IngestionResult:
        """
        Run the full pipeline for one stored object.

        Raises
        ------
        UnsupportedContentType
            Content type is not PDF. Nothing was persisted.
        DuplicateStorageKey
            The storage key was already ingested. Nothing was persisted.
        ProcessingFailed
            Any later failure. The Document is persisted as ``failed``.
        """
        if not is_pdf_content_type(content_type):
            raise UnsupportedContentType(
                f"Content type '{content_type}' is not supported; only PDF files are accepted"
            )

        document = await self._store.create_document(
            name=name,
            storage_key=storage_key,
            content_type=content_type,
            file_size=file_size,
            owner_id=owner_id,
        )
        await self._store.commit()
        logger.info("Document %s created for %s", document.id, storage_key)

        try:
            result = await self._run(document, file_size)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error(
                "Processing of document %s (%s) failed: %s",
                document.id,
                storage_key,
                message,
            )
            await self._mark_failed(document, message)
            raise ProcessingFailed(
                f"Document processing failed: {message}",
                document_id=document.id,
            ) from exc

        return result

    # ------------------------------------------------------------------
    # Internal steps
    # ------------------------------------------------------------------

    async def _run(self, document: Document, file_size: Optional[int]) -> IngestionResult:
        key = document.storage_key

        if not await self._objects.exists(key):
            raise SourceNotFound(
                f"File with key '{key}' does not exist in storage. "
                "Please ensure the file has been uploaded before processing."
            )

        await self._store.set_status(document, ProcessingStatus.PROCESSING)
        await self._store.commit()

        if not file_size:
            await self._refresh_file_size(document)

        data = await self._objects.download(key)
        extracted = await asyncio.to_thread(extract_text, data)
        await self._store.update_document(document, total_pages=extracted.page_count)
        await self._store.commit()

        chunks = split_into_pages(extracted.text, extracted.page_count)
        embeddings_created = await self._embed_chunks(document, chunks, extracted.page_count)

        await self._store.set_status(document, ProcessingStatus.COMPLETED)
        await self._store.commit()

        logger.info(
            "Document %s completed: %d pages, %d embeddings",
            document.id,
            extracted.page_count,
            embeddings_created,
        )
        return IngestionResult(
            document=document,
            embeddings_created=embeddings_created,
            total_pages=extracted.page_count,
        )

    async def _refresh_file_size(self, document: Document) -> None:
        try:
            metadata = await self._objects.get_metadata(document.storage_key)
        except Exception as exc:
            logger.warning(
                "Could not retrieve metadata for %s: %s",
                document.storage_key,
                exc,
            )
            return

        if metadata.size:
            await self._store.update_document(document, file_size=metadata.size)

    async def _embed_chunks(
        self,
        document: Document,
        chunks: list[str],
        total_pages: int,
    ) -> int:
        created = 0
        for page_number, raw_chunk in enumerate(chunks, start=1):
            chunk = raw_chunk.strip()
            if not chunk:
                continue

            text = provenance_label(page_number, total_pages, document.name) + chunk
            vector = await self._embedder.embed_one(text)

            await self._store.add_embedding(
                document_id=document.id,
                page_number=page_number,
                content=text,
                vector=vector,
                token_count=estimate_tokens(chunk),
            )
            created += 1

        return created

    async def _mark_failed(self, document: Document, message: str) -> None:
        # Drop half-written embeddings before recording the failure
        await self._store.rollback(document)
        await self._store.set_status(document, ProcessingStatus.FAILED, error=message)
        await self._store.commit()
