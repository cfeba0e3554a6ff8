"""
Ingestion Pipeline Tests

Covers the document lifecycle through the pipeline with storage, extraction
and embedding mocked:
- content type gate before any row exists
- missing source objects
- successful ingestion with one embedding per non-empty chunk
- rollback of partial work on failure
"""

import threading

import pytest
from unittest.mock import AsyncMock, patch

from pdf_rag_server.core.errors import (
    EmbeddingError,
    ProcessingFailed,
    UnsupportedContentType,
)
from pdf_rag_server.db.document_store import DocumentStore, check_transition
from pdf_rag_server.db.models import Document, ProcessingStatus
from pdf_rag_server.embeddings.embedder import Embedder
from pdf_rag_server.ingestion.extractor import ExtractedText
from pdf_rag_server.ingestion.pipeline import IngestionPipeline, is_pdf_content_type
from pdf_rag_server.storage.object_store import ObjectMetadata, ObjectStore

EXTRACT = "pdf_rag_server.ingestion.pipeline.extract_text"


@pytest.fixture
def status_log():
    return []


@pytest.fixture
def mock_store(status_log):
    store = AsyncMock(spec=DocumentStore)

    async def _create(name, storage_key, content_type, file_size=None, owner_id=None):
        return Document(
            id=11,
            name=name,
            storage_key=storage_key,
            content_type=content_type,
            file_size=file_size,
            total_pages=0,
            processing_status=ProcessingStatus.PENDING,
            owner_id=owner_id,
        )

    async def _set_status(document, status, error=None):
        check_transition(document.processing_status, status)
        document.processing_status = status
        if status is ProcessingStatus.FAILED:
            document.processing_error = error
        status_log.append(status)
        return document

    async def _update(document, file_size=None, total_pages=None):
        if file_size is not None:
            document.file_size = file_size
        if total_pages is not None:
            document.total_pages = total_pages
        return document

    store.create_document.side_effect = _create
    store.set_status.side_effect = _set_status
    store.update_document.side_effect = _update
    return store


@pytest.fixture
def mock_objects():
    objects = AsyncMock(spec=ObjectStore)
    objects.exists.return_value = True
    objects.download.return_value = b"%PDF-1.4 fake"
    objects.get_metadata.return_value = ObjectMetadata(
        size=2048, content_type="application/pdf", last_modified=None
    )
    return objects


@pytest.fixture
def mock_embedder():
    embedder = AsyncMock(spec=Embedder)
    embedder.embed_one.return_value = [0.1, 0.2, 0.3]
    return embedder


@pytest.fixture
def pipeline(mock_store, mock_objects, mock_embedder):
    return IngestionPipeline(mock_store, mock_objects, mock_embedder)


@pytest.mark.parametrize(
    "content_type, expected",
    [
        ("application/pdf", True),
        ("APPLICATION/PDF", True),
        ("application/x-pdf", True),
        ("text/plain", False),
        ("", False),
    ],
)
def test_is_pdf_content_type(content_type, expected):
    assert is_pdf_content_type(content_type) is expected


@pytest.mark.asyncio
async def test_non_pdf_is_rejected_before_any_row(pipeline, mock_store, mock_objects):
    with pytest.raises(UnsupportedContentType):
        await pipeline.ingest("uploads/notes.txt", "notes.txt", "text/plain")

    mock_store.create_document.assert_not_called()
    mock_objects.exists.assert_not_called()


@pytest.mark.asyncio
async def test_missing_source_marks_document_failed(
    pipeline, mock_store, mock_objects, mock_embedder, status_log
):
    mock_objects.exists.return_value = False

    with pytest.raises(ProcessingFailed) as exc_info:
        await pipeline.ingest("uploads/missing.pdf", "missing.pdf", "application/pdf")

    assert exc_info.value.document_id == 11
    assert status_log == [ProcessingStatus.FAILED]

    document = mock_store.set_status.await_args.args[0]
    assert document.processing_status is ProcessingStatus.FAILED
    assert "does not exist" in document.processing_error

    mock_objects.download.assert_not_called()
    mock_embedder.embed_one.assert_not_called()
    mock_store.add_embedding.assert_not_called()
    mock_store.rollback.assert_awaited_once_with(document)


@pytest.mark.asyncio
async def test_successful_ingestion(
    pipeline, mock_store, mock_objects, mock_embedder, status_log
):
    text = "a" * 10 + "b" * 10

    with patch(EXTRACT, return_value=ExtractedText(text=text, page_count=2)):
        result = await pipeline.ingest(
            "uploads/guide.pdf", "guide.pdf", "application/pdf", owner_id=5
        )

    assert status_log == [ProcessingStatus.PROCESSING, ProcessingStatus.COMPLETED]
    assert result.embeddings_created == 2
    assert result.total_pages == 2
    assert result.document.total_pages == 2
    assert result.document.file_size == 2048
    assert result.document.owner_id == 5

    calls = mock_store.add_embedding.await_args_list
    assert [c.kwargs["page_number"] for c in calls] == [1, 2]
    assert calls[0].kwargs["content"] == (
        "Page 1 of 2 from document 'guide.pdf': " + "a" * 10
    )
    assert calls[0].kwargs["token_count"] == 3
    assert calls[0].kwargs["document_id"] == 11

    mock_embedder.embed_one.assert_any_await(
        "Page 2 of 2 from document 'guide.pdf': " + "b" * 10
    )
    mock_store.rollback.assert_not_called()


@pytest.mark.asyncio
async def test_declared_file_size_skips_metadata_lookup(pipeline, mock_objects):
    with patch(EXTRACT, return_value=ExtractedText(text="hello", page_count=1)):
        result = await pipeline.ingest(
            "uploads/a.pdf", "a.pdf", "application/pdf", file_size=99
        )

    mock_objects.get_metadata.assert_not_called()
    assert result.document.file_size == 99


@pytest.mark.asyncio
async def test_metadata_failure_is_absorbed(pipeline, mock_objects):
    mock_objects.get_metadata.side_effect = RuntimeError("head failed")

    with patch(EXTRACT, return_value=ExtractedText(text="hello", page_count=1)):
        result = await pipeline.ingest("uploads/a.pdf", "a.pdf", "application/pdf")

    assert result.embeddings_created == 1
    assert result.document.processing_status is ProcessingStatus.COMPLETED


@pytest.mark.asyncio
async def test_empty_chunks_are_skipped(pipeline, mock_store):
    with patch(EXTRACT, return_value=ExtractedText(text="abc", page_count=5)):
        result = await pipeline.ingest("uploads/a.pdf", "a.pdf", "application/pdf")

    assert result.embeddings_created == 3
    pages = [c.kwargs["page_number"] for c in mock_store.add_embedding.await_args_list]
    assert pages == [1, 2, 3]


@pytest.mark.asyncio
async def test_embedding_failure_rolls_back_and_fails(
    pipeline, mock_store, mock_embedder, status_log
):
    mock_embedder.embed_one.side_effect = [
        [0.1, 0.2, 0.3],
        EmbeddingError("Embedding generation failed: ReadTimeout"),
    ]
    text = "a" * 10 + "b" * 10

    with patch(EXTRACT, return_value=ExtractedText(text=text, page_count=2)):
        with pytest.raises(ProcessingFailed) as exc_info:
            await pipeline.ingest("uploads/a.pdf", "a.pdf", "application/pdf")

    assert isinstance(exc_info.value.__cause__, EmbeddingError)
    assert status_log == [ProcessingStatus.PROCESSING, ProcessingStatus.FAILED]
    mock_store.rollback.assert_awaited_once()

    document = mock_store.set_status.await_args.args[0]
    assert "ReadTimeout" in document.processing_error


@pytest.mark.asyncio
async def test_extraction_runs_off_the_event_loop(pipeline):
    loop_thread = threading.get_ident()
    extract_threads = []

    def _extract(data):
        extract_threads.append(threading.get_ident())
        return ExtractedText(text="hello", page_count=1)

    with patch(EXTRACT, side_effect=_extract):
        await pipeline.ingest("uploads/a.pdf", "a.pdf", "application/pdf")

    assert len(extract_threads) == 1
    assert extract_threads[0] != loop_thread
