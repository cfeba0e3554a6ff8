"""
Store Tests

DocumentStore and ChatStore over a mocked AsyncSession. Statements are
compiled and inspected; result post-processing (ordering, mapping, metadata
folding) is checked against canned rows.
"""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pdf_rag_server.core.errors import DuplicateStorageKey, InvalidStatusTransition
from pdf_rag_server.db.chat_store import ChatStore, empty_chat_metadata
from pdf_rag_server.db.document_store import DocumentStore
from pdf_rag_server.db.models import (
    Chat,
    ChatMessage,
    ChatStatus,
    Document,
    MessageRole,
    ProcessingStatus,
)
from pdf_rag_server.embeddings.embedder import Embedder
from pdf_rag_server.ingestion.documents import DocumentService
from pdf_rag_server.retrieval.engine import RetrievalEngine
from pdf_rag_server.storage.object_store import ObjectStore

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _result(scalar=None, rows=None, scalars=None, rowcount=0):
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar.return_value = scalar
    result.all.return_value = rows or []
    result.scalars.return_value.all.return_value = scalars or []
    result.rowcount = rowcount
    return result


def _executed(session, index=0):
    """The statement passed to the ``index``-th ``session.execute`` call."""
    stmt = session.execute.await_args_list[index].args[0]
    compiled = stmt.compile()
    return str(compiled), compiled.params


@pytest.fixture
def session():
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def documents(session):
    return DocumentStore(session)


@pytest.fixture
def chats(session):
    return ChatStore(session)


def _document(status=ProcessingStatus.PENDING):
    return Document(
        id=4,
        name="guide.pdf",
        storage_key="uploads/guide.pdf",
        content_type="application/pdf",
        total_pages=0,
        processing_status=status,
    )


# ---------------------------------------------------------------------
# DocumentStore
# ---------------------------------------------------------------------

class TestDocumentStore:

    @pytest.mark.asyncio
    async def test_create_document_starts_pending(self, documents, session):
        session.execute.return_value = _result(scalar=None)

        document = await documents.create_document(
            "guide.pdf", "uploads/guide.pdf", "application/pdf", owner_id=9
        )

        assert document.processing_status is ProcessingStatus.PENDING
        assert document.total_pages == 0
        assert document.owner_id == 9
        session.add.assert_called_once_with(document)
        session.flush.assert_awaited_once()

        sql, params = _executed(session)
        assert "document.storage_key" in sql
        assert "uploads/guide.pdf" in params.values()

    @pytest.mark.asyncio
    async def test_existing_storage_key_fails_before_insert(self, documents, session):
        session.execute.return_value = _result(scalar=17)

        with pytest.raises(DuplicateStorageKey):
            await documents.create_document(
                "guide.pdf", "uploads/guide.pdf", "application/pdf"
            )

        session.add.assert_not_called()
        session.flush.assert_not_called()

    @pytest.mark.asyncio
    async def test_unique_violation_on_flush_is_duplicate(self, documents, session):
        session.execute.return_value = _result(scalar=None)
        session.flush.side_effect = IntegrityError(
            "INSERT INTO document", {}, Exception("duplicate key")
        )

        with pytest.raises(DuplicateStorageKey):
            await documents.create_document(
                "guide.pdf", "uploads/guide.pdf", "application/pdf"
            )

        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_set_status_rejects_regression(self, documents, session):
        document = _document(ProcessingStatus.COMPLETED)

        with pytest.raises(InvalidStatusTransition):
            await documents.set_status(document, ProcessingStatus.PROCESSING)

        assert document.processing_status is ProcessingStatus.COMPLETED
        session.flush.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_status_records_error(self, documents, session):
        document = _document(ProcessingStatus.PROCESSING)

        await documents.set_status(document, ProcessingStatus.FAILED, error="bad pdf")

        assert document.processing_error == "bad pdf"
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_embeddings_returns_rowcount(self, documents, session):
        session.execute.return_value = _result(rowcount=3)

        assert await documents.delete_embeddings(4) == 3

        sql, params = _executed(session)
        assert sql.startswith("DELETE FROM embedding")
        assert "embedding.document_id" in sql
        assert list(params.values()) == [4]

    @pytest.mark.asyncio
    async def test_load_embeddings_filters_by_owner(self, documents, session):
        session.execute.return_value = _result(
            rows=[
                SimpleNamespace(
                    id=1,
                    document_id=4,
                    page_number=2,
                    content="Page 2 of 2 ...",
                    embedding=[0.1, 0.2],
                    name="guide.pdf",
                )
            ]
        )

        stored = await documents.load_embeddings(owner_id=9)

        assert len(stored) == 1
        assert stored[0].embedding_id == 1
        assert stored[0].vector == [0.1, 0.2]
        assert stored[0].document_name == "guide.pdf"

        sql, params = _executed(session)
        assert "document.owner_id" in sql
        assert 9 in params.values()
        assert "ORDER BY embedding.id" in sql

    @pytest.mark.asyncio
    async def test_load_embeddings_without_owner_is_unfiltered(self, documents, session):
        session.execute.return_value = _result(rows=[])

        assert await documents.load_embeddings() == []

        sql, _ = _executed(session)
        assert "owner_id" not in sql

    @pytest.mark.asyncio
    async def test_get_stats_scopes_both_counts_to_owner(self, documents, session):
        session.execute.side_effect = [_result(scalar=2), _result(scalar=7)]

        assert await documents.get_stats(owner_id=9) == (2, 7)

        for index in (0, 1):
            sql, params = _executed(session, index)
            assert "document.owner_id" in sql
            assert 9 in params.values()


# ---------------------------------------------------------------------
# Deletion seen through search
# ---------------------------------------------------------------------

class InMemoryDocumentSession:
    """
    Just enough of AsyncSession for get_document, delete_embeddings,
    delete_document and load_embeddings over one in-memory document.
    """

    def __init__(self, document, rows):
        self.document = document
        self.rows = rows
        self.commits = 0

    async def execute(self, stmt):
        params = stmt.compile().params
        if stmt.is_delete:
            document_id = next(iter(params.values()))
            before = len(self.rows)
            self.rows = [r for r in self.rows if r.document_id != document_id]
            return _result(rowcount=before - len(self.rows))

        if "JOIN document" in str(stmt):
            return _result(rows=list(self.rows))

        found = self.document
        if found is not None and found.id not in params.values():
            found = None
        return _result(scalar=found)

    async def delete(self, document):
        if document is self.document:
            self.document = None

    async def flush(self):
        pass

    async def commit(self):
        self.commits += 1


@pytest.mark.asyncio
async def test_deleted_document_is_no_longer_searchable():
    document = _document(ProcessingStatus.COMPLETED)
    rows = [
        SimpleNamespace(
            id=page,
            document_id=document.id,
            page_number=page,
            content=f"Refund policy page {page}",
            embedding=[1.0, 0.0],
            name=document.name,
        )
        for page in (1, 2)
    ]
    session = InMemoryDocumentSession(document, rows)
    store = DocumentStore(session)

    embedder = AsyncMock(spec=Embedder)
    embedder.embed_one.return_value = [1.0, 0.0]
    engine = RetrievalEngine(store, embedder)

    objects = AsyncMock(spec=ObjectStore)
    objects.delete.return_value = True

    before = await engine.search("refunds", similarity_threshold=0.5)
    assert before.total_results == 2

    result = await DocumentService(store, objects).delete_document(document.id)
    assert result.deleted_embeddings == 2

    after = await engine.search("refunds", similarity_threshold=0.5)
    assert after.total_results == 0
    assert session.document is None
    assert session.commits == 1


# ---------------------------------------------------------------------
# ChatStore
# ---------------------------------------------------------------------

def _message(n):
    return ChatMessage(
        id=n,
        chat_id=uuid.uuid4(),
        role=MessageRole.USER if n % 2 else MessageRole.ASSISTANT,
        content=f"message {n}",
        created_at=NOW,
    )


def _chat(metadata=None):
    return Chat(
        id=uuid.uuid4(),
        title="Refunds",
        owner_id=7,
        status=ChatStatus.ACTIVE,
        metadata_=metadata if metadata is not None else empty_chat_metadata(NOW),
    )


class TestChatStore:

    @pytest.mark.asyncio
    async def test_recent_messages_newest_window_oldest_first(self, chats, session):
        newest_first = [_message(n) for n in (12, 11, 10)]
        session.execute.return_value = _result(scalars=newest_first)

        messages = await chats.recent_messages(uuid.uuid4(), limit=10)

        assert [m.id for m in messages] == [10, 11, 12]

        sql, params = _executed(session)
        assert "ORDER BY chat_message.created_at DESC, chat_message.id DESC" in sql
        assert "LIMIT" in sql
        assert 10 in params.values()

    @pytest.mark.asyncio
    async def test_last_message_is_newest(self, chats, session):
        session.execute.return_value = _result(scalars=[_message(5)])

        message = await chats.last_message(uuid.uuid4())

        assert message.id == 5
        _, params = _executed(session)
        assert 1 in params.values()

    @pytest.mark.asyncio
    async def test_last_message_of_empty_chat(self, chats, session):
        session.execute.return_value = _result(scalars=[])

        assert await chats.last_message(uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_record_exchange_folds_usage(self, chats, session):
        original = {
            "total_messages": 4,
            "last_query_time": "2024-01-01T00:00:00+00:00",
            "total_tokens_used": 100,
        }
        chat = _chat(metadata=original)

        await chats.record_exchange(chat, tokens_used=25, now=NOW)

        assert chat.metadata_ == {
            "total_messages": 6,
            "last_query_time": NOW.isoformat(),
            "total_tokens_used": 125,
        }
        # a new dict is assigned, the old one is left as it was
        assert chat.metadata_ is not original
        assert original["total_messages"] == 4
        assert chat.updated_at == NOW
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_active_chat_filters_owner_and_status(self, chats, session):
        session.execute.return_value = _result(scalar=None)
        chat_id = uuid.uuid4()

        assert await chats.get_active_chat(chat_id, 7) is None

        sql, params = _executed(session)
        assert "chat.owner_id" in sql
        assert "chat.status" in sql
        assert 7 in params.values()
        assert chat_id in params.values()
        assert ChatStatus.ACTIVE in params.values()

    @pytest.mark.asyncio
    async def test_owner_exists(self, chats, session):
        session.execute.return_value = _result(scalar=7)
        assert await chats.owner_exists(7) is True

        session.execute.return_value = _result(scalar=None)
        assert await chats.owner_exists(8) is False

    @pytest.mark.asyncio
    async def test_mark_deleted_is_soft(self, chats, session):
        chat = _chat()

        await chats.mark_deleted(chat)

        assert chat.status is ChatStatus.DELETED
        session.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_owner_stats_sum_tokens_over_active_chats(self, chats, session):
        first = _chat({"total_messages": 2, "total_tokens_used": 30})
        second = _chat({"total_messages": 4, "total_tokens_used": 12})
        session.execute.side_effect = [
            _result(scalars=[first, second]),
            _result(scalar=6),
        ]

        assert await chats.get_owner_stats(7) == (2, 6, 42)
