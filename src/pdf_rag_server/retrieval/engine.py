"""
Retrieval Engine

Semantic search over stored page embeddings.

Responsibilities
----------------
- Embed the query
- Linear scan over stored embeddings with cosine scoring
- Threshold, rank and limit the matches
- Render the ranked matches as an LLM context block

The scan is brute force: every embedding in scope is loaded and scored per
query. ``search`` only depends on ``DocumentStore.load_embeddings``, so an
index-backed nearest-neighbour lookup can replace the scan behind the same
signature.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .similarity import cosine_similarity
from ..config import settings
from ..db.document_store import DocumentStore
from ..embeddings.embedder import Embedder

logger = logging.getLogger("rag.retrieval")

CONTEXT_PREAMBLE = "Based on the following relevant information from the documents:\n\n"
CONTEXT_CLOSING = "Please provide a comprehensive answer based on this context."
NO_CONTEXT_MESSAGE = "No relevant context found in the documents."


# ---------------------------------------------------------------------
# Result Models
# ---------------------------------------------------------------------

class SearchResult(BaseModel):
    content: str
    similarity: float
    document_id: int
    page_number: int
    document_name: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class SearchContext(BaseModel):
    query: str
    results: List[SearchResult] = Field(default_factory=list)
    total_results: int = 0


class SearchStats(BaseModel):
    total_documents: int
    total_embeddings: int
    average_embeddings_per_document: float


# ---------------------------------------------------------------------
# Context Formatting
# ---------------------------------------------------------------------

def format_context(results: List[SearchResult]) -> str:
    """
    Render ranked results into the context block handed to the LLM.

    An empty result list yields a fixed "no relevant context" sentence,
    which is a valid context, not an error.
    """
    if not results:
        return NO_CONTEXT_MESSAGE

    parts = [CONTEXT_PREAMBLE]
    for result in results:
        parts.append(
            f"Document: {result.document_name or 'Unknown'} (Page {result.page_number})\n"
            f"Content: {result.content}\n"
            f"Relevance: {result.similarity * 100:.1f}%\n\n"
        )
    parts.append(CONTEXT_CLOSING)
    return "".join(parts)


# ---------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------

class RetrievalEngine:
    def __init__(self, store: DocumentStore, embedder: Embedder) -> None:
        self._store = store
        self._embedder = embedder

    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
        similarity_threshold: Optional[float] = None,
        owner_id: Optional[int] = None,
    ) -> SearchContext:
        """
        Return up to ``limit`` passages scoring at least
        ``similarity_threshold``, best first.

        Ties keep storage order. Raises EmbeddingError if the query cannot be
        embedded and DimensionMismatch if stored vectors disagree in length
        with the query vector.
        """
        limit = settings.search_limit if limit is None else limit
        threshold = (
            settings.similarity_threshold
            if similarity_threshold is None
            else similarity_threshold
        )

        query_vector = await self._embedder.embed_one(query)
        candidates = await self._store.load_embeddings(owner_id=owner_id)

        scored: List[SearchResult] = []
        for candidate in candidates:
            similarity = cosine_similarity(query_vector, candidate.vector)
            if similarity >= threshold:
                scored.append(
                    SearchResult(
                        content=candidate.content,
                        similarity=similarity,
                        document_id=candidate.document_id,
                        page_number=candidate.page_number,
                        document_name=candidate.document_name,
                    )
                )

        # sorted() is stable, so equal scores keep storage order
        ranked = sorted(scored, key=lambda r: r.similarity, reverse=True)[: max(limit, 0)]

        logger.info(
            "Search scanned %d embeddings, %d above threshold %.2f, returning %d",
            len(candidates),
            len(scored),
            threshold,
            len(ranked),
        )

        return SearchContext(query=query, results=ranked, total_results=len(ranked))

    async def stats(self, owner_id: Optional[int] = None) -> SearchStats:
        total_documents, total_embeddings = await self._store.get_stats(owner_id)
        average = (
            round(total_embeddings / total_documents, 2) if total_documents else 0.0
        )
        return SearchStats(
            total_documents=total_documents,
            total_embeddings=total_embeddings,
            average_embeddings_per_document=average,
        )
