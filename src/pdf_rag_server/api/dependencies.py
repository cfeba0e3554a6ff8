from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.security import get_revocation_list
from ..chat.orchestrator import ChatOrchestrator
from ..core.health import HealthChecker
from ..db import ChatStore, DocumentStore, get_async_session, ping_database
from ..embeddings.embedder import Embedder
from ..ingestion.documents import DocumentService
from ..ingestion.pipeline import IngestionPipeline
from ..llm.client import LLMClient
from ..retrieval.engine import RetrievalEngine
from ..storage.object_store import ObjectStore

__all__ = [
    "get_llm_client",
    "get_embedder",
    "get_object_store",
    "get_document_store",
    "get_chat_store",
    "get_ingestion_pipeline",
    "get_document_service",
    "get_retrieval_engine",
    "get_chat_orchestrator",
    "get_health_checker",
    "get_revocation_list",
]


# Stateless gateway clients are shared across requests

@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


@lru_cache
def get_object_store() -> ObjectStore:
    return ObjectStore()


# Stores wrap the per-request session

def get_document_store(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> DocumentStore:
    return DocumentStore(session)


def get_chat_store(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> ChatStore:
    return ChatStore(session)


def get_ingestion_pipeline(
    store: Annotated[DocumentStore, Depends(get_document_store)],
    objects: Annotated[ObjectStore, Depends(get_object_store)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> IngestionPipeline:
    return IngestionPipeline(store, objects, embedder)


def get_document_service(
    store: Annotated[DocumentStore, Depends(get_document_store)],
    objects: Annotated[ObjectStore, Depends(get_object_store)],
) -> DocumentService:
    return DocumentService(store, objects)


def get_retrieval_engine(
    store: Annotated[DocumentStore, Depends(get_document_store)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> RetrievalEngine:
    return RetrievalEngine(store, embedder)


def get_chat_orchestrator(
    store: Annotated[ChatStore, Depends(get_chat_store)],
    llm: Annotated[LLMClient, Depends(get_llm_client)],
    retrieval: Annotated[RetrievalEngine, Depends(get_retrieval_engine)],
) -> ChatOrchestrator:
    return ChatOrchestrator(store, llm, retrieval)


def get_health_checker(
    objects: Annotated[ObjectStore, Depends(get_object_store)],
) -> HealthChecker:
    return HealthChecker(ping_database, objects)
