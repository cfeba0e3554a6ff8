"""
Document Routes

Ingestion and management of PDF documents that already live in object
storage.

Endpoints
---------
- POST   /documents/process      ingest one stored file
- GET    /documents              list documents with embedding counts
- GET    /documents/{id}         one document with its page embeddings
- GET    /documents/{id}/status  processing status only
- DELETE /documents/{id}         delete records and the stored file
"""

from __future__ import annotations

from typing import Annotated, List

from fastapi import APIRouter, Depends, status

from .dependencies import get_document_service, get_ingestion_pipeline
from .models import (
    ApiResponse,
    DocumentDeletedOut,
    DocumentDetailOut,
    DocumentOut,
    DocumentStatusOut,
    EmbeddingOut,
    ProcessDocumentData,
    ProcessDocumentRequest,
)
from ..auth.models import UserContext
from ..auth.security import verify_jwt
from ..db.models import Document
from ..ingestion.documents import DocumentService
from ..ingestion.pipeline import IngestionPipeline

router = APIRouter(prefix="/documents", tags=["documents"])


def _document_out(document: Document, embedding_count: int, url: str) -> dict:
    return dict(
        id=document.id,
        name=document.name,
        storage_key=document.storage_key,
        content_type=document.content_type,
        file_size=document.file_size,
        total_pages=document.total_pages,
        processing_status=document.processing_status.value,
        processing_error=document.processing_error,
        embedding_count=embedding_count,
        url=url,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )


@router.post(
    "/process",
    response_model=ApiResponse[ProcessDocumentData],
    status_code=status.HTTP_201_CREATED,
    summary="Ingest a PDF already uploaded to storage",
)
async def process_document(
    req: ProcessDocumentRequest,
    user: Annotated[UserContext, Depends(verify_jwt)],
    pipeline: Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)],
) -> ApiResponse[ProcessDocumentData]:
    result = await pipeline.ingest(
        storage_key=req.storage_key,
        name=req.name,
        content_type=req.content_type,
        file_size=req.file_size,
        owner_id=user.user_id,
    )

    return ApiResponse(
        message="Document processed successfully",
        data=ProcessDocumentData(
            document_id=result.document.id,
            name=result.document.name,
            total_pages=result.total_pages,
            embeddings_created=result.embeddings_created,
            processing_status=result.document.processing_status.value,
        ),
    )


@router.get("", response_model=ApiResponse[List[DocumentOut]])
async def list_documents(
    user: Annotated[UserContext, Depends(verify_jwt)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> ApiResponse[List[DocumentOut]]:
    rows = await service.list_documents()
    documents = [
        DocumentOut(**_document_out(document, count, service.url_for(document)))
        for document, count in rows
    ]
    return ApiResponse(
        message=f"Retrieved {len(documents)} documents",
        data=documents,
    )


@router.get("/{document_id}", response_model=ApiResponse[DocumentDetailOut])
async def get_document(
    document_id: int,
    user: Annotated[UserContext, Depends(verify_jwt)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> ApiResponse[DocumentDetailOut]:
    document = await service.get_document(document_id)
    embeddings = [
        EmbeddingOut(
            id=embedding.id,
            page_number=embedding.page_number,
            token_count=embedding.token_count,
            content=embedding.content,
        )
        for embedding in document.embeddings
    ]
    return ApiResponse(
        message="Document retrieved successfully",
        data=DocumentDetailOut(
            **_document_out(document, len(embeddings), service.url_for(document)),
            embeddings=embeddings,
        ),
    )


@router.get("/{document_id}/status", response_model=ApiResponse[DocumentStatusOut])
async def get_document_status(
    document_id: int,
    user: Annotated[UserContext, Depends(verify_jwt)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> ApiResponse[DocumentStatusOut]:
    document, count = await service.get_status(document_id)
    return ApiResponse(
        message="Document status retrieved successfully",
        data=DocumentStatusOut(
            id=document.id,
            name=document.name,
            processing_status=document.processing_status.value,
            processing_error=document.processing_error,
            total_pages=document.total_pages,
            embedding_count=count,
        ),
    )


@router.delete("/{document_id}", response_model=ApiResponse[DocumentDeletedOut])
async def delete_document(
    document_id: int,
    user: Annotated[UserContext, Depends(verify_jwt)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> ApiResponse[DocumentDeletedOut]:
    result = await service.delete_document(document_id)
    return ApiResponse(
        message=result.message,
        data=DocumentDeletedOut(
            deleted_embeddings=result.deleted_embeddings,
            storage_deleted=result.storage_deleted,
        ),
    )
