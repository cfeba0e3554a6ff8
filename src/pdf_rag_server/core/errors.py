"""
Error Taxonomy and Global Error Handling

This module defines the domain exception hierarchy shared by the ingestion,
retrieval and chat layers, together with the FastAPI exception handlers that
turn those exceptions into response envelopes.

Design Goals
------------
- Clients see a fixed public message per error class, never exception text
- Every failure uses the same envelope as successful responses
- Server-side failures are logged with their traceback
- Keep domain code framework-agnostic (no HTTPException below the API layer)
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("rag.errors")


# ---------------------------------------------------------------------
# Exception Hierarchy
# ---------------------------------------------------------------------

class RagError(RuntimeError):
    """Base class for all domain errors raised by the server."""

    status_code: int = 500
    public_message: str = "Internal server error"


class ValidationError(RagError):
    """Bad input shape or type. No state has been mutated."""

    status_code = 400
    public_message = "Invalid request"


class UnsupportedContentType(ValidationError):
    """Raised when a non-PDF document is submitted for ingestion."""

    public_message = "Only PDF files are supported"


class NotFoundError(RagError):
    """Referenced record is absent or not owned by the caller."""

    status_code = 404
    public_message = "Resource not found"


class DocumentNotFound(NotFoundError):
    public_message = "Document not found"


class ChatNotFound(NotFoundError):
    public_message = "Chat not found or access denied"


class OwnerNotFound(NotFoundError):
    public_message = "User not found"


class ConflictError(RagError):
    status_code = 409
    public_message = "Resource already exists"


class DuplicateStorageKey(ConflictError):
    """A document with the same storage key has already been ingested."""

    public_message = "A document with this storage key already exists"


class InvalidStatusTransition(RagError):
    """Raised when a document status change would move backwards."""


class SourceNotFound(RagError):
    """The declared storage key has no backing object."""


class ExtractionError(RagError):
    """The source content could not be parsed as a PDF."""


class DimensionMismatch(RagError):
    """Two vectors of different lengths were compared."""


class StorageError(RagError):
    """Object storage call failed."""


class GatewayError(RagError):
    """A remote model provider call failed."""

    status_code = 502
    public_message = "Upstream model provider failed"


class EmbeddingError(GatewayError):
    """Raised when embedding generation fails."""


class CompletionError(GatewayError):
    """Raised when chat completion fails."""


class ProcessingFailed(RagError):
    """
    Raised when document ingestion fails after the Document row exists.

    The Document has already been marked ``failed`` with the error text when
    this is raised.
    """

    status_code = 422
    public_message = "Document processing failed"

    def __init__(self, message: str, document_id: int | None = None) -> None:
        super().__init__(message)
        self.document_id = document_id


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

def _envelope(message: str) -> Dict[str, Any]:
    return {"success": False, "message": message, "data": None}


async def rag_error_handler(
    request: Request,
    exc: RagError,
) -> JSONResponse:
    """
    Convert a domain error into a failure envelope.

    Client errors (4xx) carry the error's public message; server-side
    failures are logged with their traceback.
    """
    if exc.status_code >= 500:
        logger.exception(
            "Domain error during request: %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
    else:
        logger.info(
            "Request rejected (%s): %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(exc.public_message),
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Wrap framework HTTP errors (401 from auth, 404 routing) in the envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Reject malformed request bodies with 400.

    Only the failing field locations are reported, never the submitted values.
    """
    fields = sorted(
        {".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
         for error in exc.errors()}
    )
    return JSONResponse(
        status_code=400,
        content=_envelope(f"Invalid request: {', '.join(fields)}"),
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Last-resort handler for exceptions no other handler claimed.

    The traceback goes to the log; the client only sees a generic failure
    envelope with status 500.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content=_envelope("Internal server error"),
    )
