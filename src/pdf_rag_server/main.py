"""
RAG Server Application Entry Point

Builds the FastAPI app: logging setup, domain and fallback exception
handlers, routers, and the per-app token revocation list. Tests build their
own instance through create_app() or override dependencies on ``app``.
"""

from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth.revocation import TokenRevocationList
from .config import settings
from .core.errors import (
    RagError,
    http_exception_handler,
    rag_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from .db.session import dispose_engine

from .api import (
    auth_routes,
    chat_routes,
    document_routes,
    health_routes,
    search_routes,
)


logger = logging.getLogger("rag.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Fail-fast validation at startup and connection cleanup at shutdown.
    """
    logger.info("Starting pdf-rag-server")

    # Touch critical secrets to force validation now (not at first use)
    _ = settings.openai_api_key.get_secret_value()
    _ = settings.jwt_secret.get_secret_value()

    logger.info("Configuration validated successfully")

    yield

    logger.info("Shutting down pdf-rag-server")
    await dispose_engine()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="pdf-rag-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Revoked tokens live for the lifetime of this app instance
    app.state.revocations = TokenRevocationList()

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(RagError, rag_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(auth_routes.router)
    app.include_router(document_routes.router)
    app.include_router(search_routes.router)
    app.include_router(chat_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
