"""
Search Routes

Semantic search over the caller's ingested documents.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_retrieval_engine
from .models import ApiResponse, SearchData, SearchRequest
from ..auth.models import UserContext
from ..auth.security import verify_jwt
from ..retrieval.engine import RetrievalEngine, SearchStats, format_context

router = APIRouter(prefix="/search", tags=["search"])


@router.post("", response_model=ApiResponse[SearchData])
async def search(
    req: SearchRequest,
    user: Annotated[UserContext, Depends(verify_jwt)],
    engine: Annotated[RetrievalEngine, Depends(get_retrieval_engine)],
) -> ApiResponse[SearchData]:
    found = await engine.search(
        req.query,
        limit=req.limit,
        similarity_threshold=req.similarity_threshold,
        owner_id=user.user_id,
    )

    return ApiResponse(
        message=f"Found {found.total_results} relevant passages",
        data=SearchData(
            query=found.query,
            results=found.results,
            total_results=found.total_results,
            context=format_context(found.results),
        ),
    )


@router.get("/stats", response_model=ApiResponse[SearchStats])
async def search_stats(
    user: Annotated[UserContext, Depends(verify_jwt)],
    engine: Annotated[RetrievalEngine, Depends(get_retrieval_engine)],
) -> ApiResponse[SearchStats]:
    stats = await engine.stats(owner_id=user.user_id)
    return ApiResponse(message="Search statistics retrieved successfully", data=stats)
