"""
Health Routes

``/health`` is a static liveness answer. The ``/health/*`` routes probe the
database and object storage and are meant for readiness checks. None of them
require a token.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from .dependencies import get_health_checker
from .models import ApiResponse
from ..config import settings
from ..core.health import HealthChecker, HealthReport, HealthStatus, ServiceHealth

router = APIRouter(tags=["health"])

_REPORT_STATUS_CODES = {
    HealthStatus.HEALTHY: 200,
    HealthStatus.DEGRADED: 207,
    HealthStatus.UNHEALTHY: 503,
}


@router.get("/health", response_model=ApiResponse[dict])
def health():
    return ApiResponse(
        message="Service is running",
        data={
            "status": "ok",
            "chat_model": settings.chat_model,
            "embedding_model": settings.embedding_model,
        },
    )


@router.get("/health/status", response_model=ApiResponse[HealthReport])
async def health_status(
    response: Response,
    checker: Annotated[HealthChecker, Depends(get_health_checker)],
) -> ApiResponse[HealthReport]:
    report = await checker.report()
    response.status_code = _REPORT_STATUS_CODES[report.status]
    return ApiResponse(
        success=report.status is not HealthStatus.UNHEALTHY,
        message=f"System is {report.status.value}",
        data=report,
    )


def _single(response: Response, check: ServiceHealth, label: str) -> ApiResponse[ServiceHealth]:
    ok = check.status is not HealthStatus.UNHEALTHY
    response.status_code = 200 if ok else 503
    return ApiResponse(success=ok, message=f"{label} is {check.status.value}", data=check)


@router.get("/health/database", response_model=ApiResponse[ServiceHealth])
async def database_health(
    response: Response,
    checker: Annotated[HealthChecker, Depends(get_health_checker)],
) -> ApiResponse[ServiceHealth]:
    return _single(response, await checker.check_database(), "Database")


@router.get("/health/storage", response_model=ApiResponse[ServiceHealth])
async def storage_health(
    response: Response,
    checker: Annotated[HealthChecker, Depends(get_health_checker)],
) -> ApiResponse[ServiceHealth]:
    return _single(response, await checker.check_storage(), "Object storage")
