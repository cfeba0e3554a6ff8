"""
Dependency Health Checks

Probes the services the server depends on and rolls the results up into one
report:

- database: ``SELECT 1`` through the pooled engine
- storage: ``head_bucket`` on the configured bucket
- llm / embedding: configuration only (API key and model name); no paid
  call is made

A check that raises is ``unhealthy``. A check that succeeds slower than
``settings.health_slow_ms`` is ``degraded``. The overall status is the worst
individual status.
"""

from __future__ import annotations

import enum
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..config import settings
from ..storage.object_store import ObjectStore

logger = logging.getLogger("rag.health")


class HealthStatus(str, enum.Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ServiceHealth(BaseModel):
    service: str
    status: HealthStatus
    response_time_ms: int
    details: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class HealthSummary(BaseModel):
    total: int
    healthy: int
    degraded: int
    unhealthy: int


class HealthReport(BaseModel):
    status: HealthStatus
    timestamp: datetime
    services: List[ServiceHealth]
    summary: HealthSummary


def overall_status(checks: List[ServiceHealth]) -> HealthStatus:
    statuses = {check.status for check in checks}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthChecker:
    """
    Parameters
    ----------
    ping_database : Callable[[], Awaitable[None]]
        Raises when the database cannot answer a trivial query.
    objects : ObjectStore
        Storage facade whose bucket is probed.
    slow_ms : Optional[int]
        Override for ``settings.health_slow_ms``.
    """

    def __init__(
        self,
        ping_database: Callable[[], Awaitable[None]],
        objects: ObjectStore,
        slow_ms: Optional[int] = None,
    ) -> None:
        self._ping_database = ping_database
        self._objects = objects
        self._slow_ms = slow_ms if slow_ms is not None else settings.health_slow_ms

    async def _probe(
        self,
        service: str,
        probe: Callable[[], Awaitable[None]],
        details: Dict[str, Any],
    ) -> ServiceHealth:
        started = time.perf_counter()
        try:
            await probe()
        except Exception as exc:
            elapsed = int((time.perf_counter() - started) * 1000)
            logger.warning("Health check for %s failed: %s", service, exc)
            return ServiceHealth(
                service=service,
                status=HealthStatus.UNHEALTHY,
                response_time_ms=elapsed,
                details=details,
                error=type(exc).__name__,
            )

        elapsed = int((time.perf_counter() - started) * 1000)
        status = HealthStatus.DEGRADED if elapsed > self._slow_ms else HealthStatus.HEALTHY
        return ServiceHealth(
            service=service,
            status=status,
            response_time_ms=elapsed,
            details=details,
        )

    async def check_database(self) -> ServiceHealth:
        return await self._probe("database", self._ping_database, {"dialect": "postgresql"})

    async def check_storage(self) -> ServiceHealth:
        return await self._probe(
            "storage",
            self._objects.check_bucket,
            {"bucket": self._objects.bucket_name, "region": settings.aws_region},
        )

    def _check_model(self, service: str, model: str) -> ServiceHealth:
        configured = bool(settings.openai_api_key.get_secret_value())
        return ServiceHealth(
            service=service,
            status=HealthStatus.HEALTHY if configured else HealthStatus.UNHEALTHY,
            response_time_ms=0,
            details={"api_key_configured": configured, "model": model},
            error=None if configured else "API key not configured",
        )

    def check_llm(self) -> ServiceHealth:
        return self._check_model("llm", settings.chat_model)

    def check_embedding(self) -> ServiceHealth:
        return self._check_model("embedding", settings.embedding_model)

    async def report(self) -> HealthReport:
        checks = [
            await self.check_database(),
            await self.check_storage(),
            self.check_llm(),
            self.check_embedding(),
        ]
        counts = {status: 0 for status in HealthStatus}
        for check in checks:
            counts[check.status] += 1

        return HealthReport(
            status=overall_status(checks),
            timestamp=datetime.now(timezone.utc),
            services=checks,
            summary=HealthSummary(
                total=len(checks),
                healthy=counts[HealthStatus.HEALTHY],
                degraded=counts[HealthStatus.DEGRADED],
                unhealthy=counts[HealthStatus.UNHEALTHY],
            ),
        )
