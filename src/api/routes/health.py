"""Liveness, readiness and latency endpoints."""

import time

from fastapi import APIRouter, Depends, Response, status

from src.api.deps import get_stats_cache
from src.api.middleware.latency_logging import get_latency_stats
from src.core.stats_cache import StatsCache
from src.core.supabase import check_database_connection
from src.schemas.common import CheckResult, HealthResponse, HealthStatus, ReadinessResponse

router = APIRouter(tags=["health"])


async def _timed_database_check() -> CheckResult:
    start_time = time.perf_counter()
    result = await check_database_connection()
    return CheckResult(
        name="database",
        healthy=result["healthy"],
        latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
        error=result.get("error"),
    )


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health_check() -> HealthResponse:
    """Always 200 while the process is up; touches no dependency."""
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "Database unreachable"}},
    summary="Readiness check",
)
async def readiness_check(
    response: Response,
    cache: StatsCache = Depends(get_stats_cache),
) -> ReadinessResponse:
    """Query the database and report the stats cache counters.

    Answers 503 when the database cannot be queried. Dashboards keep
    working from stale cache entries during an outage, which shows up as
    a growing ``stale_served`` counter.
    """
    checks = [await _timed_database_check()]
    healthy = all(check.healthy for check in checks)
    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
        checks=checks,
        cache=cache.get_stats(),
    )


@router.get("/health/latency", summary="Request latency stats")
async def latency_check() -> dict:
    """Overall and per-path latency percentiles from the latency middleware."""
    stats = get_latency_stats()
    return {"overall": stats.get_stats(), "by_path": stats.get_stats_by_path()}
