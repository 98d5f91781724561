"""Request latency logging and the in-memory samples behind /health/latency."""

import logging
import re
import time
from collections import defaultdict, deque
from typing import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 1000
VERY_SLOW_REQUEST_THRESHOLD_MS = 3000

HEALTH_PATHS = frozenset({"/health", "/health/ready", "/health/latency"})

_UUID_PATTERN = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)


def _percentile(ordered: list[float], fraction: float) -> float:
    return ordered[min(int(len(ordered) * fraction), len(ordered) - 1)]


def _summarize(latencies: list[float]) -> dict:
    ordered = sorted(latencies)
    total = len(ordered)
    return {
        "total_requests": total,
        "avg_latency_ms": round(sum(ordered) / total, 2),
        "p50_latency_ms": round(_percentile(ordered, 0.5), 2),
        "p95_latency_ms": round(_percentile(ordered, 0.95), 2),
        "p99_latency_ms": round(_percentile(ordered, 0.99), 2),
    }


def normalize_path(path: str) -> str:
    """Collapse record ids so /orders/<uuid>/payments groups as one path."""
    return _UUID_PATTERN.sub("{id}", path)


class LatencyStats:
    """Rolling window of the most recent request latencies."""

    def __init__(self, max_samples: int = 1000):
        self._samples: deque[tuple[str, float, int]] = deque(maxlen=max_samples)

    def record(self, path: str, latency_ms: float, status_code: int = 200) -> None:
        self._samples.append((normalize_path(path), latency_ms, status_code))

    def get_stats(self) -> dict:
        """Percentiles over every recorded request."""
        if not self._samples:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0,
                "p50_latency_ms": 0,
                "p95_latency_ms": 0,
                "p99_latency_ms": 0,
            }
        return _summarize([latency for _, latency, _ in self._samples])

    def get_stats_by_path(self) -> dict:
        """Percentiles and server error counts per normalized path."""
        latencies: dict[str, list[float]] = defaultdict(list)
        errors: dict[str, int] = defaultdict(int)
        for path, latency, status_code in self._samples:
            latencies[path].append(latency)
            if status_code >= 500:
                errors[path] += 1
        return {path: {**_summarize(values), "server_errors": errors[path]} for path, values in latencies.items()}


_latency_stats: LatencyStats | None = None


def get_latency_stats() -> LatencyStats:
    """Get or create the process-wide latency stats."""
    global _latency_stats
    if _latency_stats is None:
        _latency_stats = LatencyStats()
    return _latency_stats


def _log_request(method: str, path: str, status_code: int, latency_ms: float, failed: bool) -> None:
    message = "%s %s - %d - %.2fms"
    args = (method, path, status_code, latency_ms)
    if path in HEALTH_PATHS:
        if latency_ms > 100:
            logger.debug(message, *args)
    elif failed or status_code >= 500:
        logger.error(message, *args)
    elif latency_ms > VERY_SLOW_REQUEST_THRESHOLD_MS:
        logger.error("VERY SLOW REQUEST: " + message, *args)
    elif latency_ms > SLOW_REQUEST_THRESHOLD_MS:
        logger.warning("SLOW REQUEST: " + message, *args)
    elif status_code >= 400:
        logger.warning(message, *args)
    else:
        logger.info(message, *args)


async def latency_logging_with_stats_middleware(request: Request, call_next: Callable) -> Response:
    """Time each request, log it and record it for /health/latency.

    Health checks are not recorded. The elapsed time is returned in an
    ``X-Response-Time-Ms`` header.
    """
    start_time = time.perf_counter()
    path = request.url.path
    response: Response | None = None
    failed = False

    try:
        response = await call_next(request)
        return response
    except Exception:
        failed = True
        raise
    finally:
        latency_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code if response is not None else 500
        if path not in HEALTH_PATHS:
            get_latency_stats().record(path, latency_ms, status_code)
        if response is not None:
            response.headers["X-Response-Time-Ms"] = f"{latency_ms:.2f}"
        _log_request(request.method, path, status_code, latency_ms, failed)
