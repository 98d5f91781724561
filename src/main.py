"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import error_handler_middleware
from src.api.middleware.latency_logging import latency_logging_with_stats_middleware
from src.api.routes import admin, debts, health, orders, plans, shops, subscriptions
from src.core.config import get_settings
from src.core.stats_cache import StatsCache, StatsCacheConfig

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Ledger routers first, then billing
API_V1_ROUTERS = (orders, debts, shops, subscriptions, plans, admin)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Own the stats cache for the lifetime of the process.

    The cache and its periodic cleanup task are created on startup and the
    task is cancelled on shutdown.
    """
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    config = StatsCacheConfig.from_settings()
    cache = StatsCache(config)
    app.state.stats_cache = cache
    await cache.start_cleanup_task()
    logger.info(
        "Stats cache ready (max %d entries, ttl %ss, stale kept %ss)",
        config.max_size,
        config.default_ttl_seconds,
        config.stale_retention_seconds,
    )

    yield

    await cache.stop_cleanup_task()
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Build the application with its middleware and routers."""
    settings = get_settings()

    app = FastAPI(
        title="Shop Ledger API",
        description="Order payments, customer debts and subscription billing for shops",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After", "X-Response-Time-Ms"],
    )
    # Added last runs first: latency timing wraps the error handler's response
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)
    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_with_stats_middleware)

    app.include_router(health.router)

    api_v1_router = APIRouter(prefix="/api/v1")
    for module in API_V1_ROUTERS:
        api_v1_router.include_router(module.router)
    app.include_router(api_v1_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
