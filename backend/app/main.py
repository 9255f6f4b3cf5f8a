"""
Emote Rotation API - Main Application Entry Point

Installs redeemed emotes into a channel's fixed set of provider slots:
- Eviction of the oldest emote this service added, random fallback when full
- Evict-then-install commit with partial failures surfaced, never hidden
- Per-channel serialization (asyncio or redis locks), channels run in parallel
- Structured logging with request/channel correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI

from app.core.config import get_settings
from app.core.logging import setup_logging, get_logger
from app.core.metrics import metrics_endpoint
from app.api.router import api_router
from app.api.middleware import RequestLoggingMiddleware
from app.db.session import dispose_engine, get_session_factory
from app.infrastructure.redis_client import close_redis, get_redis_status
from app.services.strategy_factory import build_orchestrator, close_orchestrator

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        lock_backend=settings.TENANT_LOCK_BACKEND,
    )

    app.state.orchestrator = await build_orchestrator(get_session_factory(), settings)
    logger.info("orchestrator_ready", provider=settings.EMOTE_PROVIDER_URL)

    yield

    await close_orchestrator(app.state.orchestrator)
    app.state.orchestrator = None
    await close_redis()
    await dispose_engine()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Channel emote rotation with bounded slots and per-channel serialization",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "lock_backend": settings.TENANT_LOCK_BACKEND,
        "redis": await get_redis_status(),
    }


@app.get("/metrics", tags=["Health"])
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
