"""
Courtside Booking API - Main Application Entry Point

Seat allocation and payment-deadline engine for a padel club mini-app:
- Concurrency-safe registration with a FIFO waitlist and automatic promotion
- 15-minute payment windows enforced by a background expiry sweeper
- Hosted checkout through YooKassa with webhook and poll reconciliation
- Structured logging with request correlation and Prometheus metrics
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from courtside.api.errors import register_error_handlers
from courtside.api.middleware import RequestLoggingMiddleware
from courtside.api.router import api_router
from courtside.core.config import get_settings
from courtside.core.logging import setup_logging, get_logger
from courtside.core.metrics import metrics_endpoint
from courtside.db.session import async_session_factory
from courtside.services.cache_service import get_redis, close_redis, get_cache_stats
from courtside.services.expiry_service import run_sweeper
from courtside.services.strategy_factory import close_collaborators, get_notifier, get_payment_gateway

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
        payment_gateway=get_payment_gateway().name,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Serving event listings without cache")

    sweeper_task = None
    if settings.SWEEPER_ENABLED:
        sweeper_task = asyncio.create_task(
            run_sweeper(async_session_factory, settings.SWEEP_INTERVAL_SECONDS, get_notifier)
        )

    yield

    if sweeper_task is not None:
        sweeper_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper_task
    await close_collaborators()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Seat allocation, waitlist and payment-deadline engine for club events",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Telegram web app origins vary
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_error_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
        "sweeper": settings.SWEEPER_ENABLED,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_endpoint()
