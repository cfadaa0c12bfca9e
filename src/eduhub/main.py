"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from eduhub.config import get_settings
from eduhub.database import close_db, init_db
from eduhub.health.router import router as health_router
from eduhub.middleware import setup_middleware
from eduhub.notifications.router import router as notifications_router
from eduhub.payments.router import router as payments_router
from eduhub.payments.router import webhook_router
from eduhub.purchases.router import router as purchases_router
from eduhub.redis_client import close_redis, init_redis
from eduhub.subscriptions.router import router as subscriptions_router
from eduhub.tasks.outbox import close_outbox, init_outbox

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url, command_timeout=settings.db_command_timeout_seconds)
    if settings.redis_url:
        await init_redis(settings.redis_url)
    init_outbox(settings)
    logger.info("app_started", environment=settings.environment, version=settings.app_version)

    yield

    # Let queued notifications and emails finish before the pools go away.
    await close_outbox()
    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="EduHub API",
        description="Purchases, entitlements, notifications and subscription reminders for EduHub",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(purchases_router)
    app.include_router(payments_router)
    app.include_router(webhook_router)
    app.include_router(notifications_router)
    app.include_router(subscriptions_router)

    return app


app = create_app()
