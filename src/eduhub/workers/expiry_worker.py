"""Subscription expiry arq worker.

Runs the expiry sweep once a day. The same sweep is reachable over HTTP at
``/subscriptions/expiring-check`` for external schedulers.
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from eduhub.config import get_settings
from eduhub.database import close_db, get_session_factory, init_db
from eduhub.middleware.logging import setup_logging
from eduhub.subscriptions.expiry_scanner import scan_expiring_subscriptions
from eduhub.tasks.outbox import Outbox

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB connections and the worker's outbox."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url, command_timeout=settings.db_command_timeout_seconds)
    ctx["outbox"] = Outbox.from_settings(settings)
    logger.info("Expiry worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Flush queued emails and release connections."""
    outbox: Outbox | None = ctx.get("outbox")
    if outbox is not None:
        await outbox.drain()
    await close_db()
    logger.info("Expiry worker shut down")


async def expiring_subscriptions_sweep(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Scheduled arq task: warn users whose subscriptions are about to lapse."""
    outbox: Outbox = ctx["outbox"]
    async with get_session_factory()() as db:
        result = await scan_expiring_subscriptions(db, outbox=outbox)
    await outbox.drain()

    logger.info(
        "Expiry sweep complete: %d due, %d sent, %d failed, %d skipped",
        result.total, len(result.sent), len(result.failed), len(result.skipped),
    )
    return {
        "total": result.total,
        "sent": len(result.sent),
        "failed": len(result.failed),
        "skipped": len(result.skipped),
    }


class ExpiryWorkerSettings:
    """arq worker settings for the expiry scheduler."""

    functions = [expiring_subscriptions_sweep]
    cron_jobs = [
        cron(expiring_subscriptions_sweep, hour={8}, minute={0}, run_at_startup=False, unique=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 1
    job_timeout = 600
