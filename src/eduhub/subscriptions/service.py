"""Subscription cancel / resume."""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.db.models import Subscription
from eduhub.errors import InvalidInput, NotFound

logger = structlog.get_logger()


async def get_user_subscription(db: AsyncSession, user_id: str, subscription_id: str) -> Subscription:
    result = await db.execute(
        select(Subscription).where(Subscription.id == subscription_id, Subscription.user_id == user_id)
    )
    subscription = result.scalar_one_or_none()
    if subscription is None:
        raise NotFound("Subscription not found")
    return subscription


async def set_cancel_at_period_end(
    db: AsyncSession,
    user_id: str,
    subscription_id: str,
    cancel: bool,
) -> Subscription:
    """Schedule (or unschedule) cancellation at the end of the current period."""
    subscription = await get_user_subscription(db, user_id, subscription_id)
    if subscription.status != "active":
        raise InvalidInput(f"Subscription is {subscription.status}")

    subscription.cancel_at_period_end = cancel
    await db.flush()
    logger.info(
        "subscription_cancel_flag_set",
        subscription_id=subscription_id,
        cancel_at_period_end=cancel,
    )
    return subscription
