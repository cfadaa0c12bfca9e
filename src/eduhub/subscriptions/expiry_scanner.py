"""Subscription expiry sweep.

Finds active subscriptions whose current period ends within the warning
window and sends a `subscription_expiring` notification to those sitting on a
warning threshold. One invocation is one pass; scheduling lives in the arq
worker and the cron-triggered endpoint.

Without `dedupe`, running the sweep twice on the same day warns twice. With
it, a marker row per (subscription, threshold, period end) is written in the
same transaction as the notification and already-marked warnings are skipped.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.config import get_settings
from eduhub.database import get_session_factory
from eduhub.db.models import Subscription, SubscriptionExpiryNotice
from eduhub.db.upsert import insert_ignore_conflict
from eduhub.email.service import get_email_service
from eduhub.notifications.service import dispatch_notifications
from eduhub.tasks.outbox import Outbox

logger = structlog.get_logger()

NOTIFICATION_TITLE = "Subscription Expiring Soon ⏰"
RENEW_PATH = "/subscriptions"
SECONDS_PER_DAY = 86400


@dataclass
class ScanResult:
    total: int = 0
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; stored values are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_until(period_end: datetime, now: datetime) -> int:
    """Whole days left, rounded up: 2h left is 1 day, 49h left is 3 days."""
    return math.ceil((as_utc(period_end) - now).total_seconds() / SECONDS_PER_DAY)


def warning_threshold(days: int, thresholds: Iterable[int]) -> int | None:
    """Threshold bucket for `days`, or None when no warning is due.

    Anything at or under a day counts as the last-day warning, when 1 is configured.
    """
    levels = set(thresholds)
    bucket = 1 if days <= 1 else days
    return bucket if bucket in levels else None


def expiry_message(product_title: str, days: int) -> str:
    if days <= 1:
        return f'Your subscription for "{product_title}" expires today! Renew now to continue access.'
    if days <= 3:
        return f'Your subscription for "{product_title}" expires in {days} days. Renew now to continue access.'
    return f'Your subscription for "{product_title}" expires in {days} days.'


def _title_for(subscription: Subscription) -> str:
    return subscription.product_title or f"your {subscription.product_kind}"


async def _claim_notice(db: AsyncSession, subscription_id: str, period_end: datetime, threshold: int) -> bool:
    return await insert_ignore_conflict(
        db,
        SubscriptionExpiryNotice,
        {
            "subscription_id": subscription_id,
            "threshold_days": threshold,
            "period_end": period_end,
            "sent_at": datetime.now(timezone.utc),
        },
        conflict_columns=["subscription_id", "threshold_days", "period_end"],
    )


async def _email_reminder(user_id: str, product_title: str, days: int) -> bool:
    service = get_email_service()
    async with get_session_factory()() as db:
        return await service.send_to_user(
            db,
            user_id,
            "subscription_expiring",
            {"product_title": product_title, "days_left": days, "renew_url": service.url(RENEW_PATH)},
        )


async def find_expiring(db: AsyncSession, now: datetime, window_days: int) -> list[Subscription]:
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.status == "active",
            Subscription.current_period_end > now,
            Subscription.current_period_end <= now + timedelta(days=window_days),
        )
        .order_by(Subscription.current_period_end)
    )
    return list(result.scalars().all())


async def scan_expiring_subscriptions(
    db: AsyncSession,
    now: datetime | None = None,
    thresholds: Iterable[int] | None = None,
    dedupe: bool | None = None,
    outbox: Outbox | None = None,
) -> ScanResult:
    """Run one sweep. Each subscription commits on its own; one failure does not stop the rest.

    When `outbox` is given, a reminder email is queued for every notification sent.
    """
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    levels = sorted(set(thresholds if thresholds is not None else settings.expiry_warning_days))
    dedupe = settings.expiry_scan_dedupe if dedupe is None else dedupe

    subscriptions = await find_expiring(db, now, max(levels, default=1))
    result = ScanResult(total=len(subscriptions))

    # Rollback expires loaded rows, so read everything needed up front.
    due = [(s.id, s.user_id, s.current_period_end, _title_for(s)) for s in subscriptions]

    for sub_id, user_id, period_end, title in due:
        days = days_until(period_end, now)
        threshold = warning_threshold(days, levels)
        if threshold is None:
            continue

        try:
            if dedupe and not await _claim_notice(db, sub_id, period_end, threshold):
                result.skipped.append(sub_id)
                continue
            created = await dispatch_notifications(
                db,
                user_id,
                "subscription_expiring",
                NOTIFICATION_TITLE,
                expiry_message(title, days),
                link=RENEW_PATH,
                related_id=sub_id,
                related_type="subscription",
            )
            await db.commit()
        except (SQLAlchemyError, TimeoutError, OSError) as e:
            await db.rollback()
            logger.error(
                "expiry_notification_failed",
                subscription_id=sub_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            result.failed.append(sub_id)
            continue

        if not created:
            result.skipped.append(sub_id)
            continue

        result.sent.append(sub_id)
        if outbox is not None:
            outbox.submit(
                "subscription_expiring_email",
                lambda user_id=user_id, title=title, days=days: _email_reminder(user_id, title, days),
            )

    logger.info(
        "expiry_scan_completed",
        total=result.total,
        sent=len(result.sent),
        failed=len(result.failed),
        skipped=len(result.skipped),
        dedupe=dedupe,
    )
    return result
