"""Notification creation and read-state service.

`dispatch_notifications` is the single write path every feature uses
(purchases, subscription reminders, course publication, forum replies, ...).
It filters recipients by preference and batch-inserts one row per recipient.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.db.models import Notification
from eduhub.errors import NotFound
from eduhub.notifications.preferences import filter_recipients

logger = structlog.get_logger()

NOTIFICATION_TYPES = frozenset({
    "course_added",
    "course_published",
    "lesson_added",
    "quiz_graded",
    "assignment_feedback",
    "message_received",
    "meeting_scheduled",
    "certificate_earned",
    "course_completed",
    "subscription_renewal",
    "subscription_expiring",
    "payment_received",
    "forum_reply",
    "announcement",
    "system",
})


def normalize_recipients(user_ids: str | Iterable[str]) -> list[str]:
    """Accept a single id or an iterable; drop blanks and duplicates, keep order."""
    if isinstance(user_ids, str):
        user_ids = [user_ids]
    return list(dict.fromkeys(uid for uid in user_ids if uid))


async def dispatch_notifications(
    db: AsyncSession,
    user_ids: str | Iterable[str],
    type_: str,
    title: str,
    message: str,
    link: str | None = None,
    related_id: str | None = None,
    related_type: str | None = None,
) -> list[Notification]:
    """Create notifications for every recipient whose preferences allow `type_`.

    Returns the created rows; an empty list means nobody was notified and
    nothing was written. The caller owns the transaction.
    """
    if type_ not in NOTIFICATION_TYPES:
        raise ValueError(f"Invalid notification type: {type_}")

    recipients = normalize_recipients(user_ids)
    allowed = await filter_recipients(db, recipients, type_)
    if not allowed:
        logger.info("notification_dispatch", type=type_, requested=len(recipients), created=0)
        return []

    now = datetime.now(timezone.utc)
    rows = [
        Notification(
            user_id=uid,
            type=type_,
            title=title,
            message=message,
            link=link,
            related_id=related_id,
            related_type=related_type,
            read=False,
            created_at=now,
        )
        for uid in allowed
    ]
    db.add_all(rows)
    await db.flush()

    logger.info("notification_dispatch", type=type_, requested=len(recipients), created=len(rows))
    return rows


async def get_notifications(
    db: AsyncSession,
    user_id: str,
    limit: int = 50,
    unread_only: bool = False,
) -> list[Notification]:
    """Get a user's notifications, most recent first."""
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def get_unread_count(db: AsyncSession, user_id: str) -> int:
    """Get count of unread notifications."""
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
    )
    return result.scalar_one()


async def mark_as_read(db: AsyncSession, user_id: str, notification_id: str) -> None:
    """Mark one of the user's notifications as read."""
    found = await db.execute(
        select(Notification.id).where(Notification.id == notification_id, Notification.user_id == user_id)
    )
    if found.scalar_one_or_none() is None:
        raise NotFound("Notification not found")

    await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.read.is_(False))
        .values(read=True, read_at=datetime.now(timezone.utc))
    )
    await db.flush()


async def mark_all_as_read(db: AsyncSession, user_id: str) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True, read_at=datetime.now(timezone.utc))
    )
    await db.flush()
    return result.rowcount


async def delete_notification(db: AsyncSession, user_id: str, notification_id: str) -> None:
    """Delete one of the user's notifications."""
    result = await db.execute(
        delete(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    )
    if result.rowcount == 0:
        raise NotFound("Notification not found")
    await db.flush()
