"""Notification preference filtering.

A user without a settings row receives everything. With a row, a notification
is dropped when its category flag is explicitly False, or when the global
`email_notifications` flag is explicitly False. NULL flags never block.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.db.models import UserSettings

# Notification type → preference category column
CATEGORY_MAP = {
    "course_published": "course_updates",
    "lesson_added": "course_updates",
    "course_added": "course_updates",
    "message_received": "new_messages",
    "meeting_scheduled": "meeting_reminders",
    "forum_reply": "forum_notifications",
    "announcement": "forum_notifications",
    "assignment_feedback": "achievement_alerts",
    "quiz_graded": "achievement_alerts",
    "subscription_expiring": "reminder_emails",
    "subscription_renewal": "reminder_emails",
}


def category_for(notification_type: str) -> str | None:
    """Preference category for a notification type, None when unmapped."""
    return CATEGORY_MAP.get(notification_type)


def should_deliver(settings: UserSettings | None, notification_type: str) -> bool:
    """Check whether one user's settings allow a notification type."""
    if settings is None:
        return True

    category = category_for(notification_type)
    if category is not None and getattr(settings, category) is False:
        return False

    return settings.email_notifications is not False


async def get_preferences(db: AsyncSession, user_ids: Iterable[str]) -> dict[str, UserSettings]:
    """Batch-fetch settings rows keyed by user id. Users without a row are absent."""
    ids = list(user_ids)
    if not ids:
        return {}
    result = await db.execute(select(UserSettings).where(UserSettings.user_id.in_(ids)))
    return {row.user_id: row for row in result.scalars().all()}


async def filter_recipients(db: AsyncSession, user_ids: Iterable[str], notification_type: str) -> list[str]:
    """Return the subset of `user_ids` that accept `notification_type`, input order kept."""
    ids = list(dict.fromkeys(user_ids))
    preferences = await get_preferences(db, ids)
    return [uid for uid in ids if should_deliver(preferences.get(uid), notification_type)]
