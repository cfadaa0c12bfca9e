"""Pydantic schemas for notification endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field, model_validator

from eduhub.schemas import CamelModel

NotificationType = Literal[
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
]


class CreateNotificationRequest(CamelModel):
    user_id: str | None = Field(None, min_length=1, max_length=64)
    user_ids: list[str] | None = None
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=256)
    message: str = Field(..., min_length=1)
    link: str | None = Field(None, max_length=512)
    related_id: str | None = Field(None, max_length=64)
    related_type: str | None = Field(None, max_length=32)

    @model_validator(mode="after")
    def _require_recipients(self) -> CreateNotificationRequest:
        if not self.recipients():
            raise ValueError("userId or userIds is required")
        return self

    def recipients(self) -> list[str]:
        ids = list(self.user_ids or [])
        if self.user_id:
            ids.append(self.user_id)
        return list(dict.fromkeys(uid for uid in ids if uid))


class NotificationResponse(CamelModel):
    id: str
    user_id: str
    type: str
    title: str
    message: str
    link: str | None = None
    related_id: str | None = None
    related_type: str | None = None
    read: bool
    read_at: datetime | None = None
    created_at: datetime


class DispatchResponse(CamelModel):
    notifications: list[NotificationResponse]
    count: int


class NotificationListResponse(CamelModel):
    notifications: list[NotificationResponse]
    unread_count: int


class UnreadCountResponse(CamelModel):
    unread_count: int
