"""Notification API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.auth.dependencies import Caller, get_caller, get_current_user_id
from eduhub.database import commit_or_raise, get_session
from eduhub.notifications.schemas import (
    CreateNotificationRequest,
    DispatchResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from eduhub.notifications.service import (
    delete_notification,
    dispatch_notifications,
    get_notifications,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
)
from eduhub.schemas import SuccessResponse

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.post("", response_model=DispatchResponse)
async def create_notifications(
    body: CreateNotificationRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    """Create notifications for one or many users, honoring their preferences."""
    recipients = body.recipients()
    for user_id in recipients:
        caller.ensure_can_act_for(user_id)

    created = await dispatch_notifications(
        db,
        recipients,
        body.type,
        body.title,
        body.message,
        link=body.link,
        related_id=body.related_id,
        related_type=body.related_type,
    )
    await commit_or_raise(db)
    return DispatchResponse(
        notifications=[NotificationResponse.model_validate(n) for n in created],
        count=len(created),
    )


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(50, ge=1, le=100),
    unread_only: bool = Query(False, alias="unreadOnly"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """List the caller's notifications, newest first."""
    notifications = await get_notifications(db, user_id, limit=limit, unread_only=unread_only)
    unread = await get_unread_count(db, user_id)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_notification_count(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Get unread notification count."""
    return UnreadCountResponse(unread_count=await get_unread_count(db, user_id))


@router.patch("/read-all", response_model=SuccessResponse)
async def mark_all_read(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Mark all of the caller's notifications as read."""
    await mark_all_as_read(db, user_id)
    await commit_or_raise(db)
    return SuccessResponse()


@router.patch("/{notification_id}/read", response_model=SuccessResponse)
async def mark_notification_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Mark a notification as read."""
    await mark_as_read(db, user_id, notification_id)
    await commit_or_raise(db)
    return SuccessResponse()


@router.delete("/{notification_id}", response_model=SuccessResponse)
async def remove_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Delete a notification."""
    await delete_notification(db, user_id, notification_id)
    await commit_or_raise(db)
    return SuccessResponse()
