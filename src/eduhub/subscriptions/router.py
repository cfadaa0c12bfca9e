"""Subscription endpoints, including the scheduler-triggered expiry check."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.auth.dependencies import get_current_user_id, require_cron_secret
from eduhub.database import commit_or_raise, get_session
from eduhub.subscriptions.expiry_scanner import scan_expiring_subscriptions
from eduhub.subscriptions.schemas import ExpiryCheckResponse, SubscriptionResponse
from eduhub.subscriptions.service import set_cancel_at_period_end
from eduhub.tasks.outbox import Outbox, get_outbox

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.api_route(
    "/expiring-check",
    methods=["GET", "POST"],
    response_model=ExpiryCheckResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def check_expiring_subscriptions(
    db: AsyncSession = Depends(get_session),
    outbox: Outbox = Depends(get_outbox),
):
    """Run one expiry sweep (`Authorization: Bearer <cron secret>`)."""
    result = await scan_expiring_subscriptions(db, outbox=outbox)
    return ExpiryCheckResponse(
        total=result.total,
        notifications_sent=len(result.sent),
        notifications_failed=len(result.failed),
        notifications_skipped=len(result.skipped),
        sent=result.sent,
        failed=result.failed,
    )


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Cancel at the end of the current period."""
    subscription = await set_cancel_at_period_end(db, user_id, subscription_id, cancel=True)
    await commit_or_raise(db)
    return SubscriptionResponse.model_validate(subscription)


@router.post("/{subscription_id}/resume", response_model=SubscriptionResponse)
async def resume_subscription(
    subscription_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Undo a scheduled cancellation."""
    subscription = await set_cancel_at_period_end(db, user_id, subscription_id, cancel=False)
    await commit_or_raise(db)
    return SubscriptionResponse.model_validate(subscription)
