"""Pydantic schemas for subscription endpoints."""

from __future__ import annotations

from datetime import datetime

from eduhub.schemas import CamelModel


class SubscriptionResponse(CamelModel):
    id: str
    user_id: str
    product_kind: str
    product_id: str
    product_title: str | None = None
    status: str
    current_period_end: datetime
    cancel_at_period_end: bool


class ExpiryCheckResponse(CamelModel):
    success: bool = True
    total: int
    notifications_sent: int
    notifications_failed: int
    notifications_skipped: int
    sent: list[str]
    failed: list[str]
