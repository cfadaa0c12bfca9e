"""Pydantic schemas for checkout and the payment webhook."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import Field

from eduhub.purchases.schemas import ProductKind, PurchaseType
from eduhub.schemas import CamelModel


class CheckoutRequest(CamelModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    product_kind: ProductKind = "book"
    purchase_type: PurchaseType = "digital"
    amount: Decimal = Field(..., gt=0)


class CheckoutResponse(CamelModel):
    success: bool = True
    payment_id: str
    order_id: str
    status: str


class PaymentWebhookEvent(CamelModel):
    """Gateway callback, already normalised by the gateway adapter."""

    gateway_order_id: str = Field(..., min_length=1, max_length=255)
    status: Literal["completed", "failed"]
    amount: Decimal | None = Field(None, ge=0)
    user_id: str | None = Field(None, max_length=64)
    product_id: str | None = Field(None, max_length=64)
    product_kind: ProductKind | None = None
    product_title: str | None = Field(None, max_length=256)


class WebhookResponse(CamelModel):
    success: bool = True
    status: str
    purchase_id: str | None = None
