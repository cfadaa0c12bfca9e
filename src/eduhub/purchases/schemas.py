"""Pydantic schemas for purchase endpoints."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import Field

from eduhub.schemas import CamelModel

PurchaseType = Literal["digital", "physical", "both"]
ProductKind = Literal["book", "course"]


class CreatePurchaseRequest(CamelModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    user_id: str = Field(..., min_length=1, max_length=64)
    purchase_type: PurchaseType = "digital"
    price_paid: Decimal | None = Field(None, ge=0)
    upgrade_existing: bool = False
    existing_purchase_id: str | None = Field(None, max_length=36)
    product_kind: ProductKind = "book"
    product_title: str | None = Field(None, max_length=256)


class PurchaseResponse(CamelModel):
    success: bool = True
    purchase_id: str
    upgraded: bool | None = None


class VerifyPurchaseRequest(CamelModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    user_id: str = Field(..., min_length=1, max_length=64)
    order_id: str | None = Field(None, max_length=255)
    payment_token: str | None = Field(None, max_length=255)
    product_title: str | None = Field(None, max_length=256)


class VerifyPurchaseResponse(CamelModel):
    success: bool = True
    purchase_id: str | None = None
    pending: bool | None = None
