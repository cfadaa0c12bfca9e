"""Purchase API endpoints: direct creation/upgrade and the post-redirect verify fallback."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.auth.dependencies import Caller, get_caller
from eduhub.database import commit_or_raise, get_session
from eduhub.purchases.effects import announce_purchase
from eduhub.purchases.schemas import (
    CreatePurchaseRequest,
    PurchaseResponse,
    VerifyPurchaseRequest,
    VerifyPurchaseResponse,
)
from eduhub.purchases.service import reconcile_purchase, upgrade_existing_purchase, verify_and_reconcile
from eduhub.tasks.outbox import Outbox, get_outbox

router = APIRouter(prefix="/purchases", tags=["Purchases"])


@router.post("", response_model=PurchaseResponse, response_model_exclude_none=True)
async def create_purchase(
    body: CreatePurchaseRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
    outbox: Outbox = Depends(get_outbox),
):
    """Create the purchase, or upgrade an existing one to 'both'."""
    caller.ensure_can_act_for(body.user_id)

    if body.upgrade_existing and body.existing_purchase_id:
        result = await upgrade_existing_purchase(
            db,
            body.user_id,
            body.product_id,
            body.existing_purchase_id,
            body.purchase_type,
            body.price_paid,
        )
    else:
        result = await reconcile_purchase(
            db,
            body.user_id,
            body.product_id,
            body.purchase_type,
            body.price_paid,
            upgrade=body.upgrade_existing,
        )
    await commit_or_raise(db)

    if result.created:
        announce_purchase(outbox, body.user_id, body.product_id, body.product_kind, body.product_title)

    return PurchaseResponse(
        purchase_id=result.purchase_id,
        upgraded=result.upgraded if body.upgrade_existing else None,
    )


@router.post("/verify", response_model=VerifyPurchaseResponse, response_model_exclude_none=True)
async def verify_purchase(
    body: VerifyPurchaseRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
    outbox: Outbox = Depends(get_outbox),
):
    """Confirm a purchase after the gateway redirect; `pending` until the payment is recorded."""
    caller.ensure_can_act_for(body.user_id)

    result = await verify_and_reconcile(
        db,
        body.user_id,
        body.product_id,
        order_id=body.order_id,
        payment_token=body.payment_token,
    )
    if result.pending:
        return VerifyPurchaseResponse(pending=True)

    await commit_or_raise(db)
    if result.created:
        announce_purchase(
            outbox,
            body.user_id,
            body.product_id,
            result.product_kind or "book",
            body.product_title,
        )
    return VerifyPurchaseResponse(purchase_id=result.purchase_id)
