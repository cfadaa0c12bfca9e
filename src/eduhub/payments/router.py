"""Checkout registration and the payment gateway webhook."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.auth.dependencies import get_current_user_id, require_webhook_secret
from eduhub.config import get_settings
from eduhub.database import commit_or_raise, get_session
from eduhub.errors import NotFound
from eduhub.payments.schemas import CheckoutRequest, CheckoutResponse, PaymentWebhookEvent, WebhookResponse
from eduhub.payments.service import record_gateway_result, register_pending_payment
from eduhub.purchases.effects import announce_purchase, email_payment_failed, email_receipt
from eduhub.purchases.order_ids import build_order_id, parse_purchase_type
from eduhub.purchases.service import reconcile_purchase
from eduhub.tasks.outbox import Outbox, get_outbox

logger = structlog.get_logger()

router = APIRouter(prefix="/payments", tags=["Payments"])
webhook_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/checkout", response_model=CheckoutResponse)
async def start_checkout(
    body: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Register a pending payment and hand back the order id to give the gateway."""
    order_id = build_order_id(body.product_id, body.purchase_type, user_id)
    payment = await register_pending_payment(
        db,
        user_id,
        body.product_id,
        body.product_kind,
        body.amount,
        order_id,
        currency=get_settings().currency,
    )
    await commit_or_raise(db)
    return CheckoutResponse(payment_id=payment.id, order_id=order_id, status=payment.status)


@webhook_router.post(
    "/payments",
    response_model=WebhookResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_webhook_secret)],
)
async def payment_webhook(
    event: PaymentWebhookEvent,
    db: AsyncSession = Depends(get_session),
    outbox: Outbox = Depends(get_outbox),
):
    """Apply a gateway outcome. Safe to deliver any number of times, in any order."""
    payment, applied = await record_gateway_result(
        db,
        event.gateway_order_id,
        event.status,
        amount=event.amount,
        user_id=event.user_id,
        product_id=event.product_id,
        product_kind=event.product_kind,
    )
    if payment is None:
        raise NotFound("Unknown payment")

    if payment.status != "completed":
        await commit_or_raise(db)
        if applied and payment.status == "failed":
            outbox.submit(
                "payment_failed_email",
                lambda: email_payment_failed(
                    payment.user_id,
                    payment.product_id,
                    payment.product_kind,
                    event.product_title,
                    payment.gateway_order_id,
                ),
            )
        return WebhookResponse(status=payment.status)

    purchase_type = parse_purchase_type(payment.gateway_order_id, payment.product_id)
    result = await reconcile_purchase(
        db,
        payment.user_id,
        payment.product_id,
        purchase_type,
        payment.amount,
    )
    await commit_or_raise(db)

    if result.created:
        announce_purchase(outbox, payment.user_id, payment.product_id, payment.product_kind, event.product_title)
    if applied:
        outbox.submit(
            "payment_receipt_email",
            lambda: email_receipt(
                payment.user_id,
                payment.product_id,
                payment.product_kind,
                event.product_title,
                payment.amount,
                payment.currency,
                payment.gateway_order_id,
            ),
        )
    if event.status == "failed":
        logger.warning("payment_failed_after_completion_ignored", gateway_order_id=payment.gateway_order_id)

    return WebhookResponse(status=payment.status, purchase_id=result.purchase_id)
