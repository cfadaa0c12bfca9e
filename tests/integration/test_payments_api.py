"""Integration tests: checkout registration and the payment webhook."""

from __future__ import annotations

from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.db.models import Notification, Payment, Purchase
from eduhub.tasks.outbox import Outbox
from tests.conftest import WEBHOOK_SECRET, bearer, secret_header


async def _payment(db: AsyncSession, order_id: str) -> Payment | None:
    result = await db.execute(
        select(Payment).where(Payment.gateway_order_id == order_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _purchases(db: AsyncSession) -> list[Purchase]:
    result = await db.execute(select(Purchase))
    return list(result.scalars().all())


async def _checkout(client: AsyncClient, purchase_type: str = "both", product_id: str = "b1") -> str:
    response = await client.post(
        "/payments/checkout",
        json={"productId": product_id, "purchaseType": purchase_type, "amount": "45.5"},
        headers=bearer("u1"),
    )
    assert response.status_code == 200
    return response.json()["orderId"]


def _webhook(order_id: str, status: str = "completed", **extra) -> dict:
    return {"gatewayOrderId": order_id, "status": status, **extra}


class TestCheckout:
    """Integration: POST /payments/checkout."""

    @pytest.mark.asyncio
    async def test_registers_pending_payment(self, client: AsyncClient, db_session: AsyncSession):
        """Checkout stores a pending payment under a fresh order id."""
        response = await client.post(
            "/payments/checkout",
            json={"productId": "b1", "purchaseType": "both", "amount": "45.5"},
            headers=bearer("u1"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert data["orderId"].startswith("b1-both-")
        assert data["orderId"].endswith("-u1")
        payment = await _payment(db_session, data["orderId"])
        assert payment.user_id == "u1"
        assert payment.amount == Decimal("45.5")
        assert payment.currency == "TND"

    @pytest.mark.asyncio
    async def test_rejects_non_positive_amount(self, client: AsyncClient):
        """Zero or negative amounts are a 400."""
        response = await client.post(
            "/payments/checkout",
            json={"productId": "b1", "amount": "0"},
            headers=bearer("u1"),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_requires_user_token(self, client: AsyncClient):
        """Checkout needs a user token."""
        response = await client.post("/payments/checkout", json={"productId": "b1", "amount": "5"})
        assert response.status_code == 401


class TestPaymentWebhook:
    """Integration: POST /webhooks/payments."""

    @pytest.mark.asyncio
    async def test_requires_secret(self, client: AsyncClient):
        """The webhook secret is required."""
        response = await client.post("/webhooks/payments", json=_webhook("x"), headers=bearer("u1"))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_completed_creates_purchase(
        self, client: AsyncClient, db_session: AsyncSession, outbox: Outbox, mock_email_service
    ):
        """A completed event creates the purchase and queues side effects."""
        order_id = await _checkout(client)

        response = await client.post(
            "/webhooks/payments",
            json=_webhook(order_id, productTitle="Physics 101"),
            headers=secret_header(WEBHOOK_SECRET),
        )
        await outbox.drain()

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        [purchase] = await _purchases(db_session)
        assert purchase.id == response.json()["purchaseId"]
        assert purchase.type == "both"
        assert purchase.price_paid == Decimal("45.5")
        assert (await _payment(db_session, order_id)).completed_at is not None

        result = await db_session.execute(select(Notification).where(Notification.user_id == "u1"))
        [notification] = result.scalars().all()
        assert notification.type == "payment_received"
        mock_email_service.send_to_user.assert_awaited_once()
        _db, user_id, template_id, context = mock_email_service.send_to_user.call_args.args
        assert (user_id, template_id) == ("u1", "payment_receipt")
        assert context["order_id"] == order_id

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_idempotent(
        self, client: AsyncClient, db_session: AsyncSession, outbox: Outbox, mock_email_service
    ):
        """Redelivery keeps one purchase and one notification."""
        order_id = await _checkout(client)
        headers = secret_header(WEBHOOK_SECRET)

        first = await client.post("/webhooks/payments", json=_webhook(order_id), headers=headers)
        second = await client.post("/webhooks/payments", json=_webhook(order_id), headers=headers)
        await outbox.drain()

        assert first.json()["purchaseId"] == second.json()["purchaseId"]
        assert len(await _purchases(db_session)) == 1
        assert mock_email_service.send_to_user.await_count == 1

    @pytest.mark.asyncio
    async def test_verify_then_webhook_converge(self, client: AsyncClient, db_session: AsyncSession, mock_email_service):
        """Verify first, webhook second: same purchase."""
        order_id = await _checkout(client, purchase_type="digital")
        verify_body = {"productId": "b1", "userId": "u1", "orderId": order_id}

        pending = await client.post("/purchases/verify", json=verify_body, headers=bearer("u1"))
        webhook = await client.post("/webhooks/payments", json=_webhook(order_id), headers=secret_header(WEBHOOK_SECRET))
        verified = await client.post("/purchases/verify", json=verify_body, headers=bearer("u1"))

        assert pending.json() == {"success": True, "pending": True}
        assert verified.json()["purchaseId"] == webhook.json()["purchaseId"]
        assert len(await _purchases(db_session)) == 1

    @pytest.mark.asyncio
    async def test_completed_payment_is_frozen(self, client: AsyncClient, db_session: AsyncSession, mock_email_service):
        """A late failed event leaves a completed payment alone."""
        order_id = await _checkout(client)
        headers = secret_header(WEBHOOK_SECRET)
        await client.post("/webhooks/payments", json=_webhook(order_id), headers=headers)

        late = await client.post("/webhooks/payments", json=_webhook(order_id, "failed", amount="1"), headers=headers)

        assert late.json()["status"] == "completed"
        payment = await _payment(db_session, order_id)
        assert payment.status == "completed"
        assert payment.amount == Decimal("45.5")

    @pytest.mark.asyncio
    async def test_failed_payment_emails_once(
        self, client: AsyncClient, db_session: AsyncSession, outbox: Outbox, mock_email_service
    ):
        """Failed events email once, even when redelivered."""
        order_id = await _checkout(client)
        headers = secret_header(WEBHOOK_SECRET)

        await client.post("/webhooks/payments", json=_webhook(order_id, "failed"), headers=headers)
        response = await client.post("/webhooks/payments", json=_webhook(order_id, "failed"), headers=headers)
        await outbox.drain()

        assert response.json() == {"success": True, "status": "failed"}
        assert await _purchases(db_session) == []
        mock_email_service.send_to_user.assert_awaited_once()
        assert mock_email_service.send_to_user.call_args.args[2] == "payment_failed"

    @pytest.mark.asyncio
    async def test_unregistered_order_with_attribution(self, client: AsyncClient, db_session: AsyncSession, mock_email_service):
        """Unknown order with user and product is recorded."""
        response = await client.post(
            "/webhooks/payments",
            json=_webhook("gw-777", amount="12", userId="u3", productId="c9", productKind="course"),
            headers=secret_header(WEBHOOK_SECRET),
        )

        assert response.status_code == 200
        [purchase] = await _purchases(db_session)
        assert (purchase.user_id, purchase.product_id, purchase.type) == ("u3", "c9", "digital")

    @pytest.mark.asyncio
    async def test_unknown_unattributed_order(self, client: AsyncClient):
        """Unknown order without attribution is a 404."""
        response = await client.post(
            "/webhooks/payments", json=_webhook("nobody-knows"), headers=secret_header(WEBHOOK_SECRET)
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_email_failure_does_not_fail_webhook(
        self, client: AsyncClient, db_session: AsyncSession, outbox: Outbox, mock_email_service
    ):
        """Email delivery failures never fail the webhook."""
        mock_email_service.send_to_user.side_effect = RuntimeError("smtp down")
        order_id = await _checkout(client)

        response = await client.post(
            "/webhooks/payments", json=_webhook(order_id), headers=secret_header(WEBHOOK_SECRET)
        )
        await outbox.drain()

        assert response.status_code == 200
        assert len(await _purchases(db_session)) == 1
        assert mock_email_service.send_to_user.await_count == 3
