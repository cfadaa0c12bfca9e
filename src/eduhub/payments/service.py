"""Payment record store.

Rows are keyed by the gateway order id. A completed payment is frozen:
every status write is a conditional update that skips completed rows, so a
late or duplicated gateway event can never rewrite it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.db.models import Payment
from eduhub.db.upsert import insert_ignore_conflict
from eduhub.errors import PersistenceFailure

logger = structlog.get_logger()

PRODUCT_KINDS = ("book", "course")
PAYMENT_STATUSES = ("pending", "completed", "failed")


async def get_payment_by_order_id(db: AsyncSession, gateway_order_id: str) -> Payment | None:
    result = await db.execute(select(Payment).where(Payment.gateway_order_id == gateway_order_id))
    return result.scalar_one_or_none()


async def get_latest_completed_payment(
    db: AsyncSession,
    user_id: str,
    product_id: str,
) -> Payment | None:
    """Most recent completed payment for a (user, product) pair."""
    result = await db.execute(
        select(Payment)
        .where(
            Payment.user_id == user_id,
            Payment.product_id == product_id,
            Payment.status == "completed",
        )
        .order_by(Payment.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_completed_payment_by_token(db: AsyncSession, user_id: str, token: str) -> Payment | None:
    """Completed payment matched by the gateway token the client was redirected with."""
    result = await db.execute(
        select(Payment).where(
            Payment.user_id == user_id,
            Payment.gateway_order_id == token,
            Payment.status == "completed",
        )
    )
    return result.scalar_one_or_none()


async def register_pending_payment(
    db: AsyncSession,
    user_id: str,
    product_id: str,
    product_kind: str,
    amount: Decimal,
    gateway_order_id: str,
    currency: str = "TND",
) -> Payment:
    """Record a checkout attempt before the gateway reports back. Idempotent per order id."""
    await insert_ignore_conflict(
        db,
        Payment,
        {
            "user_id": user_id,
            "product_id": product_id,
            "product_kind": product_kind,
            "amount": amount,
            "currency": currency,
            "status": "pending",
            "gateway_order_id": gateway_order_id,
            "created_at": datetime.now(timezone.utc),
        },
        conflict_columns=["gateway_order_id"],
    )
    payment = await get_payment_by_order_id(db, gateway_order_id)
    if payment is None:
        raise PersistenceFailure("Payment record was not stored")
    return payment


async def record_gateway_result(
    db: AsyncSession,
    gateway_order_id: str,
    status: str,
    amount: Decimal | None = None,
    user_id: str | None = None,
    product_id: str | None = None,
    product_kind: str | None = None,
) -> tuple[Payment | None, bool]:
    """Apply a gateway outcome (completed / failed) to the payment for `gateway_order_id`.

    Creates the row when the gateway reports an order the checkout step never
    registered, provided the event carries the user and product. Returns the
    row as stored after the write (None when it could not be attributed) and
    whether this call changed its status.
    """
    if status not in ("completed", "failed"):
        raise ValueError(f"Invalid gateway status: {status}")

    now = datetime.now(timezone.utc)
    if user_id and product_id:
        await insert_ignore_conflict(
            db,
            Payment,
            {
                "user_id": user_id,
                "product_id": product_id,
                "product_kind": product_kind or "book",
                "amount": amount or Decimal("0"),
                "status": "pending",
                "gateway_order_id": gateway_order_id,
                "created_at": now,
            },
            conflict_columns=["gateway_order_id"],
        )

    values: dict[str, object] = {"status": status}
    if amount is not None:
        values["amount"] = amount
    if status == "completed":
        values["completed_at"] = now

    result = await db.execute(
        update(Payment)
        .where(
            Payment.gateway_order_id == gateway_order_id,
            Payment.status != "completed",
            Payment.status != status,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    applied = result.rowcount > 0
    payment = await get_payment_by_order_id(db, gateway_order_id)
    if payment is not None:
        await db.refresh(payment)
    logger.info(
        "payment_gateway_result",
        gateway_order_id=gateway_order_id,
        status=status,
        applied=applied,
        found=payment is not None,
    )
    return payment, applied
