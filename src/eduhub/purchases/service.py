"""Purchase reconciliation.

Two independent paths report a finished payment: the gateway webhook and the
client's verify call after redirect. Both end up in `reconcile_purchase`,
which must converge on a single purchase row per (user, product) no matter
how often or in what order they arrive.

- Creation is ``INSERT ... ON CONFLICT DO NOTHING`` on the
  ``(user_id, product_id)`` unique key; the loser of a race falls through to
  the existing-row path.
- Upgrades are a single conditional ``UPDATE ... WHERE type <> 'both'``, so
  two racing upgrade requests apply at most once.
- Nothing here deletes a purchase or narrows its type.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.db.models import Purchase
from eduhub.db.upsert import insert_ignore_conflict
from eduhub.errors import ConflictRetryable, InvalidInput, NotFound, PersistenceFailure
from eduhub.payments.service import get_completed_payment_by_token, get_latest_completed_payment
from eduhub.purchases.order_ids import PURCHASE_TYPES, parse_purchase_type

logger = structlog.get_logger()

UPGRADE_TARGET = "both"
_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class ReconcileResult:
    purchase_id: str
    type: str
    created: bool = False
    upgraded: bool = False


@dataclass(frozen=True)
class VerifyResult:
    pending: bool
    purchase_id: str | None = None
    type: str | None = None
    created: bool = False
    product_kind: str | None = None


async def get_purchase(db: AsyncSession, user_id: str, product_id: str) -> Purchase | None:
    """Fetch the purchase for (user, product), bypassing stale identity-map state."""
    result = await db.execute(
        select(Purchase)
        .where(Purchase.user_id == user_id, Purchase.product_id == product_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _upgrade_to_both(db: AsyncSession, purchase_id: str) -> bool:
    """Compare-and-swap the type to 'both'. True only for the writer that changed it."""
    result = await db.execute(
        update(Purchase)
        .where(Purchase.id == purchase_id, Purchase.type != UPGRADE_TARGET)
        .values(type=UPGRADE_TARGET, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def _reconcile_once(
    db: AsyncSession,
    user_id: str,
    product_id: str,
    requested_type: str,
    price_paid: Decimal,
    upgrade: bool,
) -> ReconcileResult:
    created = await insert_ignore_conflict(
        db,
        Purchase,
        {
            "user_id": user_id,
            "product_id": product_id,
            "type": requested_type,
            "price_paid": price_paid,
            "purchased_at": datetime.now(timezone.utc),
        },
        conflict_columns=["user_id", "product_id"],
    )
    existing = await get_purchase(db, user_id, product_id)
    if existing is None:
        raise ConflictRetryable("Purchase row not visible after insert")

    if created:
        logger.info("purchase_created", purchase_id=existing.id, user_id=user_id,
                    product_id=product_id, type=requested_type)
        return ReconcileResult(purchase_id=existing.id, type=existing.type, created=True)

    if existing.type == requested_type:
        return ReconcileResult(purchase_id=existing.id, type=existing.type)

    if not upgrade:
        logger.warning("purchase_type_mismatch", purchase_id=existing.id, existing_type=existing.type,
                       requested_type=requested_type)
        return ReconcileResult(purchase_id=existing.id, type=existing.type)

    if requested_type != UPGRADE_TARGET:
        logger.info("purchase_upgrade_rejected", purchase_id=existing.id, existing_type=existing.type,
                    requested_type=requested_type)
        return ReconcileResult(purchase_id=existing.id, type=existing.type)

    upgraded = await _upgrade_to_both(db, existing.id)
    if upgraded:
        logger.info("purchase_upgraded", purchase_id=existing.id, from_type=existing.type, to_type=UPGRADE_TARGET)
    return ReconcileResult(purchase_id=existing.id, type=UPGRADE_TARGET, upgraded=upgraded)


async def reconcile_purchase(
    db: AsyncSession,
    user_id: str,
    product_id: str,
    requested_type: str,
    price_paid: Decimal | None = None,
    upgrade: bool = False,
) -> ReconcileResult:
    """Create or upgrade the purchase for (user, product). Idempotent.

    - no row: insert with `requested_type` (created=True)
    - same type: no-op
    - different type, `upgrade` and target 'both': conditional upgrade (upgraded=True once)
    - anything else: no-op, existing id returned

    The caller owns the transaction.
    """
    if requested_type not in PURCHASE_TYPES:
        raise InvalidInput(f"Invalid purchase type: {requested_type}")

    price = price_paid if price_paid is not None else Decimal("0")
    for attempt in range(_MAX_ATTEMPTS):
        try:
            return await _reconcile_once(db, user_id, product_id, requested_type, price, upgrade)
        except ConflictRetryable:
            logger.info("purchase_conflict_retry", user_id=user_id, product_id=product_id, attempt=attempt + 1)

    raise PersistenceFailure("Could not reconcile purchase")


async def upgrade_existing_purchase(
    db: AsyncSession,
    user_id: str,
    product_id: str,
    existing_purchase_id: str,
    requested_type: str,
    price_paid: Decimal | None = None,
) -> ReconcileResult:
    """Upgrade path for an explicitly referenced purchase."""
    existing = await get_purchase(db, user_id, product_id)
    if existing is None or existing.id != existing_purchase_id:
        raise NotFound("Purchase not found")
    return await reconcile_purchase(db, user_id, product_id, requested_type, price_paid, upgrade=True)


async def verify_and_reconcile(
    db: AsyncSession,
    user_id: str,
    product_id: str,
    order_id: str | None = None,
    payment_token: str | None = None,
) -> VerifyResult:
    """Client fallback after the gateway redirect.

    Returns the purchase if one exists, creates it if the gateway already
    reported a completed payment, and otherwise reports `pending` without
    writing anything; the webhook remains authoritative.
    """
    existing = await get_purchase(db, user_id, product_id)
    if existing is not None:
        return VerifyResult(pending=False, purchase_id=existing.id, type=existing.type)

    payment = await get_latest_completed_payment(db, user_id, product_id)
    if payment is None and payment_token:
        payment = await get_completed_payment_by_token(db, user_id, payment_token)
    if payment is None or payment.product_id != product_id:
        logger.info("purchase_verify_pending", user_id=user_id, product_id=product_id)
        return VerifyResult(pending=True)

    # The stored order id was built at checkout; the client's copy is only a fallback.
    source = payment.gateway_order_id if payment.gateway_order_id.startswith(f"{product_id}-") else order_id
    requested_type = parse_purchase_type(source, product_id)

    result = await reconcile_purchase(db, user_id, product_id, requested_type, payment.amount)
    return VerifyResult(
        pending=False,
        purchase_id=result.purchase_id,
        type=result.type,
        created=result.created,
        product_kind=payment.product_kind,
    )
