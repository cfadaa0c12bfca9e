"""Post-purchase side effects, submitted to the outbox after commit.

Each task opens its own session: the request session is closed by the time
a background task runs.
"""

from __future__ import annotations

from decimal import Decimal

from eduhub.database import get_session_factory
from eduhub.email.service import get_email_service
from eduhub.notifications.service import dispatch_notifications
from eduhub.tasks.outbox import Outbox

PRODUCT_PATHS = {
    "book": "/student/books/{product_id}",
    "course": "/student/courses/{product_id}",
}

PURCHASE_TITLES = {
    "book": "Book Purchase Successful! 📚",
    "course": "Course Purchase Successful! 🎓",
}


def product_path(product_kind: str, product_id: str) -> str:
    template = PRODUCT_PATHS.get(product_kind, PRODUCT_PATHS["book"])
    return template.format(product_id=product_id)


def purchase_message(product_kind: str, product_title: str | None) -> tuple[str, str]:
    """Title and body of the `payment_received` notification."""
    title = PURCHASE_TITLES.get(product_kind, PURCHASE_TITLES["book"])
    name = f'"{product_title}"' if product_title else f"your {product_kind}"
    return title, f"You've successfully purchased {name}. Access it now!"


async def notify_purchase(
    user_id: str,
    product_id: str,
    product_kind: str,
    product_title: str | None = None,
) -> bool:
    title, message = purchase_message(product_kind, product_title)
    async with get_session_factory()() as db:
        await dispatch_notifications(
            db,
            user_id,
            "payment_received",
            title,
            message,
            link=product_path(product_kind, product_id),
            related_id=product_id,
            related_type=product_kind,
        )
        await db.commit()
    return True


async def email_receipt(
    user_id: str,
    product_id: str,
    product_kind: str,
    product_title: str | None,
    amount: Decimal,
    currency: str,
    order_id: str,
) -> bool:
    service = get_email_service()
    async with get_session_factory()() as db:
        return await service.send_to_user(
            db,
            user_id,
            "payment_receipt",
            {
                "product_title": product_title or f"your {product_kind}",
                "amount": f"{amount:.3f}",
                "currency": currency,
                "order_id": order_id,
                "product_url": service.url(product_path(product_kind, product_id)),
            },
        )


async def email_payment_failed(
    user_id: str,
    product_id: str,
    product_kind: str,
    product_title: str | None,
    order_id: str,
) -> bool:
    service = get_email_service()
    async with get_session_factory()() as db:
        return await service.send_to_user(
            db,
            user_id,
            "payment_failed",
            {
                "product_title": product_title or f"your {product_kind}",
                "order_id": order_id,
                "retry_url": service.url(product_path(product_kind, product_id)),
            },
        )


def announce_purchase(
    outbox: Outbox,
    user_id: str,
    product_id: str,
    product_kind: str = "book",
    product_title: str | None = None,
) -> None:
    """Queue the in-app notification for a newly created purchase."""
    outbox.submit(
        "purchase_notification",
        lambda: notify_purchase(user_id, product_id, product_kind, product_title),
    )
