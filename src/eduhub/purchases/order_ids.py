"""Gateway order-id convention: ``{productId}-{type}-{timestamp}-{userId}``.

Product ids may themselves contain dashes (UUIDs), so parsing prefers the
known product id as an anchor and only then falls back to scanning for a
``-{type}-`` marker. Anything unparseable resolves to ``digital``.
"""

from __future__ import annotations

import time

PURCHASE_TYPES = ("digital", "physical", "both")
DEFAULT_PURCHASE_TYPE = "digital"


def build_order_id(product_id: str, purchase_type: str, user_id: str, timestamp: int | None = None) -> str:
    """Build an order id the verify and webhook paths can parse back."""
    if purchase_type not in PURCHASE_TYPES:
        raise ValueError(f"Invalid purchase type: {purchase_type}")
    if not product_id or not user_id:
        raise ValueError("product_id and user_id are required")
    ts = int(time.time()) if timestamp is None else timestamp
    return f"{product_id}-{purchase_type}-{ts}-{user_id}"


def parse_purchase_type(order_id: str | None, product_id: str | None = None) -> str:
    """Derive the purchase type encoded in an order id."""
    if not order_id:
        return DEFAULT_PURCHASE_TYPE

    if product_id and order_id.startswith(f"{product_id}-"):
        head = order_id[len(product_id) + 1:].split("-", 1)[0]
        if head in PURCHASE_TYPES:
            return head
        return DEFAULT_PURCHASE_TYPE

    for purchase_type in PURCHASE_TYPES:
        marker = f"-{purchase_type}"
        if f"{marker}-" in order_id or order_id.endswith(marker):
            return purchase_type

    return DEFAULT_PURCHASE_TYPE
