"""
Transactional email templates for EduHub.

Inline CSS only; every template returns (subject, html_body, text_body).
"""

from __future__ import annotations

from html import escape

BG_PAGE = "#F4F6FB"
BG_CARD = "#FFFFFF"
BRAND = "#2563EB"
DANGER = "#DC2626"
TEXT_PRIMARY = "#111827"
TEXT_SECONDARY = "#4B5563"
BORDER = "#E5E7EB"

APP_NAME = "EduHub"


def _layout(content: str) -> str:
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{APP_NAME}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_PAGE}; font-family: -apple-system, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: {BG_PAGE};">
        <tr>
            <td align="center" style="padding: 32px 16px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="560" style="max-width: 560px; width: 100%;">
                    <tr>
                        <td align="left" style="padding-bottom: 24px; font-size: 22px; font-weight: 700; color: {BRAND};">{APP_NAME}</td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 10px; padding: 32px 28px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="padding-top: 24px; color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5;">
                            You are receiving this email because you have an account on {APP_NAME}.
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _button(url: str, label: str, color: str = BRAND) -> str:
    return f"""\
<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin: 24px 0;">
    <tr>
        <td style="background-color: {color}; border-radius: 6px;">
            <a href="{escape(url, quote=True)}" target="_blank" style="display: inline-block; padding: 12px 28px; color: #FFFFFF; font-size: 15px; font-weight: 600; text-decoration: none;">{label}</a>
        </td>
    </tr>
</table>"""


def _greeting(name: str | None) -> str:
    return f"Hi {name}," if name else "Hi,"


def payment_receipt(
    name: str | None,
    product_title: str,
    amount: str,
    currency: str,
    order_id: str,
    product_url: str,
) -> tuple[str, str, str]:
    """Receipt after a completed payment."""
    subject = f"Your receipt for {product_title}"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 22px; margin: 0 0 16px 0;">Payment received</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0 0 8px 0;">{escape(_greeting(name))}</p>
<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0;">
    Thank you for your purchase of <strong style="color: {TEXT_PRIMARY};">{escape(product_title)}</strong>.
</p>
<table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="margin: 20px 0; border-top: 1px solid {BORDER}; border-bottom: 1px solid {BORDER};">
    <tr>
        <td style="padding: 10px 0; color: {TEXT_SECONDARY}; font-size: 14px;">Amount</td>
        <td align="right" style="padding: 10px 0; color: {TEXT_PRIMARY}; font-size: 14px; font-weight: 600;">{escape(amount)} {escape(currency)}</td>
    </tr>
    <tr>
        <td style="padding: 10px 0; color: {TEXT_SECONDARY}; font-size: 14px;">Order</td>
        <td align="right" style="padding: 10px 0; color: {TEXT_PRIMARY}; font-size: 13px; font-family: monospace;">{escape(order_id)}</td>
    </tr>
</table>
{_button(product_url, "Open now")}"""
    text_body = (
        f"{_greeting(name)}\n\n"
        f"Thank you for your purchase of {product_title}.\n\n"
        f"Amount: {amount} {currency}\n"
        f"Order: {order_id}\n\n"
        f"Open it here: {product_url}\n\n"
        f"-- The {APP_NAME} Team"
    )
    return subject, _layout(content), text_body


def payment_failed(
    name: str | None,
    product_title: str,
    order_id: str,
    retry_url: str,
) -> tuple[str, str, str]:
    """The gateway reported a failed payment."""
    subject = f"Payment failed for {product_title}"
    content = f"""\
<h1 style="color: {DANGER}; font-size: 22px; margin: 0 0 16px 0;">Payment failed</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0 0 8px 0;">{escape(_greeting(name))}</p>
<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0;">
    We could not complete your payment for <strong style="color: {TEXT_PRIMARY};">{escape(product_title)}</strong>
    (order <span style="font-family: monospace;">{escape(order_id)}</span>). You have not been charged.
</p>
{_button(retry_url, "Try again", DANGER)}"""
    text_body = (
        f"{_greeting(name)}\n\n"
        f"We could not complete your payment for {product_title} (order {order_id}). "
        f"You have not been charged.\n\n"
        f"Try again: {retry_url}\n\n"
        f"-- The {APP_NAME} Team"
    )
    return subject, _layout(content), text_body


def subscription_expiring(
    name: str | None,
    product_title: str,
    days_left: int,
    renew_url: str,
) -> tuple[str, str, str]:
    """Reminder that a subscription period is about to end."""
    when = "today" if days_left <= 1 else f"in {days_left} days"
    subject = f"Your subscription to {product_title} expires {when}"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 22px; margin: 0 0 16px 0;">Subscription expiring</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0 0 8px 0;">{escape(_greeting(name))}</p>
<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0;">
    Your subscription to <strong style="color: {TEXT_PRIMARY};">{escape(product_title)}</strong> expires {when}.
</p>
{_button(renew_url, "Renew subscription")}"""
    text_body = (
        f"{_greeting(name)}\n\n"
        f"Your subscription to {product_title} expires {when}.\n\n"
        f"Renew here: {renew_url}\n\n"
        f"-- The {APP_NAME} Team"
    )
    return subject, _layout(content), text_body
