"""Unit tests for email templates and the email service."""

from unittest.mock import AsyncMock

import pytest

from eduhub.config import Settings
from eduhub.email.service import (
    EmailService,
    LogProvider,
    ResendProvider,
    SMTPProvider,
    create_provider,
)
from eduhub.email.templates import payment_failed, payment_receipt, subscription_expiring


class TestTemplates:
    """Test the transactional email templates."""

    def test_receipt(self):
        subject, html, text = payment_receipt(
            "Amira", "Physics 101", "45.000", "TND", "b1-digital-1-u1", "http://app/student/books/b1"
        )
        assert subject == "Your receipt for Physics 101"
        assert "45.000 TND" in text
        assert "b1-digital-1-u1" in html
        assert "Hi Amira," in text

    def test_receipt_escapes_html(self):
        _, html, _ = payment_receipt(None, "<script>", "1.000", "TND", "o", "http://app")
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_failed(self):
        subject, _, text = payment_failed(None, "Physics 101", "o-1", "http://app/retry")
        assert subject == "Payment failed for Physics 101"
        assert text.startswith("Hi,")
        assert "http://app/retry" in text

    def test_expiring(self):
        assert subscription_expiring(None, "Chem", 1, "u")[0] == "Your subscription to Chem expires today"
        assert subscription_expiring(None, "Chem", 3, "u")[0] == "Your subscription to Chem expires in 3 days"


class TestCreateProvider:
    """Test provider selection from settings."""

    def test_log(self):
        assert isinstance(create_provider(Settings(email_provider="log")), LogProvider)

    def test_smtp(self):
        provider = create_provider(Settings(email_provider="smtp", smtp_host="mail.local", email_timeout_seconds=3))
        assert isinstance(provider, SMTPProvider)
        assert provider.host == "mail.local"
        assert provider.timeout == 3

    def test_resend(self):
        assert isinstance(create_provider(Settings(email_provider="resend", resend_api_key="k")), ResendProvider)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unsupported email provider"):
            create_provider(Settings(email_provider="pigeon"))


class TestEmailService:
    """Test template rendering and delivery."""

    @pytest.mark.asyncio
    async def test_send_template_renders_and_sends(self):
        provider = AsyncMock()
        provider.send = AsyncMock(return_value=True)
        service = EmailService(provider=provider, settings=Settings())

        ok = await service.send_template(
            "payment_failed",
            "student@example.com",
            {"name": "Sami", "product_title": "Bio", "order_id": "o-1", "retry_url": "http://x"},
        )

        assert ok is True
        to, subject, _html, _text = provider.send.call_args.args
        assert to == "student@example.com"
        assert subject == "Payment failed for Bio"

    @pytest.mark.asyncio
    async def test_unknown_template(self):
        service = EmailService(provider=LogProvider(), settings=Settings())
        with pytest.raises(ValueError, match="Unknown template"):
            await service.send_template("welcome", "a@b.c", {})

    @pytest.mark.asyncio
    async def test_bad_context(self):
        service = EmailService(provider=LogProvider(), settings=Settings())
        with pytest.raises(ValueError, match="Bad context"):
            await service.send_template("payment_failed", "a@b.c", {"name": "x"})

    @pytest.mark.asyncio
    async def test_provider_failure_is_reported_not_raised(self):
        provider = AsyncMock()
        provider.send = AsyncMock(return_value=False)
        service = EmailService(provider=provider, settings=Settings())
        ok = await service.send_template(
            "subscription_expiring", "a@b.c", {"name": None, "product_title": "Chem", "days_left": 3, "renew_url": "u"}
        )
        assert ok is False

    def test_url(self):
        service = EmailService(provider=LogProvider(), settings=Settings(frontend_base_url="https://eduhub.tn/"))
        assert service.url("/subscriptions") == "https://eduhub.tn/subscriptions"
