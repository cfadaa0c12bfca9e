"""
Outbound email with a pluggable delivery provider.

Providers: SMTP, the Resend HTTP API, and a log-only provider used in
development and tests. Providers never raise; `send` returns False on any
delivery failure so the outbound task runner can retry it.
"""

from __future__ import annotations

import ssl
from abc import ABC, abstractmethod
from collections.abc import Callable
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib
import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eduhub.config import Settings, get_settings
from eduhub.db.models import Profile
from eduhub.email.templates import payment_failed, payment_receipt, subscription_expiring

logger = structlog.get_logger()

TEMPLATES: dict[str, Callable[..., tuple[str, str, str]]] = {
    "payment_receipt": payment_receipt,
    "payment_failed": payment_failed,
    "subscription_expiring": subscription_expiring,
}


class BaseEmailProvider(ABC):
    """A way of handing a rendered message to a mail system."""

    name = "base"

    @abstractmethod
    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        """Deliver one message. True on success."""


class LogProvider(BaseEmailProvider):
    """Writes the message to the log instead of delivering it."""

    name = "log"

    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        logger.info("email_logged", to=to_email, subject=subject, text_length=len(text_body))
        return True


class SMTPProvider(BaseEmailProvider):
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, to_email: str, subject: str, html_body: str, text_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        try:
            await aiosmtplib.send(
                self._build_message(to_email, subject, html_body, text_body),
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
                tls_context=ssl.create_default_context() if self.use_tls else None,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError):
            logger.exception("email_send_failed", to=to_email, provider=self.name)
            return False
        logger.info("email_sent", to=to_email, subject=subject, provider=self.name)
        return True


class ResendProvider(BaseEmailProvider):
    name = "resend"
    endpoint = "https://api.resend.com/emails"

    def __init__(self, api_key: str, sender: str, timeout: float = 10.0) -> None:
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        payload = {
            "from": self.sender,
            "to": [to_email],
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.endpoint,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPError:
            logger.exception("email_send_failed", to=to_email, provider=self.name)
            return False
        logger.info("email_sent", to=to_email, subject=subject, provider=self.name)
        return True


def create_provider(settings: Settings) -> BaseEmailProvider:
    """Build the provider named by `settings.email_provider`."""
    sender = f"{settings.email_from_name} <{settings.email_from_address}>"
    provider_name = settings.email_provider.lower()

    if provider_name == "log":
        return LogProvider()
    if provider_name == "smtp":
        return SMTPProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=sender,
            use_tls=settings.smtp_use_tls,
            timeout=settings.email_timeout_seconds,
        )
    if provider_name == "resend":
        return ResendProvider(
            api_key=settings.resend_api_key,
            sender=sender,
            timeout=settings.email_timeout_seconds,
        )
    msg = f"Unsupported email provider: {provider_name}"
    raise ValueError(msg)


async def get_recipient(db: AsyncSession, user_id: str) -> Profile | None:
    """Profile row holding the user's email address and display name."""
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    return result.scalar_one_or_none()


class EmailService:
    """Renders templates and hands them to the configured provider."""

    def __init__(self, provider: BaseEmailProvider | None = None, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.provider = provider or create_provider(self.settings)

    def url(self, path: str) -> str:
        """Absolute frontend URL for an app path."""
        return f"{self.settings.frontend_base_url.rstrip('/')}/{path.lstrip('/')}"

    async def send_template(self, template_id: str, to: str, context: dict[str, object]) -> bool:
        """
        Render `template_id` with `context` and send it to `to`.

        Raises:
            ValueError: If the template is unknown or the context does not fit it.
        """
        render = TEMPLATES.get(template_id)
        if render is None:
            msg = f"Unknown template: {template_id}"
            raise ValueError(msg)
        try:
            subject, html_body, text_body = render(**context)
        except TypeError as e:
            msg = f"Bad context for template {template_id}: {e}"
            raise ValueError(msg) from e
        return await self.provider.send(to, subject, html_body, text_body)

    async def send_to_user(
        self,
        db: AsyncSession,
        user_id: str,
        template_id: str,
        context: dict[str, object],
    ) -> bool:
        """Send to the address on the user's profile. A user without one is skipped."""
        profile = await get_recipient(db, user_id)
        if profile is None or not profile.email:
            logger.info("email_skipped_no_address", user_id=user_id, template=template_id)
            return True
        return await self.send_template(template_id, profile.email, {"name": profile.full_name, **context})


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get or create the email service singleton."""
    global _email_service  # noqa: PLW0603
    if _email_service is None:
        _email_service = EmailService()
    return _email_service


def reset_email_service() -> None:
    """Reset the email service singleton (for testing)."""
    global _email_service  # noqa: PLW0603
    _email_service = None
