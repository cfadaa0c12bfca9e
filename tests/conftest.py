"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

os.environ.update({
    "EDUHUB_JWT_SECRET": "test-jwt-secret",
    "EDUHUB_CRON_SECRET": "test-cron-secret",
    "EDUHUB_SERVICE_API_SECRET": "test-service-secret",
    "EDUHUB_PAYMENT_WEBHOOK_SECRET": "test-webhook-secret",
    "EDUHUB_REDIS_URL": "",
    "EDUHUB_EMAIL_PROVIDER": "log",
    "EDUHUB_LOG_FORMAT": "console",
    "EDUHUB_OUTBOX_BASE_DELAY_SECONDS": "0",
    "EDUHUB_OUTBOX_TASK_TIMEOUT_SECONDS": "5",
})

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from eduhub.auth.jwt import create_access_token  # noqa: E402
from eduhub.config import get_settings  # noqa: E402
from eduhub.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from eduhub.db import models  # noqa: E402, F401
from eduhub.db.base import Base  # noqa: E402
from eduhub.email.service import reset_email_service  # noqa: E402
from eduhub.tasks.outbox import Outbox, close_outbox, get_outbox, init_outbox  # noqa: E402

get_settings.cache_clear()

CRON_SECRET = "test-cron-secret"
SERVICE_SECRET = "test-service-secret"
WEBHOOK_SECRET = "test-webhook-secret"


def bearer(user_id: str) -> dict[str, str]:
    """Authorization header carrying a user access token."""
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def secret_header(secret: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {secret}"}


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[None, None]:
    """Fresh SQLite database file per test, schema created from the models."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'eduhub_test.db'}", command_timeout=10.0)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    init_outbox(get_settings())
    yield
    await close_outbox()
    await close_db()
    reset_email_service()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for arranging data and asserting on it."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def session_factory(database) -> Callable[[], AsyncSession]:
    return get_session_factory()


@pytest_asyncio.fixture
async def outbox(database) -> Outbox:
    return get_outbox()


@pytest_asyncio.fixture
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app. The fixture, not the lifespan, owns DB and outbox."""
    from eduhub.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def mock_email_service(monkeypatch):
    """Replace the email service everywhere outbound tasks look it up."""
    mock_service = MagicMock()
    mock_service.send_to_user = AsyncMock(return_value=True)
    mock_service.send_template = AsyncMock(return_value=True)
    mock_service.url = lambda path: f"http://localhost:3000{path}"

    monkeypatch.setattr("eduhub.purchases.effects.get_email_service", lambda: mock_service)
    monkeypatch.setattr("eduhub.subscriptions.expiry_scanner.get_email_service", lambda: mock_service)
    return mock_service
