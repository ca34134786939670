"""Shared pytest fixtures for the back-office test suite.

Provides:
- In-memory async SQLite database (no PostgreSQL needed for tests)
- FastAPI test client (httpx.AsyncClient) sharing the test session
- Fake notification channels on a fresh NotificationManager
- Test data builders (users, templates, triggers, signatures)
- Auth helpers (JWT tokens, API keys)
"""

import os
from datetime import timedelta
from typing import AsyncGenerator, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("PUBLIC_BASE_URL", "https://backoffice.test")

from db.base import Base  # noqa: E402
from core.constants import SIGNATURE_EXPIRY_DAYS, ActionType  # noqa: E402
from core.security import create_access_token  # noqa: E402
from core.utils import utc_now_naive  # noqa: E402
from notifications.channels import BaseChannel, DeliveryResult, Notification  # noqa: E402
from notifications.manager import NotificationManager  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database per test; one shared connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    # Import all models so Base.metadata knows about them
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def foreign_keys(db_engine):
    """Enforce foreign keys on the shared SQLite connection, as PostgreSQL does.

    Request it before any fixture that writes rows.
    """
    async with db_engine.connect() as conn:
        await conn.exec_driver_sql("PRAGMA foreign_keys=ON")
    yield


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session; the app under test shares it."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Notification fakes
# ---------------------------------------------------------------------------

class FakeChannel(BaseChannel):
    """Records deliveries; can fail or raise for chosen recipients."""

    def __init__(self, channel_type: ActionType):
        self.channel_type = channel_type
        self.sent: list[Notification] = []
        self.fail_for: set[str] = set()
        self.raise_for: set[str] = set()

    async def send(self, notification: Notification, db=None) -> DeliveryResult:
        if notification.recipient in self.raise_for:
            raise RuntimeError(f"transport exploded for {notification.recipient}")
        if notification.recipient in self.fail_for:
            return DeliveryResult(
                success=False,
                channel=self.channel_type,
                recipient=notification.recipient,
                error="simulated failure",
            )
        self.sent.append(notification)
        return DeliveryResult(
            success=True,
            channel=self.channel_type,
            recipient=notification.recipient,
            message="delivered",
            response_data={"fake": True},
        )


@pytest.fixture
def fake_channels() -> dict[ActionType, FakeChannel]:
    return {channel: FakeChannel(channel) for channel in ActionType}


@pytest.fixture
def notification_manager(fake_channels) -> NotificationManager:
    """Fresh manager with a fake channel for every action type."""
    manager = NotificationManager()
    for channel in fake_channels.values():
        manager.register_channel(channel)
    return manager


@pytest.fixture
def email_channel(fake_channels) -> FakeChannel:
    return fake_channels[ActionType.EMAIL]


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(db_session, notification_manager):
    """FastAPI app whose requests use the test session and fake channels."""
    import notifications.manager as manager_mod
    from app.dependencies import get_db
    from app.main import create_app

    async def _override_get_db():
        yield db_session
        await db_session.flush()

    original_manager = manager_mod._manager
    manager_mod._manager = notification_manager

    test_app = create_app()
    test_app.dependency_overrides[get_db] = _override_get_db

    yield test_app

    test_app.dependency_overrides.clear()
    manager_mod._manager = original_manager


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def test_user(db_session):
    """Create an active back-office user."""
    from db.models.user import User

    user = User(
        id=str(uuid4()),
        email=f"agent-{uuid4().hex[:8]}@example.com",
        username=f"agent_{uuid4().hex[:6]}",
        first_name="Alex",
        last_name="Agent",
        phone="+15550001111",
        communication_preference="both",
        is_active=True,
    )
    db_session.add(user)
    await db_session.flush()
    return user


@pytest.fixture
def auth_headers(test_user) -> dict:
    """Generate Authorization headers with a valid JWT token."""
    token = create_access_token(user_id=test_user.id, email=test_user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def email_config() -> dict:
    return {
        "subject": "Welcome {{firstName}}",
        "htmlContent": "<p>Hello {{firstName}}, your company is {{companyName}}.</p>",
        "textContent": "Hello {{firstName}}, your company is {{companyName}}.",
    }


@pytest.fixture
def make_template(db_session, email_config):
    """Factory creating a validated template through the service."""
    from services.action_template_service import ActionTemplateService

    async def _make(name: Optional[str] = None, action_type: str = "email", config: Optional[dict] = None, **extra):
        return await ActionTemplateService(db_session).create_template({
            "name": name or f"Template {uuid4().hex[:6]}",
            "action_type": action_type,
            "config": config if config is not None else email_config,
            **extra,
        })

    return _make


@pytest.fixture
def make_trigger(db_session):
    """Factory creating a catalog entry."""
    from services.trigger_catalog_service import TriggerCatalogService

    async def _make(trigger_key: Optional[str] = None, **extra):
        return await TriggerCatalogService(db_session).create_entry({
            "trigger_key": trigger_key or f"event_{uuid4().hex[:6]}",
            "name": extra.pop("name", "Test Event"),
            **extra,
        })

    return _make


@pytest.fixture
def link_action(db_session):
    """Factory attaching a template to a trigger."""
    from services.trigger_catalog_service import TriggerCatalogService

    async def _link(trigger, template, **fields):
        return await TriggerCatalogService(db_session).add_action(
            trigger.id, {"action_template_id": template.id, **fields}
        )

    return _link


@pytest.fixture
def make_signature(db_session):
    """Factory for a pending signature request requested ``age_days`` ago."""
    from db.models.signature import SignatureCapture

    async def _make(age_days: float, lifetime_days: float = SIGNATURE_EXPIRY_DAYS, now=None, **extra):
        now = now or utc_now_naive()
        requested = now - timedelta(days=age_days)
        signature = SignatureCapture(
            role_key=extra.pop("role_key", "owner"),
            signer_name=extra.pop("signer_name", "Olivia Owner"),
            signer_email=extra.pop("signer_email", "olivia@example.com"),
            request_token=extra.pop("request_token", uuid4().hex),
            timestamp_requested=requested,
            timestamp_expires=requested + timedelta(days=lifetime_days),
            **extra,
        )
        db_session.add(signature)
        await db_session.flush()
        return signature

    return _make


@pytest.fixture
def make_api_key(db_session):
    """Factory for a stored API key; returns (raw_key, row)."""
    from core.api_keys import generate_api_key
    from db.models.api_key import APIKey

    async def _make(permissions=None, rate_limit: int = 100, **extra):
        raw_key, key_id, secret_hash = generate_api_key()
        row = APIKey(
            key_id=key_id,
            key_secret_hash=secret_hash,
            name=extra.pop("name", "Lead Intake Form"),
            permissions=permissions if permissions is not None else ["triggers.fire"],
            rate_limit=rate_limit,
            **extra,
        )
        db_session.add(row)
        await db_session.flush()
        return raw_key, row

    return _make


@pytest.fixture(autouse=True)
def _reset_usage_counter():
    from core.rate_limit import get_usage_counter

    get_usage_counter().reset()
    yield
    get_usage_counter().reset()
