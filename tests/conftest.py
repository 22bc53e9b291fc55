"""Test configuration and fixtures."""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-inward-console"
os.environ["NOTIFICATIONS_ENABLED"] = "true"

import pytest
import pytest_asyncio
from typing import AsyncGenerator, Callable, Dict, Optional
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from inward.main import app
from inward.core.database import Base, get_db
from inward.core.security import create_access_token
from inward.core.enums import SubscriptionStatus, UserRole
from inward.models.tenant import Tenant
from inward.models.user import User, TenantMembership
from inward.models.notification import WhatsAppSettings
from inward.services.notifications import NotificationDispatcher, get_notification_dispatcher
from inward.services.tenant_resolver import TenantContext
from inward.whatsapp import MockTransport


PRODUCTS = [
    {"product": "Seat covers", "brand": "Autoform", "department": "Interior", "price": "1000"},
    {"product": "Dashcam", "brand": "70mai", "department": "Electronics", "price": "2000"},
    {"product": "Mud flaps", "department": "Exterior", "price": "500"},
]

PHONES = {
    UserRole.ADMIN: "9800000001",
    UserRole.MANAGER: "9800000002",
    UserRole.COORDINATOR: "9800000003",
    UserRole.INSTALLER: "9800000004",
    UserRole.ACCOUNTANT: "9800000005",
}


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite so background notification sessions see committed rows."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def whatsapp() -> MockTransport:
    return MockTransport()


@pytest.fixture
def dispatcher(session_factory, whatsapp) -> NotificationDispatcher:
    return NotificationDispatcher(session_factory=session_factory, transport=whatsapp)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, dispatcher) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and notification overrides."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def create_tenant(db: AsyncSession, name: str, slug: str) -> Tenant:
    tenant = Tenant(name=name, workspace_slug=slug, subscription_status=SubscriptionStatus.ACTIVE)
    db.add(tenant)
    await db.commit()
    await db.refresh(tenant)
    return tenant


async def create_member(
    db: AsyncSession,
    tenant: Tenant,
    role: UserRole,
    email: str,
    phone: Optional[str] = None,
    is_primary_admin: bool = False,
) -> User:
    user = User(email=email, full_name=f"{role.value.title()} User", phone=phone)
    db.add(user)
    await db.flush()
    db.add(TenantMembership(
        tenant_id=tenant.id,
        user_id=user.id,
        role=role,
        is_primary_admin=is_primary_admin,
    ))
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def tenant(db_session: AsyncSession) -> Tenant:
    return await create_tenant(db_session, "Speedline Accessories", "speedline")


@pytest_asyncio.fixture
async def other_tenant(db_session: AsyncSession) -> Tenant:
    return await create_tenant(db_session, "Metro Car Care", "metro")


@pytest_asyncio.fixture
async def members(db_session: AsyncSession, tenant: Tenant) -> Dict[UserRole, User]:
    """One member per role in ``tenant``, each with a phone number."""
    users = {}
    for role in UserRole:
        users[role] = await create_member(
            db_session,
            tenant,
            role,
            email=f"{role.value}@speedline.test",
            phone=PHONES[role],
            is_primary_admin=role == UserRole.ADMIN,
        )
    return users


@pytest_asyncio.fixture
async def outsider(db_session: AsyncSession, other_tenant: Tenant) -> User:
    """Manager of the other tenant."""
    return await create_member(
        db_session, other_tenant, UserRole.MANAGER, email="manager@metro.test", phone="9700000001"
    )


@pytest_asyncio.fixture
async def super_admin(db_session: AsyncSession) -> User:
    user = User(email="root@inward.test", full_name="Platform Admin", is_super_admin=True)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def whatsapp_enabled(db_session: AsyncSession, tenant: Tenant) -> WhatsAppSettings:
    config = WhatsAppSettings(tenant_id=tenant.id, enabled=True, provider="mock")
    db_session.add(config)
    await db_session.commit()
    return config


@pytest.fixture
def auth_headers() -> Callable[..., dict]:
    """Build authorization headers for a user, optionally selecting a workspace."""
    def _headers(user: User, tenant_id: Optional[str] = None, hint: Optional[str] = None) -> dict:
        token = create_access_token(user_id=user.id, tenant_id=hint, email=user.email)
        headers = {"Authorization": f"Bearer {token}"}
        if tenant_id:
            headers["X-Tenant-ID"] = tenant_id
        return headers
    return _headers


@pytest.fixture
def ctx_for(tenant: Tenant) -> Callable[..., TenantContext]:
    """TenantContext for calling the workflow services directly."""
    def _ctx(user: User, role: UserRole, tenant_id: Optional[str] = None) -> TenantContext:
        return TenantContext(user_id=user.id, role=role, tenant_id=tenant_id or tenant.id)
    return _ctx


@pytest.fixture
def products() -> list:
    return [dict(item) for item in PRODUCTS]


@pytest.fixture
def make_member(db_session: AsyncSession) -> Callable:
    async def _make(tenant: Tenant, role: UserRole, email: str, phone: Optional[str] = None) -> User:
        return await create_member(db_session, tenant, role, email=email, phone=phone)
    return _make
