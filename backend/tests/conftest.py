"""
Pytest fixtures for testing.
"""
import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from typing import AsyncGenerator, Optional

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Import database module BEFORE app to allow override
import permit_approvals.database
from permit_approvals.database import Base
# Import ALL models so Base.metadata knows about all tables
from permit_approvals.models.user import User, UserRole
from permit_approvals.models.permit import Permit, PermitStatus
from permit_approvals.schemas.recipient import Recipient
from permit_approvals.services import recipients as recipient_store
from permit_approvals.services.link_issuer import IssuedLink, issue_link

# Now import app (after we can override database)
from permit_approvals.main import app as fastapi_app


# Test database URL (use in-memory SQLite for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database for each test.
    Ensures cleanup happens even if test fails.
    """
    # StaticPool keeps a single connection alive so every session
    # sees the same in-memory database
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    # Replace the app's engine and sessionmaker so get_db() uses the test DB
    original_engine = permit_approvals.database.engine
    original_sessionmaker = permit_approvals.database.AsyncSessionLocal
    
    permit_approvals.database.engine = test_engine
    permit_approvals.database.AsyncSessionLocal = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    session = async_session()
    
    try:
        yield session
    finally:
        try:
            await session.close()
        except Exception as e:
            print(f"Warning: Failed to close session: {e}")
        
        try:
            async with test_engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
        except Exception as e:
            print(f"Warning: Failed to drop tables: {e}")
        
        try:
            await test_engine.dispose()
        except Exception as e:
            print(f"Warning: Failed to dispose engine: {e}")
        
        permit_approvals.database.engine = original_engine
        permit_approvals.database.AsyncSessionLocal = original_sessionmaker


@pytest_asyncio.fixture
async def async_client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing endpoints.
    
    The db fixture already replaced the engine with the test engine,
    so all endpoints will automatically use the test database.
    """
    transport = ASGITransport(app=fastapi_app)
    
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=True  # Follow 307 redirects for trailing slashes
    ) as client:
        yield client


async def _make_user(db: AsyncSession, email: str, full_name: str, role: UserRole) -> User:
    user = User(email=email, full_name=full_name, role=role)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def manager_user(db: AsyncSession) -> User:
    return await _make_user(db, "manager@example.com", "Morgan Manager", UserRole.MANAGER)


@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> User:
    return await _make_user(db, "admin@example.com", "Ada Admin", UserRole.ADMIN)


@pytest_asyncio.fixture
async def plain_user(db: AsyncSession) -> User:
    return await _make_user(db, "viewer@example.com", "Val Viewer", UserRole.USER)


@pytest_asyncio.fixture
async def client(async_client: AsyncClient, manager_user: User) -> AsyncClient:
    """Client authenticated as a manager (cookie holds the user id)."""
    async_client.cookies.set("auth_token", str(manager_user.id))
    return async_client


@pytest_asyncio.fixture
async def admin_client(async_client: AsyncClient, admin_user: User) -> AsyncClient:
    """Client authenticated as an admin."""
    async_client.cookies.set("auth_token", str(admin_user.id))
    return async_client


@pytest_asyncio.fixture
async def recipients(db: AsyncSession) -> list[Recipient]:
    """Two configured approval recipients."""
    await recipient_store.add_recipient(db, "Alice Approver", "alice@example.com")
    return await recipient_store.add_recipient(db, "Bob Builder", "bob@example.com")


async def make_permit(
    db: AsyncSession,
    status: PermitStatus = PermitStatus.PENDING_APPROVAL,
    ref_number: str = "PTW-0001",
    holder_email: Optional[str] = "holder@example.com",
) -> Permit:
    permit = Permit(
        ref_number=ref_number,
        template_name="Hot Work",
        holder_name="Harper Holder",
        holder_email=holder_email,
        unique_link=f"link-{ref_number.lower()}",
        status=status.value,
    )
    db.add(permit)
    await db.commit()
    await db.refresh(permit)
    return permit


@pytest_asyncio.fixture
async def permit(db: AsyncSession) -> Permit:
    """A permit waiting for approval."""
    return await make_permit(db)


async def issue_for(
    db: AsyncSession,
    permit: Permit,
    email: str,
    name: str = "",
    ttl: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> IssuedLink:
    """Issue and commit a link for one recipient."""
    recipient = Recipient(id=f"r-{email}", name=name, email=email)
    issued = await issue_link(db, permit, recipient, ttl=ttl, now=now)
    await db.commit()
    return issued
