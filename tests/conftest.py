import os
import tempfile
import uuid
from pathlib import Path
from typing import Optional

# Settings are read at import time, so the test environment goes first
TEST_DB_PATH = Path(tempfile.gettempdir()) / f"assistant_gateway_test_{uuid.uuid4().hex[:8]}.db"
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{TEST_DB_PATH}")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ALGORITHM", "HS256")
os.environ.setdefault("ACCESS_TOKEN_EXPIRE_MINUTES", "30")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from assistant_api.core.security import create_access_token, hash_password
from assistant_api.main import app
from assistant_api.core import models
from assistant_api.core.database import Base, get_db

TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"

# NullPool: every test runs on its own event loop, connections must not outlive it
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestingSessionLocal = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


# Create the tables once for the whole run and drop the db file afterwards
@pytest.fixture(scope="session", autouse=True)
def set_up_db():
    schema_engine = create_engine(f"sqlite:///{TEST_DB_PATH}")
    Base.metadata.create_all(schema_engine)
    yield  # Tests happens here
    Base.metadata.drop_all(schema_engine)
    schema_engine.dispose()
    TEST_DB_PATH.unlink(missing_ok=True)


# Create session and rollback once it is done
@pytest_asyncio.fixture(scope="function")
async def db_session():
    async with TestingSessionLocal() as session:
        yield session
        await session.rollback()
        await session.close()


# Client
@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(db_session: AsyncSession, prefix: str, role: str, nip: Optional[str]):
    # Unique email for each test to avoid duplicates
    user = models.User(
        name=f"{prefix.title()} User",
        email=f"{prefix}_{uuid.uuid4().hex[:8]}@example.com",
        password=hash_password("password123"),
        role=role,
        security_nip=nip,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


# Standard user
@pytest_asyncio.fixture(scope="function")
async def test_user(db_session: AsyncSession):
    return await create_user(db_session, "user", "standard", "0000")


# Admin
@pytest_asyncio.fixture(scope="function")
async def test_admin(db_session: AsyncSession):
    return await create_user(db_session, "admin", "admin", "1234")


# Standard user without a NIP, target of admin operations
@pytest_asyncio.fixture(scope="function")
async def other_user(db_session: AsyncSession):
    return await create_user(db_session, "other", "standard", None)


# Token for user
@pytest_asyncio.fixture(scope="function")
async def auth_headers_user(test_user):
    token = create_access_token({"user_id": test_user.id})
    return {"Authorization": f"Bearer {token}"}


# Token for admin
@pytest_asyncio.fixture(scope="function")
async def auth_headers_admin(test_admin):
    token = create_access_token({"user_id": test_admin.id})
    return {"Authorization": f"Bearer {token}"}


# Note owned by the standard user
@pytest_asyncio.fixture(scope="function")
async def test_note(db_session: AsyncSession, test_user):
    note = models.Note(
        user_id=test_user.id,
        title=f"Test Note {uuid.uuid4().hex[:8]}",
        content="Test Content",
    )
    db_session.add(note)
    await db_session.commit()
    await db_session.refresh(note)
    return note
