import os

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Default DATABASE_URL for the module-level engine; tests use the per-fixture engine below
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from zvonok.main import app
from zvonok.core.security import create_access_token
from zvonok.db.database import Base, get_db
from zvonok.db.models import User


@pytest.fixture
async def test_engine(tmp_path):
    # On-disk SQLite per test so the app's request sessions and the test session share data
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """HTTP client whose requests each get a fresh session on the test engine."""
    async def _override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(test_session):
    async def _make_user(username: str) -> User:
        user = User(username=username, email=f"{username}@example.com", display_name=username.title(), is_active=True)
        test_session.add(user)
        await test_session.commit()
        await test_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        token = create_access_token({"sub": str(user.id), "username": user.username})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
