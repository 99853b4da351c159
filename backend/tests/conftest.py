"""
Pytest configuration and shared fixtures.

This module provides:
- Environment variable setup for tests
- In-memory database with the get_db dependency overridden
- An HTTP client bound to the FastAPI app
- Seed users, admins and stories
"""

import os
import sys
from pathlib import Path

from solders.keypair import Keypair

# Set test environment variables BEFORE any imports
# This must happen first to ensure settings load with test values
TREASURY_KEYPAIR = Keypair()
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test_secret_key_at_least_32_characters_long_for_jwt"
os.environ["TREASURY_ADDRESS"] = str(TREASURY_KEYPAIR.pubkey())
os.environ["ENVIRONMENT"] = "testing"
os.environ["ENABLE_RATE_LIMITING"] = "false"
os.environ["REDIS_URL"] = "redis://localhost:6399/15"
os.environ["RESEND_API_KEY"] = "re_test_key"
os.environ["OPENAI_API_KEY"] = "sk-test"
os.environ["SOLANA_FALLBACK_RPC_URLS"] = ""

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from storiesfun.core.cache import cache_manager  # noqa: E402
from storiesfun.database import Base, get_db  # noqa: E402
from storiesfun.main import app  # noqa: E402
from storiesfun.models import Admin, Story, StoryStatus, User  # noqa: E402


def new_wallet() -> str:
    """A fresh, valid Solana address."""
    return str(Keypair().pubkey())


@pytest.fixture
async def session_maker():
    """
    Create an in-memory database shared by the test and the app.

    Yields:
        async_sessionmaker bound to the test engine
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_maker):
    """Session for arranging and inspecting test data."""
    async with session_maker() as session:
        yield session


@pytest.fixture
async def client(session_maker):
    """
    HTTP client against the app with get_db overridden.

    Each request gets its own session, mirroring production.
    """
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    cache_manager._local.clear()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    cache_manager._local.clear()


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory creating committed users."""
    counter = {"n": 0}

    async def _make_user(**overrides) -> User:
        counter["n"] += 1
        values = {
            "username": f"reader{counter['n']}",
            "email": f"reader{counter['n']}@example.com",
            "wallet_address": new_wallet(),
        }
        values.update(overrides)
        user = User(**values)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
async def author(make_user) -> User:
    return await make_user(username="author", email="author@example.com")


@pytest.fixture
async def admin(db_session: AsyncSession) -> Admin:
    admin = Admin(username="mod", admin_name="Moderator", wallet_address=new_wallet())
    db_session.add(admin)
    await db_session.commit()
    return admin


@pytest.fixture
def make_story(db_session: AsyncSession, author: User):
    """Factory creating committed stories owned by the author fixture."""

    async def _make_story(**overrides) -> Story:
        values = {
            "author_id": author.id,
            "title": "The Lighthouse",
            "content": "Once upon a time " * 40,
            "price_tokens": 0,
            "status": StoryStatus.PUBLISHED.value,
        }
        values.update(overrides)
        story = Story(**values)
        db_session.add(story)
        await db_session.commit()
        return story

    return _make_story
