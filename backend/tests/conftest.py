from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel.ext.asyncio.session import AsyncSession

from interview_prep.api.deps import get_db
from interview_prep.core.config import Settings
from interview_prep.core.db import init_db, make_memory_engine
from interview_prep.main import create_app
from interview_prep.models import Category, Lesson, Topic, User
from tests.utils.content import create_category, create_lesson, create_topic
from tests.utils.user import create_random_user


@pytest.fixture(scope="function")
def settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite://",
        SECRET_KEY="test-secret-key",
        LOG_LEVEL="DEBUG",
    )


@pytest_asyncio.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database for every test."""
    engine = make_memory_engine()
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def app(settings: Settings, engine: AsyncEngine) -> FastAPI:
    return create_app(settings, engine=engine)


@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c


@pytest_asyncio.fixture(scope="function")
async def client_with_test_db(
    app: FastAPI, db: AsyncSession, client: AsyncClient
) -> AsyncGenerator[AsyncClient, None]:
    """
    Wraps the client and overrides the DB session to use the test session.
    """

    async def _override_get_session():
        yield db  # Reuse the same session

    app.dependency_overrides[get_db] = _override_get_session
    yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def create_user(db: AsyncSession) -> User:
    """
    Fixture to create a random user in the database.
    """
    return await create_random_user(db)


@pytest_asyncio.fixture(scope="function")
async def frontend_category(db: AsyncSession) -> Category:
    return await create_category(db, slug="frontend", name="Frontend Development")


@pytest_asyncio.fixture(scope="function")
async def react_hooks(db: AsyncSession, frontend_category: Category) -> Topic:
    return await create_topic(
        db,
        category=frontend_category,
        slug="react-hooks",
        name="React Hooks",
        difficulty_level="intermediate",
        estimated_time=200,
    )


@pytest_asyncio.fixture(scope="function")
async def hook_lessons(db: AsyncSession, react_hooks: Topic) -> list[Lesson]:
    """
    Three lessons L1, L2, L3 of the react-hooks topic, in that order.
    """
    return [
        await create_lesson(
            db,
            topic=react_hooks,
            slug=f"hooks-lesson-{i}",
            title=f"Hooks lesson {i}",
            order_index=i,
        )
        for i in (1, 2, 3)
    ]
