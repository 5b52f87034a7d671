import os
from datetime import time

# Settings are read at import time; tests never touch a real Postgres or Redis.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import pytest_asyncio
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.app.core import redis_client as redis_module
from backend.app.core.clock import get_today
from backend.app.db.models import Base, Category, Client, OperatingHours
from backend.app.db.session import get_session
from backend.app.main import app
from backend.app.services.availability import Weekday
from backend.tests.constants import TODAY


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def fake_redis():
    fake = FakeAsyncRedis(decode_responses=True)
    redis_module.redis_client = fake
    try:
        yield fake
    finally:
        redis_module.redis_client = None
        await fake.aclose()


@pytest_asyncio.fixture
async def client(session_factory, fake_redis):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_today] = lambda: TODAY

    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as http:
            yield http
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def seed(session_factory):
    """One client, one drinks category and a Monday 19:00-23:00 window."""
    async with session_factory() as session:
        guest = Client(first_name="Ada", last_name="Lovelace", phone="5550001000", email="ada@analytical.org")
        drinks = Category(name="Drinks")
        window = OperatingHours(
            weekday=Weekday.MONDAY,
            start_time=time(19, 0),
            end_time=time(23, 0),
            active=True,
            notes="Evening service",
        )
        session.add_all([guest, drinks, window])
        await session.commit()
        return {"client_id": guest.id, "category_id": drinks.id, "window_id": window.id}
