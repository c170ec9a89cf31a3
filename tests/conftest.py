"""Shared fixtures: in-memory SQLite, the in-process cache backend and an
ASGI client. The app lifespan is not run; tables and cache are wired here."""

from __future__ import annotations

import os

# before anything reads settings
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from typing import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import taskboard.models  # noqa: F401
from taskboard.cache.backends import MemoryBackend
from taskboard.cache.layer import cache_layer
from taskboard.database import get_db
from taskboard.main import app


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_backend(clock: FakeClock) -> MemoryBackend:
    return MemoryBackend(maxsize=128, timer=clock)


@pytest.fixture(autouse=True)
def wired_cache(memory_backend: MemoryBackend) -> Iterator[MemoryBackend]:
    cache_layer.use_backend(memory_backend)
    cache_layer.stats = {"hits": 0, "misses": 0, "errors": 0}
    yield memory_backend
    cache_layer.use_backend(None)


@pytest_asyncio.fixture
async def session_factory() -> AsyncIterator[async_sessionmaker]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    await engine.dispose()


@pytest_asyncio.fixture
async def client(session_factory: async_sessionmaker) -> AsyncIterator[AsyncClient]:
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_user(client: AsyncClient):
    counter = iter(range(1, 10_000))

    async def create(**overrides) -> dict:
        n = next(counter)
        payload = {"name": f"User {n}", "email": f"user{n}@example.com", **overrides}
        resp = await client.post("/api/users", json=payload)
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return create
