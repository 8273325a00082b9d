"""Shared test fixtures - stores, engine, async SQLite, HTTP client.

Provides:
- In-memory progression store and an engine that retries without sleeping
- Async in-memory SQLite for the SQLAlchemy store
- Async FastAPI test client wired to the in-memory store
- State factory
"""
import os

# Set env vars BEFORE importing app modules (config reads at import time)
os.environ.setdefault("STUDYHUB_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STUDYHUB_TIMEZONE", "UTC")

from datetime import timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from studyhub.models import Base
from studyhub.services.badges import BadgeCatalog
from studyhub.services.engine import ProgressionEngine
from studyhub.services.retry import RetryPolicy
from studyhub.services.state import CounterKind, ProgressionState, zero_counters
from studyhub.services.store import InMemoryProgressionStore, SqlAlchemyProgressionStore


@pytest.fixture
def catalog():
    return BadgeCatalog()


@pytest.fixture
def store():
    return InMemoryProgressionStore()


@pytest.fixture
def engine(store, catalog):
    """Engine with default rules, UTC days and no backoff sleeps."""
    return ProgressionEngine(
        store,
        catalog,
        retry_policy=RetryPolicy.immediate(),
        tz=timezone.utc,
    )


@pytest.fixture
async def sql_store():
    """SQLAlchemy store on a fresh in-memory SQLite schema.

    StaticPool keeps the single in-memory connection alive across sessions.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlAlchemyProgressionStore(
        async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    )
    await test_engine.dispose()


@pytest.fixture
async def client(store):
    """Async HTTP test client for the FastAPI app, backed by the in-memory store.

    Uses httpx AsyncClient with ASGI transport - no real server needed.
    """
    from studyhub.main import app
    from studyhub.api.progression import get_store

    app.dependency_overrides[get_store] = lambda: store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Test data factories ---

def make_state(user_id: int = 1, counters: dict | None = None, **overrides) -> ProgressionState:
    """Create a ProgressionState with sensible defaults.

    ``counters`` takes plain counter names, e.g. ``{"flashcards_created": 4}``.
    """
    parsed = zero_counters()
    for key, value in (counters or {}).items():
        parsed[CounterKind(key)] = value
    state = ProgressionState(user_id=user_id, counters=parsed)
    for key, value in overrides.items():
        setattr(state, key, value)
    return state
