"""
RoomMatch test configuration and fixtures.

Settings are read once at import time, so the environment is pinned here
before anything from `roommatch` is imported: a throwaway SQLite database,
2-dimensional embeddings, no Redis, no provider credentials, no backoff.
"""
import asyncio
import os
import tempfile
from datetime import date
from typing import AsyncGenerator, Callable, List, Optional, Sequence

_TMP_DIR = tempfile.mkdtemp(prefix="roommatch-tests-")
os.environ.update({
    "APP_ENV": "test",
    "DATABASE_URL": f"sqlite+aiosqlite:///{_TMP_DIR}/test.db",
    "EMBEDDING_PROVIDER": "gemini",
    "EMBEDDING_MODEL": "text-embedding-004",
    "EMBEDDING_DIM": "2",
    "EMBEDDING_BACKOFF_S": "0",
    "EMBEDDING_BACKOFF_MAX_S": "0",
    "GEMINI_API_KEY": "",
    "REDIS_URL": "",
    "SEARCH_BACKEND": "app",
    "MATCH_THRESHOLD": "0.5",
    "MATCH_LIMIT": "10",
})

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from roommatch.services.embeddings import EmbeddingClient, EmbeddingProvider


# =============================================================================
# Fake provider
# =============================================================================


class FakeProvider(EmbeddingProvider):
    """
    Records every text it is asked to embed.
    `failures` are raised, in order, before any vector is returned.
    """

    model_name = "fake-embedder"

    def __init__(
        self,
        embed_fn: Optional[Callable[[str], Sequence[float]]] = None,
        *,
        delay: float = 0.0,
        failures: Sequence[Exception] = (),
    ) -> None:
        self.calls: List[str] = []
        self.embed_fn = embed_fn or (lambda text: [1.0, 0.0])
        self.delay = delay
        self.failures = list(failures)

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)
        return list(self.embed_fn(text))


def keyword_embedder(table: dict, default=(0.0, 1.0)) -> Callable[[str], List[float]]:
    """First key (in insertion order) found in the text picks the vector."""
    def embed(text: str) -> List[float]:
        for keyword, vector in table.items():
            if keyword in text:
                return list(vector)
        return list(default)
    return embed


def make_client(provider: EmbeddingProvider, **overrides) -> EmbeddingClient:
    options = dict(dim=2, timeout_s=1.0, max_retries=2, backoff_s=0.0, backoff_max_s=0.0)
    options.update(overrides)
    return EmbeddingClient(provider, **options)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Fresh schema per test on the application's own engine."""
    from roommatch.db.session import Base, engine
    import roommatch.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Pooled aiosqlite connections must not outlive this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(db_engine):
    from roommatch.db.session import async_session_maker

    return async_session_maker


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


# =============================================================================
# Engine fixtures
# =============================================================================


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def embedding_client(provider) -> EmbeddingClient:
    return make_client(provider)


@pytest_asyncio.fixture(scope="function")
async def store(session_maker, embedding_client):
    from roommatch.services.embedding_store import EmbeddingStore

    return EmbeddingStore(session_maker, embedding_client, dim=2)


# =============================================================================
# Entity factories
# =============================================================================


@pytest.fixture
def make_listing(db_session: AsyncSession):
    from roommatch.models.listing import Listing

    async def _make(listing_id: str, title: str, **fields) -> Listing:
        listing = Listing(
            id=listing_id,
            lister_id=fields.pop("lister_id", "lister-1"),
            title=title,
            description=fields.pop("description", None),
            location=fields.pop("location", "University Area"),
            room_type=fields.pop("room_type", "private"),
            amenities=fields.pop("amenities", []),
            rent_per_month=fields.pop("rent_per_month", 700.0),
            available_from=fields.pop("available_from", date(2026, 11, 1)),
            photos=fields.pop("photos", []),
        )
        db_session.add(listing)
        await db_session.commit()
        await db_session.refresh(listing)
        return listing

    return _make


@pytest.fixture
def make_seeker(db_session: AsyncSession):
    from roommatch.models.seeker import SeekerProfile

    async def _make(seeker_id: str, qa_pairs, *, completed: bool = True) -> SeekerProfile:
        seeker = SeekerProfile(
            id=seeker_id,
            user_id=f"user-{seeker_id}",
            answers=[{"question": q, "answer": a} for q, a in qa_pairs],
            completed=completed,
        )
        db_session.add(seeker)
        await db_session.commit()
        await db_session.refresh(seeker)
        return seeker

    return _make


# =============================================================================
# API fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def api(db_engine, store) -> AsyncGenerator[AsyncClient, None]:
    from roommatch.core.deps import get_store
    from roommatch.main import app

    app.dependency_overrides[get_store] = lambda: store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
