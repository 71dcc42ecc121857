from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from roommatch.core.config import settings


# ── Base ───────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


# ── Engine ─────────────────────────────────────────────────────────────────────
_db_url = str(settings.DATABASE_URL)
_engine_kwargs: dict = {"pool_pre_ping": True}
if not _db_url.startswith("sqlite"):
    # SQLite (tests, local dev) runs on its own pool class without sizing knobs
    _engine_kwargs.update(pool_size=10, max_overflow=20)

engine = create_async_engine(
    _db_url,
    echo=settings.APP_ENV == "development",
    **_engine_kwargs,
)

# ── Session factory ────────────────────────────────────────────────────────────
async_session_maker = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── FastAPI dependency ─────────────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session
