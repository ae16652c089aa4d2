# metavault/db/session.py
"""
Database session and base class setup (SQLAlchemy 2.0 style).
"""
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from metavault.config import settings

DATABASE_URL = settings.DATABASE_URL

# If tests set an in-memory SQLite URL, replace it with a file-backed URL
# so multiple connections share the same schema during pytest runs.
if DATABASE_URL and ":memory:" in DATABASE_URL:
    file_db = "sqlite+aiosqlite:///./.test_sqlite.db"
    DATABASE_URL = file_db

_engine_kwargs = {"future": True, "echo": False}
if DATABASE_URL.startswith("sqlite"):
    # Concurrent writers wait on the database lock instead of failing fast
    _engine_kwargs["connect_args"] = {"timeout": 15}
else:
    _engine_kwargs["pool_pre_ping"] = True

engine = create_async_engine(DATABASE_URL, **_engine_kwargs)
SessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)

Base = declarative_base()


async def init_models(drop: bool = False) -> None:
    """Create all tables (optionally dropping them first).

    Used at application startup for SQLite deployments and by the test suite.
    """
    # Import models so they register on Base.metadata
    from metavault.db import models  # noqa: F401

    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def check_db_ready() -> bool:
    """Return True if the database responds to a simple SELECT 1, else False."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
