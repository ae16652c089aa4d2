import os
import tempfile

# Settings are read at import time; point them at a throwaway SQLite file first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.test_sqlite.db")
os.environ.setdefault("METAVAULT_DISABLE_SCHEDULER", "1")
os.environ.setdefault("USER_DATA_DIR", tempfile.mkdtemp(prefix="metavault-users-"))
os.environ.setdefault("GOOGLE_CLIENT_ID", "google-client")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "google-secret")
os.environ.setdefault("GOOGLE_REDIRECT_URI", "https://metavault.test/api/cloud/googledrive/callback")
os.environ.setdefault("MS_CLIENT_ID", "ms-client")
os.environ.setdefault("MS_CLIENT_SECRET", "ms-secret")
os.environ.setdefault("MS_REDIRECT_URI", "https://metavault.test/api/cloud/onedrive/callback")

import pytest_asyncio

from metavault.db.session import SessionLocal, engine, init_models
from metavault.db.repositories.user_repository import UserRepository


@pytest_asyncio.fixture
async def db_ready():
    await init_models(drop=True)
    yield
    # Pooled aiosqlite connections are bound to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def user_id(db_ready):
    async with SessionLocal() as db:
        await UserRepository(db).create("user-1", email="user1@example.com")
        await db.commit()
    return "user-1"


@pytest_asyncio.fixture
async def other_user_id(db_ready):
    async with SessionLocal() as db:
        await UserRepository(db).create("user-2", email="user2@example.com")
        await db.commit()
    return "user-2"
