"""
Pytest configuration for LeadsRadar tests.
Points the app at a throwaway SQLite database before anything imports settings.
"""

import asyncio
import os
import tempfile
import uuid

# Must be set before any leadsradar import
_test_data_dir = tempfile.mkdtemp(prefix="leadsradar_test_")
_db_path = os.path.join(_test_data_dir, "test.db")
os.environ["LEADSRADAR_DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_path}"
os.environ["LEADSRADAR_JWT_SECRET"] = "test-secret"
os.environ["LEADSRADAR_GEMINI_API_KEY"] = "test-gemini-key"
os.environ["LEADSRADAR_API_KEY_ENV"] = "test"

import pytest
import pytest_asyncio
import sqlalchemy as sa

from leadsradar import background
from leadsradar.db.models import Base
from leadsradar.db.session import engine
from leadsradar.security.identity import create_token

# Schema is managed through a plain sync engine on the same file so it can be
# reset between tests regardless of which event loop the test runs on.
_schema_engine = sa.create_engine(f"sqlite:///{_db_path}")


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(_schema_engine)
    yield
    Base.metadata.drop_all(_schema_engine)


@pytest_asyncio.fixture
async def db(schema):
    """For async tests: flush background writes and release pooled connections
    while the test's event loop is still running."""
    yield
    await background.drain()
    await engine.dispose()


def run_sync(coro):
    """Run a core coroutine from a sync test (e.g. to seed data around a TestClient)."""

    async def _main():
        try:
            return await coro
        finally:
            await background.drain()
            await engine.dispose()

    return asyncio.run(_main())


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def other_user_id():
    return uuid.uuid4()


@pytest.fixture
def bearer(user_id):
    return {"Authorization": f"Bearer {create_token(user_id, email='owner@example.com')}"}


@pytest.fixture
def run():
    return run_sync
