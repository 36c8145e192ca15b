"""
Pytest configuration and fixtures for orgtree tests
"""

import os
import sys
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

# Import Base first, before importing the app
from orgtree.database import Base, get_db

# Test database URL - in-memory SQLite by default.
# Set TEST_DATABASE_URL to run against PostgreSQL instead.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite://")

if TEST_DATABASE_URL.startswith("sqlite"):
    # One shared connection so every session sees the same in-memory database
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's implicit transaction handling breaks SAVEPOINT; take it over.
    @event.listens_for(test_engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

else:
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, pool_pre_ping=True)

TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)

# Now import and patch the app's database components
import orgtree.database as database_module  # noqa: E402
from orgtree.main import app  # noqa: E402
from orgtree.models.entitlement import GRANT_KEY_INDEX  # noqa: E402

database_module.engine = test_engine
database_module.AsyncSessionLocal = TestSessionLocal


@pytest.fixture(scope="function")
async def setup_test_database():
    """
    Create a fresh schema for each test function that needs it.
    Tests should depend on this fixture (or test_db) to trigger setup.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
async def test_db(setup_test_database) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for tests that need it."""
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
async def without_grant_key(test_db: AsyncSession):
    """
    Drop the (tenant, application) unique index so a test can seed the
    duplicate grant rows left over from before the index existed.
    """
    await test_db.execute(text(f"DROP INDEX {GRANT_KEY_INDEX}"))
    await test_db.commit()


@pytest.fixture
def async_db_session(test_db: AsyncSession):
    """Alias for test_db for compatibility"""
    return test_db


def override_get_db():
    """Override database dependency for testing"""

    async def _override():
        async with TestSessionLocal() as session:
            yield session

    return _override


@pytest.fixture
async def client(setup_test_database) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client bound to the app with the test database.

    Route tests should seed data through their own short-lived sessions and
    close them before issuing requests; the in-memory database has a single
    shared connection.
    """
    app.dependency_overrides[get_db] = override_get_db()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()
