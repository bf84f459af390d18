"""
Shared pytest configuration for the Courtside test suite.

Runs against TEST_DATABASE_URL. Without it, every test gets a fresh
in-memory SQLite database through aiosqlite.

SAFETY: a Postgres TEST_DATABASE_URL is REFUSED unless the database name
contains the substring "test", because tables are emptied before each test.
"""

import os

# Point the application engine somewhere harmless before it is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool, StaticPool  # noqa: E402
from courtside.database.db import Base  # noqa: E402
from courtside.services import user_service  # noqa: E402


def _resolve_test_database_url() -> str:
    """Build the test database URL with safety checks.

    Raises ``RuntimeError`` if a server database URL does not point to a
    database whose name contains "test".
    """
    url = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    if url.startswith("sqlite"):
        return url

    # ── Safety gate: database name MUST contain "test" ──────────────────
    db_name = url.rsplit("/", 1)[-1].split("?")[0]  # strip query params
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n\n"
            f"  Fix: set TEST_DATABASE_URL to a test database, e.g.:\n"
            f"    export TEST_DATABASE_URL=postgresql+asyncpg://.../{db_name}_test\n"
            f"{'=' * 70}"
        )
    return url


# Validated at import time so pytest fails immediately with a clear message
TEST_DATABASE_URL = _resolve_test_database_url()


def _make_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database
        return create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=StaticPool,
        )
    # NullPool avoids "Future attached to different loop" across test event loops
    return create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create the schema on a fresh engine for one test."""
    engine = _make_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        # Empty tables left behind on a persistent server database
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())

    # Code that opens its own sessions through db.AsyncSessionLocal uses the test engine too
    from courtside.database import db

    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Test database session; rolled back after the test."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest_asyncio.fixture
async def users(db_session):
    """Register four users with zero skill scores."""
    alice = await user_service.register_user(
        db_session,
        "alice",
        "alice-pass1",
        profile={"gender": "female", "sports": ["tennis", "volleyball"], "skill": 5, "location": "Boston"},
        preferences={"gender_pref": "any", "sports_pref": ["tennis"], "skill_pref_min": 3, "skill_pref_max": 7},
    )
    bob = await user_service.register_user(
        db_session,
        "bob",
        "bob-pass1",
        profile={"gender": "male", "sports": ["tennis"], "skill": 6, "location": "Boston"},
    )
    carol = await user_service.register_user(
        db_session,
        "carol",
        "carol-pass1",
        profile={"gender": "female", "sports": ["volleyball"], "skill": 4, "location": "Cambridge"},
    )
    dave = await user_service.register_user(
        db_session,
        "dave",
        "dave-pass1",
        profile={"gender": "male", "sports": ["tennis"], "skill": 9, "location": "Somerville"},
    )
    return {"alice": alice.id, "bob": bob.id, "carol": carol.id, "dave": dave.id}


@pytest_asyncio.fixture
async def race_engine(tmp_path):
    """
    Engine where every session gets its own connection, so transactions can
    actually race. SQLite runs on a file since in-memory databases are private
    to one connection.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        url = f"sqlite+aiosqlite:///{tmp_path / 'race.db'}"
    else:
        url = TEST_DATABASE_URL
    engine = create_async_engine(url, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def race_users(race_engine):
    """Session factory on race_engine plus two committed users."""
    session_maker = async_sessionmaker(race_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        alice = await user_service.register_user(session, "alice", "alice-pass1")
        bob = await user_service.register_user(session, "bob", "bob-pass1")
        await session.commit()
    return session_maker, {"alice": alice.id, "bob": bob.id}


@pytest_asyncio.fixture
async def client(test_engine):
    """HTTP client against the app, with each request in its own committed session."""
    from courtside.api.main import app
    from courtside.database.db import get_db_session

    session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_db_session, None)
