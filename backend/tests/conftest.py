"""Shared test fixtures: in-memory SQLite database, HTTP client, clock and directory.

Uses SQLite + aiosqlite so tests run without PostgreSQL. Tables are created
fresh for every test.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from overtime_ledger.db import get_session, get_session_factory
from overtime_ledger.main import app
from overtime_ledger.models import SQLModel
from overtime_ledger.services.clock import FixedClock, SystemClock, get_clock, set_clock
from overtime_ledger.services.employee import InMemoryEmployeeDirectory, set_employee_directory
from tests.factories import TODAY, build_directory

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path

    from sqlalchemy.engine import Connection
    from sqlalchemy.ext.asyncio import AsyncEngine

TEST_DATABASE_URL = "sqlite+aiosqlite://"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """Create an in-memory engine with all tables for one test."""
    _engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await _engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def file_session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Session factory over a file-backed database with a regular connection pool.

    Every session gets its own connection, so concurrent workers really run in
    parallel. Transactions start with BEGIN IMMEDIATE so writers queue on the
    busy timeout instead of failing on a lock upgrade.
    """
    _engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", connect_args={"timeout": 30})

    @event.listens_for(_engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(_engine.sync_engine, "begin")
    def _begin_immediate(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(_engine, expire_on_commit=False)
    await _engine.dispose()


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> Iterator[FixedClock]:
    """Freeze the engine clock at TODAY."""
    fixed = FixedClock(TODAY)
    set_clock(fixed)
    yield fixed
    set_clock(SystemClock())


@pytest.fixture(autouse=True)
def directory() -> Iterator[InMemoryEmployeeDirectory]:
    """Seed the in-memory employee directory for every test."""
    svc = build_directory()
    set_employee_directory(svc)
    yield svc
    set_employee_directory(InMemoryEmployeeDirectory())


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_client(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    clock: FixedClock,
) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with session, session factory and clock overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
