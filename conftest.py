"""
Root conftest for the pytest test suite.

This file contains the main fixtures that are used across the entire test suite.

Each test runs against a fresh, isolated in-memory SQLite database (one
shared aiosqlite connection behind a StaticPool) that is created and disposed
of by an async autouse fixture and attached to the app as app.state.engine.
Tests that manage their own database (the CLI tests) opt out with the
`no_db` marker.

Key Fixtures:
- `anyio_backend`: Specifies the asyncio backend.
- `initialize_test_db`: (autouse) Creates a fresh engine and schema for each test.
- `app_for_testing`: Provides the FastAPI application instance with its production
  lifespan disabled to allow `initialize_test_db` to manage the test DB.
- `client`: Provides a starlette TestClient.
- `async_client`: Provides an httpx AsyncClient bound to the app, running on the
  test's own event loop so it can share the in-memory database.
- `fake_engine`: Factory for a stand-in store engine that records queries.
- `override_engine`: Routes the app's engine dependency to a fake.
- `sale_factory`: Creates users, groups and sales in the test database.
"""

import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any, AsyncGenerator, Generator, Optional

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from sales_metrics.core.database import create_db_engine, create_schema, create_session_factory, get_db_engine
from sales_metrics.features.sales.models import Group, Sale, User, user_groups

# Import the app
from sales_metrics.main import app as actual_app


class FakeResult:
    def __init__(self, rows):
        self.rows = rows

    def mappings(self):
        return list(self.rows)


class FakeConnection:
    def __init__(self, engine: "FakeEngine"):
        self.engine = engine

    async def execute(self, statement, values=None):
        self.engine.calls.append((str(statement), values))
        if self.engine.delay:
            await asyncio.sleep(self.engine.delay)
        if self.engine.error is not None:
            raise self.engine.error
        return FakeResult(self.engine.rows)


class FakeEngine:
    """
    Stand-in for an AsyncEngine: records every query and returns canned rows.
    """

    def __init__(self, rows=None, dialect: str = "postgresql", error: Optional[BaseException] = None, delay: float = 0):
        self.rows = rows if rows is not None else []
        self.dialect = SimpleNamespace(name=dialect)
        self.error = error
        self.delay = delay
        self.calls = []

    @asynccontextmanager
    async def connect(self):
        yield FakeConnection(self)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """
    Specifies the asyncio backend.
    """
    return "asyncio"


@pytest_asyncio.fixture(scope="function", autouse=True)
async def initialize_test_db(request) -> AsyncGenerator[Optional[AsyncEngine], None]:
    """
    Initializes the database for each test function.

    This async, autouse fixture creates a fresh in-memory database and schema
    for each test, exposes it to the app and disposes of it afterwards.
    """
    if request.node.get_closest_marker("no_db"):
        yield None
        return

    engine = create_db_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await create_schema(engine)
    actual_app.state.engine = engine

    yield engine

    del actual_app.state.engine
    await engine.dispose()


@pytest.fixture
def db_sessions(initialize_test_db: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(initialize_test_db)


@pytest.fixture(scope="function")
def app_for_testing() -> Generator[FastAPI, Any, None]:
    """
    Provides a FastAPI application instance for testing, with its
    production lifespan manager disabled to allow the test DB fixture
    to manage the database connection.
    """
    original_lifespan = actual_app.router.lifespan_context

    @asynccontextmanager
    async def dummy_lifespan(app: FastAPI):
        yield

    actual_app.router.lifespan_context = dummy_lifespan

    yield actual_app

    # Restore the original lifespan context and drop dependency overrides
    actual_app.router.lifespan_context = original_lifespan
    actual_app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app_for_testing: FastAPI) -> Generator[TestClient, Any, None]:
    """
    Provides a starlette TestClient.
    """
    with TestClient(app_for_testing) as tc:
        yield tc


@pytest_asyncio.fixture(scope="function")
async def async_client(app_for_testing: FastAPI) -> AsyncGenerator[httpx.AsyncClient, Any]:
    transport = httpx.ASGITransport(app=app_for_testing)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def fake_engine():
    """A factory for FakeEngine instances."""

    def _factory(rows=None, dialect: str = "postgresql", error: Optional[BaseException] = None, delay: float = 0):
        return FakeEngine(rows=rows, dialect=dialect, error=error, delay=delay)

    return _factory


@pytest.fixture
def override_engine(app_for_testing: FastAPI):
    """Routes the app's engine dependency to the given fake."""

    def _override(engine):
        app_for_testing.dependency_overrides[get_db_engine] = lambda: engine
        return engine

    return _override


@pytest_asyncio.fixture
async def sale_factory(db_sessions: async_sessionmaker[AsyncSession]):
    """
    A factory to create store rows.

    Returns a namespace with `user`, `group` and `sale` coroutines; each one
    commits its row and returns it with its id populated.
    """

    async def _add(obj):
        async with db_sessions() as session:
            async with session.begin():
                session.add(obj)
        return obj

    async def _user(name: str, role: str = "Agent", groups=()):
        user = User(name=name, role=role)
        async with db_sessions() as session:
            async with session.begin():
                session.add(user)
                await session.flush()
                for group in groups:
                    await session.execute(user_groups.insert().values(user_id=user.id, group_id=group.id))
        return user

    async def _group(name: str):
        return await _add(Group(name=name))

    async def _sale(user: User, amount: int, when):
        return await _add(Sale(user_id=user.id, amount=amount, date=when))

    return SimpleNamespace(user=_user, group=_group, sale=_sale)
