"""SQLAlchemy engine setup and the store connection dependency."""

import datetime
import importlib
import logging
from typing import Any, Optional

from fastapi import Request
from sqlalchemy import DateTime, TypeDecorator
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)
from sqlalchemy.orm import DeclarativeBase

from . import config

logger = logging.getLogger(__name__)

MODEL_MODULES = ["sales_metrics.features.sales.models"]


class Base(DeclarativeBase):
    pass


def _as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class UtcDateTime(TypeDecorator):
    """
    Timezone-aware timestamp stored in UTC on every dialect.

    sqlite keeps only the wall clock of the bound value, so aware values are
    converted to UTC before binding and naive values are taken as UTC. Values
    read back are UTC-aware.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return _as_utc(value)

    def process_result_value(self, value, dialect):
        return _as_utc(value)


def create_db_engine(db_url: Optional[str] = None, **engine_kwargs: Any) -> AsyncEngine:
    """
    Create the async engine for the given URL, DATABASE_URL by default.

    PostgreSQL gets a bounded connection pool and a per-command timeout on the
    asyncpg side. Extra keyword arguments are passed to create_async_engine
    and override these defaults.
    """
    url = make_url(db_url or config.DATABASE_URL)
    options: dict = {"pool_pre_ping": True}
    if url.get_backend_name() == "postgresql":
        options.update(
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_POOL_MAX_OVERFLOW,
            pool_timeout=config.DB_POOL_TIMEOUT_SECONDS,
            connect_args={"command_timeout": config.QUERY_TIMEOUT_SECONDS},
        )
    options.update(engine_kwargs)
    engine = create_async_engine(url, **options)
    logger.info("Database engine created (dialect: %s).", engine.dialect.name)
    return engine


async def create_schema(engine: AsyncEngine) -> None:
    """Create any missing tables; existing tables are left untouched."""
    for module in MODEL_MODULES:
        importlib.import_module(module)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(db_url: Optional[str] = None, generate_schemas: bool = True) -> AsyncEngine:
    engine = create_db_engine(db_url)
    if generate_schemas:
        await create_schema(engine)
    return engine


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("Database connections have been closed.")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


def get_db_engine(request: Request) -> AsyncEngine:
    """
    FastAPI dependency returning the shared engine.

    The engine is created in the application lifespan and kept on
    app.state.engine. Connections are checked out of its pool per query, so a
    store that cannot be reached fails inside the request handler. Tests
    override this dependency with a fake.
    """
    return request.app.state.engine
