import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from .core import config
from .core import logging_config  # noqa: F401  configures the "sales_metrics" logger
from .core.database import close_db, create_session_factory, init_db
from .features.sales.router import router as sales_router
from .features.sales.seed import seed_database

logger = logging.getLogger("sales_metrics.main")  # This logger will inherit from 'sales_metrics'


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Creates the engine and any missing tables, seeds the store when empty
    (SEED_ON_STARTUP) and disposes of the pool on shutdown. Seeding finishes
    before the first request is served.
    """
    logger.info("Starting application...")
    engine = await init_db()
    app.state.engine = engine

    if config.SEED_ON_STARTUP:
        await seed_database(create_session_factory(engine))

    yield

    await close_db(engine)


app = FastAPI(
    title="Sales Metrics API",
    description="Read-only time-series reporting over sales, per user or per group.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health", response_class=PlainTextResponse)
async def health(request: Request):
    """
    Liveness probe.
    """
    client_host = request.client.host if request.client else "unknown client"
    logger.debug(f"Health check accessed by {client_host}")
    return "Hello World"


app.include_router(sales_router, prefix="/api")
