import asyncio
import json
import logging
from typing import Optional

import typer
from sqlalchemy import func, select

from ..core import config
from ..core.database import close_db, create_session_factory, init_db
from ..features.sales.models import Group, Sale, User
from ..features.sales.schemas import TimeSeriesFilters, TimeSeriesQuery, TimeSeriesResponse
from ..features.sales.seed import seed_database
from ..features.sales.service import compute_time_series

logger = logging.getLogger(__name__)

app = typer.Typer(name="sales-metrics", help="CLI for the Sales Metrics API and its store.")


# Shared async context manager for database connection
class DBConnection:
    def __init__(self, db_url: Optional[str] = None):
        self.db_url = db_url or config.DATABASE_URL
        self.engine = None

    async def __aenter__(self):
        self.engine = await init_db(self.db_url)  # Generates the schema if it doesn't exist
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await close_db(self.engine)


@app.command("seed")
def seed_command(
    force: bool = typer.Option(False, "--force", help="Clear existing data and seed again."),
    sales_per_user: int = typer.Option(120, min=1, help="Number of sales generated per user."),
):
    """Populates the store with representative users, groups and sales."""
    asyncio.run(_seed(force, sales_per_user))


async def _seed(force: bool, sales_per_user: int):
    async with DBConnection() as db:
        created = await seed_database(
            create_session_factory(db.engine), sales_per_user=sales_per_user, force=force
        )
        if created is None:
            typer.secho("Store already contains sales; use --force to reseed.", fg=typer.colors.YELLOW)
        else:
            typer.secho(f"Seeded {created} sales.", fg=typer.colors.GREEN)


@app.command("timeseries")
def timeseries_command(
    granularity: str = typer.Option("month", help="Time window: day, week or month."),
    group_by: str = typer.Option("user", "--group-by", help="Aggregation level: user or group."),
    start_date: Optional[str] = typer.Option(None, "--start-date", help="Inclusive start date or ISO-8601 timestamp."),
    end_date: Optional[str] = typer.Option(None, "--end-date", help="Inclusive end date or ISO-8601 timestamp."),
    user_id: Optional[str] = typer.Option(None, "--user-id", help="Comma-separated user IDs."),
    group_id: Optional[str] = typer.Option(None, "--group-id", help="Comma-separated group IDs."),
):
    """Prints the sales time series as the API would return it."""
    query = TimeSeriesQuery(
        granularity=granularity, group_by=group_by, start_date=start_date,
        end_date=end_date, user_id=user_id, group_id=group_id
    )
    try:
        payload = asyncio.run(_timeseries(query))
    # TimeSeriesValidationError is a ValueError too
    except ValueError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    typer.echo(json.dumps(payload, indent=2))


async def _timeseries(query: TimeSeriesQuery) -> dict:
    async with DBConnection() as db:
        data = await compute_time_series(db.engine, query)
    response = TimeSeriesResponse(
        granularity=query.granularity,
        group_by=query.group_by,
        filters=TimeSeriesFilters(
            start_date=query.start_date, end_date=query.end_date,
            user_id=query.user_id, group_id=query.group_id
        ),
        data=data,
    )
    return response.model_dump(mode="json", by_alias=True)


@app.command("serve")
def serve_command(
    host: str = typer.Option(config.HOST, help="Interface to bind."),
    port: int = typer.Option(config.PORT, help="Port to listen on."),
):
    """Runs the API server."""
    import uvicorn

    typer.echo(f"Server is running on http://{host}:{port}")
    uvicorn.run("sales_metrics.main:app", host=host, port=port)


@app.command("test-db-connection")
def check_db_connection_command():
    """Tests the database connection and reports table sizes."""
    asyncio.run(_report_db_connection())


async def _report_db_connection():
    async with DBConnection() as db:
        typer.echo(f"Successfully connected to the database ({db.engine.dialect.name}).")
        async with db.engine.connect() as conn:
            for model in (User, Group, Sale):
                count = await conn.scalar(select(func.count()).select_from(model))
                typer.echo(f"{model.__tablename__}: {count} row(s)")


if __name__ == "__main__":
    app()
